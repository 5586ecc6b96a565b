from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Set

import numpy as np
import pandas as pd
from scipy.stats import hypergeom, nchypergeom_wallenius
from sklearn.isotonic import IsotonicRegression
from statsmodels.stats.multitest import multipletests

from .config import LopitConfig
from .ingest import _choose_column, load_table
from .plots import plot_enrichment, plot_pwf

METHODS = ("wallenius", "hypergeometric")
ANNOTATION_COLUMNS = {
    "accession": ["accession", "Accession", "protein", "uniprot", "Entry"],
    "category": ["go_id", "GO", "go", "category", "GO ID"],
    "term": ["term", "go_term", "name", "GO term"],
}
PWF_FLOOR = 1e-6


def load_go_annotations(path: str) -> pd.DataFrame:
    """Long table of accession, GO category and (optional) term name."""
    df = load_table(path)
    renamed = {}
    for canonical, options in ANNOTATION_COLUMNS.items():
        col = _choose_column(df, options)
        if col:
            renamed[col] = canonical
    df = df.rename(columns=renamed)
    missing = [c for c in ("accession", "category") if c not in df.columns]
    if missing:
        raise ValueError(f"GO annotation table {path} is missing columns: {missing}")
    if "term" not in df.columns:
        df["term"] = None
    df = df[["accession", "category", "term"]].dropna(subset=["accession", "category"])
    df = df.drop_duplicates(subset=["accession", "category"])
    logging.info(
        "Loaded %d GO annotations for %d proteins", len(df), df["accession"].nunique()
    )
    return df.reset_index(drop=True)


def fit_pwf(selected: pd.Series, bias: pd.Series) -> pd.DataFrame:
    """Probability weighting function: selection probability against abundance.

    A monotone (isotonic) fit of the 0/1 selection status on the bias values;
    the direction of the trend is taken from the data. Weights are floored so
    that no protein is impossible to select.
    """
    frame = pd.DataFrame({"selected": selected.astype(float), "bias": bias.astype(float)}).dropna()
    if frame.empty:
        raise ValueError("No proteins with both selection status and abundance")
    if frame["bias"].nunique() < 2:
        frame["pwf"] = frame["selected"].mean()
    else:
        model = IsotonicRegression(increasing="auto", out_of_bounds="clip")
        frame["pwf"] = model.fit_transform(frame["bias"].to_numpy(), frame["selected"].to_numpy())
    frame["pwf"] = frame["pwf"].clip(lower=PWF_FLOOR)
    return frame


def _categories(annotations: pd.DataFrame, universe: Set[str]) -> Dict[str, Set[str]]:
    in_universe = annotations[annotations["accession"].isin(universe)]
    return {cat: set(group["accession"]) for cat, group in in_universe.groupby("category")}


def _adjust(pvalues: pd.Series) -> np.ndarray:
    adjusted = np.full(len(pvalues), np.nan)
    mask = pvalues.notna().to_numpy()
    if mask.any():
        adjusted[mask] = multipletests(pvalues[mask].to_numpy(), method="fdr_bh")[1]
    return adjusted


def run_enrichment(
    selected: Iterable[str],
    universe: Iterable[str],
    annotations: pd.DataFrame,
    bias: Optional[pd.Series] = None,
    method: str = "wallenius",
    min_category_size: int = 5,
):
    """GO term over- and under-representation of ``selected`` within ``universe``.

    With ``method="wallenius"`` each protein is weighted by the probability
    weighting function fitted on ``bias``, and a category's odds are the mean
    weight inside it over the mean weight outside it. ``hypergeometric``
    ignores the bias. Returns the results table and the PWF frame (or None).
    """
    if method not in METHODS:
        raise ValueError(f"Unknown enrichment method {method!r}; expected one of {METHODS}")
    universe = set(universe)
    if method == "wallenius":
        if bias is None:
            raise ValueError("Wallenius enrichment needs abundance bias values")
        universe &= set(bias.dropna().index)
    annotated = universe & set(annotations["accession"])
    selected = set(selected) & annotated
    if not selected:
        raise ValueError("No selected proteins in the annotated universe")
    # unannotated proteins cannot fall in any category
    universe_index = sorted(annotated)
    is_selected = pd.Series([acc in selected for acc in universe_index], index=universe_index)
    pwf = None
    weights = pd.Series(1.0, index=universe_index)
    if method == "wallenius":
        pwf = fit_pwf(is_selected, bias.reindex(universe_index))
        weights = pwf["pwf"]
    n_total = len(universe_index)
    n_selected = int(is_selected.sum())
    terms = annotations.drop_duplicates("category").set_index("category")["term"]
    rows = []
    for category, members in _categories(annotations, set(universe_index)).items():
        n_in = len(members)
        if n_in < min_category_size:
            continue
        k = len(members & selected)
        if method == "wallenius":
            inside = weights.index.isin(list(members))
            outside_mean = weights[~inside].mean() if (~inside).any() else weights.mean()
            odds = float(weights[inside].mean() / outside_mean)
            dist = nchypergeom_wallenius(n_total, n_in, n_selected, odds)
        else:
            dist = hypergeom(n_total, n_in, n_selected)
        expected = n_selected * n_in / n_total
        rows.append(
            {
                "category": category,
                "term": terms.get(category),
                "num_selected_in_category": k,
                "num_in_category": n_in,
                "expected": expected,
                "fold_enrichment": k / expected if expected else np.nan,
                "over_represented_pvalue": float(min(1.0, dist.sf(k - 1))),
                "under_represented_pvalue": float(min(1.0, dist.cdf(k))),
            }
        )
    results = pd.DataFrame(
        rows,
        columns=[
            "category",
            "term",
            "num_selected_in_category",
            "num_in_category",
            "expected",
            "fold_enrichment",
            "over_represented_pvalue",
            "under_represented_pvalue",
        ],
    )
    results["over_represented_padj"] = _adjust(results["over_represented_pvalue"])
    results["under_represented_padj"] = _adjust(results["under_represented_pvalue"])
    results = results.sort_values("over_represented_pvalue").reset_index(drop=True)
    logging.info(
        "Tested %d GO categories (%s) for %d of %d proteins",
        len(results),
        method,
        n_selected,
        n_total,
    )
    return results, pwf


def enrichment_report(results: pd.DataFrame, pwf: Optional[pd.DataFrame], name: str, config: LopitConfig) -> None:
    over = results[results["over_represented_padj"] < config.fdr]
    under = results[results["under_represented_padj"] < config.fdr]
    lines = [
        f"# GO enrichment report: {name}",
        f"Run: {config.run_id}",
        f"Method: {config.enrichment_method}",
        f"Categories tested: {len(results)}",
        f"Over-represented at FDR {config.fdr:g}: {len(over)}",
        f"Under-represented at FDR {config.fdr:g}: {len(under)}",
        "",
        "## Over-represented",
    ]
    for row in over.head(30).itertuples(index=False):
        label = row.term if isinstance(row.term, str) else row.category
        lines.append(
            f"- {row.category} {label}: {row.num_selected_in_category}/{row.num_in_category} "
            f"(fold {row.fold_enrichment:.2f}, adj. p {row.over_represented_padj:.2e})"
        )
    lines.append("\n## Under-represented")
    for row in under.sort_values("under_represented_pvalue").head(30).itertuples(index=False):
        label = row.term if isinstance(row.term, str) else row.category
        lines.append(
            f"- {row.category} {label}: {row.num_selected_in_category}/{row.num_in_category} "
            f"(fold {row.fold_enrichment:.2f}, adj. p {row.under_represented_padj:.2e})"
        )
    results.to_csv(config.output_path(f"lopit_enrichment_{name}.csv"), index=False)
    report_path = config.output_path(f"lopit_enrichment_{name}.md")
    report_path.write_text("\n".join(lines))
    if pwf is not None:
        plot_pwf(pwf, f"{name} probability weighting", config.output_path("figures", f"pwf_{name}.png"))
    plot_enrichment(results, f"{name} GO over-representation", config.output_path("figures", f"go_{name}.png"))
    logging.info("Wrote enrichment report to %s", report_path)
