from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
import pandas as pd

from .config import LopitConfig
from .markers import UNKNOWN
from .plots import plot_transitions


def _row_correlation(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    a = a - a.mean(axis=1, keepdims=True)
    b = b - b.mean(axis=1, keepdims=True)
    denom = np.sqrt((a * a).sum(axis=1) * (b * b).sum(axis=1))
    with np.errstate(invalid="ignore", divide="ignore"):
        return np.where(denom > 0, (a * b).sum(axis=1) / denom, np.nan)


def compare_localisations(sites: pd.DataFrame, proteins: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Pair every classified site with its host protein.

    Sites whose host protein was not quantified in the total proteome keep a
    missing protein localisation and are never flagged as relocalised.
    """
    host = proteins[tags + ["svm_final"]].rename(columns={"svm_final": "protein_localisation"})
    comparison = pd.DataFrame(
        {
            "accession": sites["master_protein"],
            "site_localisation": sites["svm_final"],
            "site_score": sites["svm_score"],
        },
        index=sites.index,
    )
    comparison["protein_localisation"] = comparison["accession"].map(host["protein_localisation"])
    has_host = comparison["accession"].isin(host.index).to_numpy()
    correlation = np.full(len(comparison), np.nan)
    if has_host.any():
        site_profiles = sites.loc[has_host, tags].to_numpy(dtype=float)
        host_profiles = host.loc[comparison.loc[has_host, "accession"], tags].to_numpy(dtype=float)
        correlation[has_host] = _row_correlation(site_profiles, host_profiles)
    comparison["profile_correlation"] = correlation
    both_known = (
        comparison["protein_localisation"].notna()
        & (comparison["protein_localisation"] != UNKNOWN)
        & (comparison["site_localisation"] != UNKNOWN)
    )
    comparison["relocalised"] = both_known & (
        comparison["site_localisation"] != comparison["protein_localisation"]
    )
    comparison.index.name = "site_id"
    logging.info(
        "Compared %d sites with host proteins (%d hosts quantified, %d relocalised)",
        len(comparison),
        int(has_host.sum()),
        int(comparison["relocalised"].sum()),
    )
    return comparison


def focus_sets(comparison: pd.DataFrame, compartment: str) -> Tuple[pd.DataFrame, List[str]]:
    """Sites localised to ``compartment`` and the proteins hosting them."""
    in_compartment = comparison[comparison["site_localisation"] == compartment]
    host_proteins = sorted(in_compartment["accession"].unique())
    return in_compartment, host_proteins


def transition_table(comparison: pd.DataFrame) -> pd.DataFrame:
    known = comparison[comparison["protein_localisation"].notna()]
    return pd.crosstab(known["protein_localisation"], known["site_localisation"])


def focus_report(comparison: pd.DataFrame, compartment: str, config: LopitConfig) -> pd.DataFrame:
    focused, hosts = focus_sets(comparison, compartment)
    transitions = transition_table(comparison)
    relocated_in = focused[focused["relocalised"]]
    lines = [
        f"# {compartment} focus report",
        f"Run: {config.run_id}",
        f"Sites classified: {len(comparison)}",
        f"Sites in {compartment}: {len(focused)}",
        f"Host proteins of {compartment} sites: {len(hosts)}",
        f"{compartment} sites on proteins localised elsewhere: {len(relocated_in)}",
        f"Median site/host profile correlation: {comparison['profile_correlation'].median():.3f}",
        "",
        f"## {compartment} sites whose host protein is elsewhere",
    ]
    for site, row in relocated_in.sort_values("profile_correlation").head(50).iterrows():
        lines.append(
            f"- {site}: host {row['protein_localisation']} (r={row['profile_correlation']:.2f}, "
            f"score {row['site_score']:.2f})"
        )
    comparison.to_csv(config.output_path("lopit_site_protein_comparison.csv"))
    transitions.to_csv(config.output_path("lopit_localisation_transitions.csv"))
    report_path = config.output_path(f"lopit_focus_{compartment.lower()}.md")
    report_path.write_text("\n".join(lines))
    if not transitions.empty:
        plot_transitions(
            transitions, "protein vs site localisation", config.output_path("figures", "transitions.png")
        )
    logging.info("Wrote focus report to %s", report_path)
    return focused
