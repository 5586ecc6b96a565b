from __future__ import annotations

import logging
from typing import Dict, List

import pandas as pd
from sklearn.impute import KNNImputer

from .config import LopitConfig
from .normalise import normalise_rows


def missing_counts(df: pd.DataFrame, tags: List[str]) -> pd.Series:
    return df[tags].isna().sum(axis=1)


def filter_missing(df: pd.DataFrame, tags: List[str], max_missing: int) -> pd.DataFrame:
    counts = missing_counts(df, tags)
    kept = df[counts <= max_missing].copy()
    logging.info(
        "Removed %d features with more than %d missing tags", len(df) - len(kept), max_missing
    )
    return kept


def impute_knn(df: pd.DataFrame, tags: List[str], k: int = 10) -> pd.DataFrame:
    """Fill remaining gaps from the k most similar complete profiles."""
    out = df.copy()
    if not out[tags].isna().any().any():
        return out
    k = max(1, min(k, len(out) - 1))
    imputer = KNNImputer(n_neighbors=k, keep_empty_features=True)
    out[tags] = imputer.fit_transform(out[tags].to_numpy())
    return normalise_rows(out, tags)


def missing_report(stats: Dict[str, Dict[str, int]], config: LopitConfig) -> None:
    lines = [
        "# Missing value report",
        f"Run: {config.run_id}",
        f"Max missing tags per feature: {config.max_missing}",
        f"KNN neighbours: {config.knn_k}",
        "",
        "| table | features | with missing | missing values | removed | imputed values |",
        "|---|---|---|---|---|---|",
    ]
    for name, s in stats.items():
        lines.append(
            f"| {name} | {s['features']} | {s['with_missing']} | {s['missing_values']} "
            f"| {s['removed']} | {s['imputed_values']} |"
        )
    report_path = config.output_path("lopit_missing_report.md")
    report_path.write_text("\n".join(lines))
    logging.info("Wrote missing value report to %s", report_path)


def filter_and_impute(df: pd.DataFrame, tags: List[str], config: LopitConfig):
    counts = missing_counts(df, tags)
    filtered = filter_missing(df, tags, config.max_missing)
    imputed_values = int(filtered[tags].isna().sum().sum())
    imputed = impute_knn(filtered, tags, config.knn_k)
    stats = {
        "features": len(df),
        "with_missing": int((counts > 0).sum()),
        "missing_values": int(counts.sum()),
        "removed": len(df) - len(filtered),
        "imputed_values": imputed_values,
    }
    return imputed, stats
