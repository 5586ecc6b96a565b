from __future__ import annotations

import logging

import pandas as pd

from .ingest import _choose_column, load_table

UNKNOWN = "unknown"
MARKER_COLUMNS = {
    "accession": ["accession", "Accession", "protein", "uniprot", "UniProt"],
    "marker": ["marker", "markers", "compartment", "localisation", "localization"],
}


def load_markers(path: str) -> pd.Series:
    """Load an accession -> compartment marker table."""
    df = load_table(path)
    renamed = {}
    for canonical, options in MARKER_COLUMNS.items():
        col = _choose_column(df, options)
        if col is None:
            if len(df.columns) < 2:
                raise ValueError(f"Marker table {path} needs accession and compartment columns")
            col = df.columns[0] if canonical == "accession" else df.columns[1]
        renamed[col] = canonical
    df = df.rename(columns=renamed)[["accession", "marker"]].dropna()
    df["accession"] = df["accession"].astype(str).str.strip()
    df["marker"] = df["marker"].astype(str).str.strip()
    duplicated = df["accession"].duplicated(keep="first")
    if duplicated.any():
        logging.warning("Ignoring %d duplicated marker accessions", int(duplicated.sum()))
    markers = df[~duplicated].set_index("accession")["marker"]
    logging.info("Loaded %d markers across %d classes", len(markers), markers.nunique())
    return markers


def add_markers(
    df: pd.DataFrame,
    markers: pd.Series,
    min_per_class: int = 7,
) -> pd.DataFrame:
    """Label features with their marker class; everything else is ``unknown``.

    Features are matched on their index. Classes with fewer than
    ``min_per_class`` members in the table become ``unknown``.
    """
    out = df.copy()
    out["markers"] = out.index.to_series().map(markers).fillna(UNKNOWN).to_numpy()
    counts = out.loc[out["markers"] != UNKNOWN, "markers"].value_counts()
    sparse = counts[counts < min_per_class]
    if len(sparse):
        logging.warning(
            "Marker classes below %d members treated as unknown: %s",
            min_per_class,
            ", ".join(f"{c} ({n})" for c, n in sparse.items()),
        )
        out.loc[out["markers"].isin(sparse.index), "markers"] = UNKNOWN
    return out


def marker_summary(df: pd.DataFrame) -> pd.Series:
    return df.loc[df["markers"] != UNKNOWN, "markers"].value_counts().sort_index()
