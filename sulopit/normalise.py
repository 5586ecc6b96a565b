from __future__ import annotations

import logging
from typing import List

import numpy as np
import pandas as pd

COLUMN_METHODS = ("sum", "median", "none")


def normalise_columns(df: pd.DataFrame, tags: List[str], method: str = "sum") -> pd.DataFrame:
    """Equalise tag loading so every column has the mean total (or median)."""
    if method not in COLUMN_METHODS:
        raise ValueError(f"Unknown column normalisation {method!r}; expected one of {COLUMN_METHODS}")
    out = df.copy()
    if method == "none":
        return out
    if method == "sum":
        stats = out[tags].sum(axis=0)
    else:
        stats = out[tags].median(axis=0)
    if (stats <= 0).any() or stats.isna().any():
        raise ValueError(f"Cannot {method}-normalise tags with empty signal: {list(stats[~(stats > 0)].index)}")
    factors = stats.mean() / stats
    out[tags] = out[tags] * factors
    logging.info("Applied %s column normalisation (factors %.3f-%.3f)", method, factors.min(), factors.max())
    return out


def normalise_rows(df: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Scale every profile to sum to one, ignoring missing tags."""
    out = df.copy()
    totals = out[tags].sum(axis=1, min_count=1)
    totals = totals.replace(0, np.nan)
    out[tags] = out[tags].div(totals, axis=0)
    return out
