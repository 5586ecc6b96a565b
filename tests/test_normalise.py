import numpy as np
import pandas as pd
import pytest

from sulopit.normalise import normalise_columns, normalise_rows

TAGS = ["a", "b"]


def _frame():
    return pd.DataFrame({"a": [1.0, 3.0], "b": [2.0, 6.0], "n_psms": [1, 2]}, index=["P1", "P2"])


def test_sum_normalisation_equalises_totals():
    out = normalise_columns(_frame(), TAGS, "sum")
    totals = out[TAGS].sum()
    assert totals["a"] == pytest.approx(totals["b"])
    assert totals["a"] == pytest.approx(6.0)
    assert list(out["n_psms"]) == [1, 2]


def test_median_normalisation():
    out = normalise_columns(_frame(), TAGS, "median")
    medians = out[TAGS].median()
    assert medians["a"] == pytest.approx(medians["b"])


def test_none_passes_through():
    pd.testing.assert_frame_equal(normalise_columns(_frame(), TAGS, "none"), _frame())


def test_unknown_method_raises():
    with pytest.raises(ValueError, match="Unknown column normalisation"):
        normalise_columns(_frame(), TAGS, "quantile")


def test_empty_column_raises():
    df = _frame()
    df["b"] = np.nan
    with pytest.raises(ValueError, match="empty signal"):
        normalise_columns(df, TAGS, "sum")


def test_rows_sum_to_one_ignoring_missing():
    df = pd.DataFrame({"a": [1.0, np.nan, 0.0], "b": [3.0, 2.0, 0.0]})
    out = normalise_rows(df, TAGS)
    assert list(out.loc[0, TAGS]) == [0.25, 0.75]
    assert np.isnan(out.loc[1, "a"])
    assert out.loc[1, "b"] == 1.0
    assert out.loc[2, TAGS].isna().all()
