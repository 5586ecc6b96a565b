import pandas as pd
import pytest

from sulopit.markers import UNKNOWN, add_markers, load_markers, marker_summary


def test_load_markers_with_named_columns(tmp_path):
    path = tmp_path / "markers.tsv"
    pd.DataFrame(
        {"Accession": ["P1", "P2", "P2", "P3"], "compartment": ["ER", "GOLGI", "ER", " PM "]}
    ).to_csv(path, sep="\t", index=False)
    markers = load_markers(str(path))
    assert markers.to_dict() == {"P1": "ER", "P2": "GOLGI", "P3": "PM"}


def test_load_markers_falls_back_to_column_order(tmp_path):
    path = tmp_path / "markers.csv"
    pd.DataFrame({"uid": ["P1"], "where": ["ER"]}).to_csv(path, index=False)
    assert load_markers(str(path)).to_dict() == {"P1": "ER"}


def test_load_markers_needs_two_columns(tmp_path):
    path = tmp_path / "markers.csv"
    pd.DataFrame({"uid": ["P1"]}).to_csv(path, index=False)
    with pytest.raises(ValueError, match="accession and compartment"):
        load_markers(str(path))


def test_add_markers_demotes_sparse_classes():
    proteins = pd.DataFrame({"126": range(6)}, index=[f"P{i}" for i in range(6)])
    markers = pd.Series({"P0": "ER", "P1": "ER", "P2": "ER", "P3": "GOLGI", "P9": "PM"})
    out = add_markers(proteins, markers, min_per_class=2)
    assert list(out["markers"]) == ["ER", "ER", "ER", UNKNOWN, UNKNOWN, UNKNOWN]
    assert marker_summary(out).to_dict() == {"ER": 3}
