import numpy as np
import pandas as pd
import pytest

from sulopit.markers import UNKNOWN
from sulopit.resolution import qsep, resolution_report, run_pca


def _profiles(tags, spread=0.01, seed=3):
    rng = np.random.default_rng(seed)
    centres = {"A": [0.7, 0.1, 0.1, 0.05, 0.03, 0.02], "B": [0.02, 0.03, 0.05, 0.1, 0.1, 0.7]}
    rows, labels = [], []
    for label, centre in centres.items():
        for _ in range(10):
            rows.append(np.array(centre) + rng.normal(0, spread, len(tags)))
            labels.append(label)
    for _ in range(5):
        rows.append(np.full(len(tags), 1 / len(tags)) + rng.normal(0, spread, len(tags)))
        labels.append(UNKNOWN)
    df = pd.DataFrame(rows, columns=tags, index=[f"P{i}" for i in range(len(rows))])
    df["markers"] = labels
    return df


def test_run_pca(tags):
    scores, explained = run_pca(_profiles(tags), tags)
    assert list(scores.columns) == ["PC1", "PC2"]
    assert len(scores) == 25
    assert explained[0] > explained[1] > 0


def test_qsep_normalises_by_within_class_distance(tags):
    matrix = qsep(_profiles(tags), tags)
    assert list(matrix.index) == ["A", "B"]
    assert np.diag(matrix.to_numpy()) == pytest.approx([1.0, 1.0])
    assert matrix.loc["A", "B"] > 5
    assert matrix.loc["B", "A"] > 5


def test_resolution_report_writes_outputs(config, tags):
    resolution_report(_profiles(tags), tags, "proteins", config)
    text = config.output_path("lopit_resolution_proteins.md").read_text()
    assert "Marker classes: 2" in text
    assert "- A vs B:" in text
    assert config.output_path("lopit_qsep_proteins.csv").exists()
    for figure in ("pca_proteins.png", "qsep_proteins.png", "marker_profiles_proteins.png"):
        assert config.output_path("figures", figure).exists()
