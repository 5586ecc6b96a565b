import numpy as np
import pandas as pd
import pytest

from sulopit.enrichment import enrichment_report, fit_pwf, load_go_annotations, run_enrichment


def _annotations():
    rows = []
    for i in range(40):
        acc = f"P{i}"
        rows.append({"accession": acc, "category": "GO:1", "term": "nucleus" if i < 10 else None})
        if i < 10:
            rows[-1]["category"] = "GO:NUC"
        rows.append({"accession": acc, "category": "GO:ALL", "term": "protein binding"})
    return pd.DataFrame(rows)


def test_load_go_annotations(tmp_path):
    path = tmp_path / "go.tsv"
    pd.DataFrame(
        {
            "Entry": ["P1", "P1", "P2", None],
            "GO": ["GO:0005634", "GO:0005634", "GO:0005739", "GO:1"],
            "name": ["nucleus", "nucleus", "mitochondrion", "x"],
        }
    ).to_csv(path, sep="\t", index=False)
    annotations = load_go_annotations(str(path))
    assert list(annotations.columns) == ["accession", "category", "term"]
    assert len(annotations) == 2


def test_load_go_annotations_requires_columns(tmp_path):
    path = tmp_path / "go.tsv"
    pd.DataFrame({"Entry": ["P1"]}).to_csv(path, sep="\t", index=False)
    with pytest.raises(ValueError, match="category"):
        load_go_annotations(str(path))


def test_fit_pwf_is_monotone():
    bias = pd.Series(np.arange(1, 101, dtype=float), index=[f"P{i}" for i in range(100)])
    selected = pd.Series(bias > 60, index=bias.index)
    pwf = fit_pwf(selected, bias)
    values = pwf.sort_values("bias")["pwf"].to_numpy()
    assert (np.diff(values) >= 0).all()
    assert values[0] > 0
    assert values[-1] == pytest.approx(1.0)


def test_hypergeometric_finds_enriched_category():
    universe = [f"P{i}" for i in range(40)]
    selected = [f"P{i}" for i in range(8)] + ["P20", "P30"]
    results, pwf = run_enrichment(
        selected, universe, _annotations(), method="hypergeometric", min_category_size=5
    )
    assert pwf is None
    top = results.iloc[0]
    assert top["category"] == "GO:NUC"
    assert top["term"] == "nucleus"
    assert top["num_selected_in_category"] == 8
    assert top["num_in_category"] == 10
    assert top["over_represented_padj"] < 0.01
    everything = results.set_index("category").loc["GO:ALL"]
    assert everything["over_represented_pvalue"] == pytest.approx(1.0)


def test_wallenius_with_flat_bias_matches_hypergeometric():
    universe = [f"P{i}" for i in range(40)]
    selected = [f"P{i}" for i in range(8)] + ["P20", "P30"]
    bias = pd.Series(100.0, index=universe)
    plain, _ = run_enrichment(selected, universe, _annotations(), method="hypergeometric")
    weighted, pwf = run_enrichment(selected, universe, _annotations(), bias=bias, method="wallenius")
    assert pwf is not None and len(pwf) == 40
    merged = plain.merge(weighted, on="category", suffixes=("_plain", "_weighted"))
    assert merged["over_represented_pvalue_weighted"].to_numpy() == pytest.approx(
        merged["over_represented_pvalue_plain"].to_numpy(), rel=1e-3, abs=1e-6
    )


def test_abundance_bias_weakens_enrichment():
    universe = [f"P{i}" for i in range(40)]
    # the nuclear proteins are also the most abundant ones
    bias = pd.Series([1000.0 if i < 10 else 10.0 + i for i in range(40)], index=universe)
    selected = [f"P{i}" for i in range(8)] + ["P38", "P39"]
    plain, _ = run_enrichment(selected, universe, _annotations(), method="hypergeometric")
    weighted, _ = run_enrichment(selected, universe, _annotations(), bias=bias, method="wallenius")
    p_plain = plain.set_index("category").loc["GO:NUC", "over_represented_pvalue"]
    p_weighted = weighted.set_index("category").loc["GO:NUC", "over_represented_pvalue"]
    assert p_weighted > p_plain


def test_invalid_requests_raise():
    universe = [f"P{i}" for i in range(40)]
    with pytest.raises(ValueError, match="Unknown enrichment method"):
        run_enrichment(["P1"], universe, _annotations(), method="fisher")
    with pytest.raises(ValueError, match="abundance bias"):
        run_enrichment(["P1"], universe, _annotations(), method="wallenius")
    with pytest.raises(ValueError, match="No selected proteins"):
        run_enrichment(["Q1"], universe, _annotations(), method="hypergeometric")


def test_enrichment_report(config):
    universe = [f"P{i}" for i in range(40)]
    selected = [f"P{i}" for i in range(8)] + ["P20", "P30"]
    bias = pd.Series(np.linspace(10, 1000, 40), index=universe)
    results, pwf = run_enrichment(selected, universe, _annotations(), bias=bias)
    enrichment_report(results, pwf, "nucleus_sites", config)
    text = config.output_path("lopit_enrichment_nucleus_sites.md").read_text()
    assert "Categories tested: 3" in text
    assert config.output_path("lopit_enrichment_nucleus_sites.csv").exists()
    assert config.output_path("figures", "pwf_nucleus_sites.png").exists()
    assert config.output_path("figures", "go_nucleus_sites.png").exists()


@pytest.mark.parametrize("method", ["hypergeometric", "wallenius"])
def test_depleted_category_is_under_represented(method):
    universe = [f"P{i}" for i in range(40)]
    # none of the ten nuclear proteins are selected
    selected = [f"P{i}" for i in range(10, 30)]
    bias = pd.Series(100.0, index=universe)
    results, _ = run_enrichment(selected, universe, _annotations(), bias=bias, method=method)
    by_category = results.set_index("category")
    assert by_category.loc["GO:NUC", "num_selected_in_category"] == 0
    assert by_category.loc["GO:NUC", "under_represented_pvalue"] < 1e-3
    assert by_category.loc["GO:NUC", "under_represented_padj"] < 0.01
    assert by_category.loc["GO:1", "under_represented_pvalue"] == pytest.approx(1.0)
    assert by_category.loc["GO:1", "over_represented_pvalue"] < 1e-3
