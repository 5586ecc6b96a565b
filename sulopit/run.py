from __future__ import annotations

import logging
import sys
from typing import Dict, Set

import pandas as pd

from .aggregate import peptides_to_proteins, psms_to_peptides, psms_to_sites
from .classify import (
    apply_thresholds,
    classification_report,
    marker_matrix,
    optimise_svm,
    predict_localisation,
    score_thresholds,
    train_svm,
)
from .config import LopitConfig
from .enrichment import enrichment_report, load_go_annotations, run_enrichment
from .filtering import filter_report, filter_tmt_psms, parse_features
from .focus import compare_localisations, focus_report
from .impute import filter_and_impute, missing_report
from .ingest import load_fasta, load_psms
from .integrity import VALID, run_integrity
from .markers import add_markers, load_markers
from .normalise import normalise_columns, normalise_rows
from .ptm import add_ptm_positions, filter_ptm_scores, ptm_report
from .resolution import resolution_report


def _persist(df: pd.DataFrame, name: str, config: LopitConfig) -> None:
    path = config.output_path(f"lopit_{name}.parquet")
    df.to_parquet(path)
    logging.info("Wrote %s (%d rows) to %s", name, len(df), path)


def _filtered_psms(path: str, name: str, crap: Set[str], config: LopitConfig) -> pd.DataFrame:
    tags = config.tmt_tags
    psms = load_psms(path, tags)
    psms, steps = parse_features(psms, tags, crap)
    psms, steps = filter_tmt_psms(
        psms, tags, config.interference_threshold, config.sn_threshold, steps=steps
    )
    filter_report(steps, name, config)
    return psms


def _profiles(features: pd.DataFrame, config: LopitConfig):
    tags = config.tmt_tags
    normalised = normalise_columns(features, tags, config.column_normalisation)
    normalised = normalise_rows(normalised, tags)
    return filter_and_impute(normalised, tags, config)


def prepare_proteins(crap: Set[str], row_counts: Dict[str, int], config: LopitConfig):
    psms = _filtered_psms(config.total_psm_path, "total", crap, config)
    peptides = psms_to_peptides(psms, config.tmt_tags)
    proteins = peptides_to_proteins(peptides, config.tmt_tags, config.min_peptides)
    _persist(peptides, "total_peptides", config)
    profiles, missing = _profiles(proteins, config)
    row_counts.update(
        {"total_psms": len(psms), "total_peptides": len(peptides), "proteins": len(profiles)}
    )
    return profiles, missing


def prepare_sites(crap: Set[str], proteome: Dict[str, str], row_counts: Dict[str, int], config: LopitConfig):
    psms = _filtered_psms(config.ptm_psm_path, "ptm", crap, config)
    scored, score_rejects = filter_ptm_scores(psms, config.ptm_name, config.ptm_threshold)
    positioned, position_rejects = add_ptm_positions(scored, proteome)
    ptm_report(scored, score_rejects, positioned, position_rejects, config)
    if positioned.empty:
        raise RuntimeError(
            f"No localised {config.ptm_name} sites at ptmRS >= {config.ptm_threshold:g}; see lopit_ptm_report.md"
        )
    sites = psms_to_sites(positioned, config.tmt_tags)
    profiles, missing = _profiles(sites, config)
    row_counts.update({"ptm_psms": len(positioned), "sites": len(profiles)})
    return profiles, missing


def main(argv=None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    config = LopitConfig.from_args(argv)
    logging.info("Starting Succinyl-LOPIT run with run_id %s", config.ensure_run_id())
    tags = config.tmt_tags
    row_counts: Dict[str, int] = {}

    # parse
    crap: Set[str] = set(load_fasta(config.crap_fasta)) if config.crap_fasta else set()
    proteome = load_fasta(config.proteome_fasta)
    proteins, protein_missing = prepare_proteins(crap, row_counts, config)
    sites, site_missing = prepare_sites(crap, proteome, row_counts, config)
    missing_report({"proteins": protein_missing, "sites": site_missing}, config)

    # explore resolution
    markers = load_markers(config.markers_path)
    proteins = add_markers(proteins, markers, config.min_markers_per_class)
    _persist(proteins, "proteins", config)
    _persist(sites, "sites", config)
    resolution_report(proteins, tags, "proteins", config)

    # classify
    X, y = marker_matrix(proteins, tags)
    params, optimisation = optimise_svm(
        X,
        y,
        config.svm_cost,
        config.svm_sigma,
        times=config.svm_times,
        test_size=config.svm_test_size,
        cv_folds=config.svm_cv_folds,
        seed=config.random_seed,
    )
    model = train_svm(X, y, params, seed=config.random_seed)
    predictions: Dict[str, pd.DataFrame] = {}
    thresholds: Dict[str, Dict[str, float]] = {}
    for name, table in (("proteins", proteins), ("sites", sites)):
        pred = predict_localisation(model, table, tags)
        thresholds[name] = score_thresholds(pred, config.threshold_quantile)
        predictions[name] = apply_thresholds(pred, thresholds[name])
        _persist(predictions[name], f"{name}_predictions", config)
    classification_report(params, optimisation, thresholds, predictions, config)

    # explore the focus compartment
    comparison = compare_localisations(predictions["sites"], predictions["proteins"], tags)
    focused = focus_report(comparison, config.focus_compartment, config)
    annotations = load_go_annotations(config.go_annotations_path)
    bias = proteins["total_abundance"]
    focus_name = config.focus_compartment.lower()
    enrichment_runs = {
        # host proteins of focus-compartment sites against all succinylated proteins
        f"{focus_name}_sites": (set(focused["accession"]), set(comparison["accession"])),
        # succinylated proteins against the quantified proteome
        "succinylated": (set(comparison["accession"]), set(proteins.index)),
    }
    for name, (selected, universe) in enrichment_runs.items():
        try:
            results, pwf = run_enrichment(
                selected,
                universe,
                annotations,
                bias=bias,
                method=config.enrichment_method,
                min_category_size=config.min_category_size,
            )
        except ValueError as exc:
            logging.warning("Skipping enrichment %s: %s", name, exc)
            continue
        enrichment_report(results, pwf, name, config)

    run_status, _ = run_integrity(
        proteins, sites, predictions["proteins"], predictions["sites"], row_counts, config
    )
    if run_status != VALID:
        logging.warning("Integrity failed; results should not be interpreted.")


if __name__ == "__main__":
    main(sys.argv[1:])
