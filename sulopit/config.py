from __future__ import annotations

import argparse
import json
import pathlib
import uuid
from dataclasses import dataclass, field, asdict
from typing import List, Optional


def _default_tags() -> List[str]:
    return [
        "126",
        "127N",
        "127C",
        "128N",
        "128C",
        "129N",
        "129C",
        "130N",
        "130C",
        "131N",
        "131C",
        "132N",
        "132C",
        "133N",
        "133C",
        "134N",
    ]


def _default_cost() -> List[float]:
    return [2.0 ** p for p in range(-4, 5)]


def _default_sigma() -> List[float]:
    return [2.0 ** p for p in range(-5, 2)]


@dataclass
class LopitConfig:
    """Central configuration for the Succinyl-LOPIT pipeline."""

    total_psm_path: str
    ptm_psm_path: str
    proteome_fasta: str
    markers_path: str
    go_annotations_path: str
    crap_fasta: Optional[str] = None
    output_dir: str = "outputs"
    tmt_tags: List[str] = field(default_factory=_default_tags)
    ptm_name: str = "Succinyl"
    ptm_threshold: float = 95.0
    interference_threshold: float = 50.0
    sn_threshold: float = 10.0
    column_normalisation: str = "sum"
    max_missing: int = 3
    knn_k: int = 10
    min_peptides: int = 1
    min_markers_per_class: int = 7
    svm_cost: List[float] = field(default_factory=_default_cost)
    svm_sigma: List[float] = field(default_factory=_default_sigma)
    svm_times: int = 100
    svm_test_size: float = 0.2
    svm_cv_folds: int = 5
    threshold_quantile: float = 0.5
    focus_compartment: str = "NUCLEUS"
    enrichment_method: str = "wallenius"
    min_category_size: int = 5
    fdr: float = 0.05
    random_seed: int = 7
    run_id: Optional[str] = None

    @classmethod
    def from_args(cls, args: Optional[List[str]] = None) -> "LopitConfig":
        parser = argparse.ArgumentParser(description="Run the Succinyl-LOPIT pipeline.")
        parser.add_argument("total_psm_path", help="PSM export for the total (unenriched) proteome")
        parser.add_argument("ptm_psm_path", help="PSM export for the succinyl-enriched samples")
        parser.add_argument("--proteome-fasta", required=True, help="Reference proteome FASTA")
        parser.add_argument("--markers", required=True, help="Marker protein table (accession, compartment)")
        parser.add_argument("--go-annotations", required=True, help="GO annotation table (accession, GO id)")
        parser.add_argument("--crap-fasta", default=None, help="Contaminant (cRAP) FASTA")
        parser.add_argument(
            "--output-dir",
            default="outputs",
            help="Directory for run artifacts (default: outputs)",
        )
        parser.add_argument(
            "--tags",
            nargs="+",
            default=_default_tags(),
            help="TMT tag labels, in channel order (default: TMTpro 16-plex)",
        )
        parser.add_argument("--ptm-name", default="Succinyl", help="Modification name used by ptmRS")
        parser.add_argument(
            "--ptm-threshold",
            type=float,
            default=95.0,
            help="Minimum ptmRS site probability (percent) for every modified site",
        )
        parser.add_argument(
            "--interference-threshold",
            type=float,
            default=50.0,
            help="Maximum co-isolation interference (percent) for a PSM",
        )
        parser.add_argument(
            "--sn-threshold",
            type=float,
            default=10.0,
            help="Minimum average reporter signal-to-noise for a PSM",
        )
        parser.add_argument(
            "--column-normalisation",
            choices=["sum", "median", "none"],
            default="sum",
            help="Per-tag normalisation applied before profile normalisation",
        )
        parser.add_argument(
            "--max-missing", type=int, default=3, help="Maximum missing tags per feature before imputation"
        )
        parser.add_argument("--knn-k", type=int, default=10, help="Neighbours used for KNN imputation")
        parser.add_argument("--min-peptides", type=int, default=1, help="Minimum peptides per protein")
        parser.add_argument(
            "--min-markers-per-class",
            type=int,
            default=7,
            help="Marker classes with fewer members are treated as unknown",
        )
        parser.add_argument(
            "--svm-cost", nargs="+", type=float, default=None, help="Candidate SVM cost values (default 2^-4..2^4)"
        )
        parser.add_argument(
            "--svm-sigma", nargs="+", type=float, default=None, help="Candidate RBF gamma values (default 2^-5..2^1)"
        )
        parser.add_argument("--svm-times", type=int, default=100, help="Repetitions of the SVM optimisation")
        parser.add_argument("--svm-test-size", type=float, default=0.2, help="Held-out marker fraction")
        parser.add_argument("--svm-cv-folds", type=int, default=5, help="Inner cross-validation folds")
        parser.add_argument(
            "--threshold-quantile",
            type=float,
            default=0.5,
            help="Per-class score quantile below which predictions become unknown",
        )
        parser.add_argument(
            "--focus-compartment", default="NUCLEUS", help="Compartment explored in the focus stage"
        )
        parser.add_argument(
            "--enrichment-method",
            choices=["wallenius", "hypergeometric"],
            default="wallenius",
            help="GO over-representation test",
        )
        parser.add_argument("--min-category-size", type=int, default=5, help="Smallest GO term tested")
        parser.add_argument("--fdr", type=float, default=0.05, help="Adjusted p-value cutoff")
        parser.add_argument(
            "--random-seed", type=int, default=7, help="Random seed for reproducibility"
        )
        parsed = parser.parse_args(args=args)
        return cls(
            total_psm_path=parsed.total_psm_path,
            ptm_psm_path=parsed.ptm_psm_path,
            proteome_fasta=parsed.proteome_fasta,
            markers_path=parsed.markers,
            go_annotations_path=parsed.go_annotations,
            crap_fasta=parsed.crap_fasta,
            output_dir=parsed.output_dir,
            tmt_tags=list(parsed.tags),
            ptm_name=parsed.ptm_name,
            ptm_threshold=parsed.ptm_threshold,
            interference_threshold=parsed.interference_threshold,
            sn_threshold=parsed.sn_threshold,
            column_normalisation=parsed.column_normalisation,
            max_missing=parsed.max_missing,
            knn_k=parsed.knn_k,
            min_peptides=parsed.min_peptides,
            min_markers_per_class=parsed.min_markers_per_class,
            svm_cost=list(parsed.svm_cost) if parsed.svm_cost else _default_cost(),
            svm_sigma=list(parsed.svm_sigma) if parsed.svm_sigma else _default_sigma(),
            svm_times=parsed.svm_times,
            svm_test_size=parsed.svm_test_size,
            svm_cv_folds=parsed.svm_cv_folds,
            threshold_quantile=parsed.threshold_quantile,
            focus_compartment=parsed.focus_compartment,
            enrichment_method=parsed.enrichment_method,
            min_category_size=parsed.min_category_size,
            fdr=parsed.fdr,
            random_seed=parsed.random_seed,
        )

    def ensure_run_id(self) -> str:
        if not self.run_id:
            self.run_id = str(uuid.uuid4())
        return self.run_id

    def output_path(self, *parts: str) -> pathlib.Path:
        path = pathlib.Path(self.output_dir).joinpath(*parts)
        path.parent.mkdir(parents=True, exist_ok=True)
        return path

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, sort_keys=True)


def save_config_snapshot(config: LopitConfig) -> None:
    path = config.output_path("lopit_config_snapshot.json")
    path.write_text(config.to_json())
