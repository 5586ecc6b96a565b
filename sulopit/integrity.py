from __future__ import annotations

import hashlib
import json
import logging
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from .config import LopitConfig, save_config_snapshot
from .markers import UNKNOWN

VALID = "VALID"
INVALID = "INVALID"


def _universe_hash(values) -> str:
    joined = "|".join(sorted(pd.Index(values).astype(str).tolist()))
    return hashlib.md5(joined.encode("utf-8")).hexdigest()


def _profiles_complete(df: pd.DataFrame, tags: List[str]) -> bool:
    if df.empty:
        return True
    values = df[tags].to_numpy(dtype=float)
    return bool(np.isfinite(values).all() and np.allclose(values.sum(axis=1), 1.0, atol=1e-6))


def run_integrity(
    proteins: pd.DataFrame,
    sites: pd.DataFrame,
    protein_predictions: pd.DataFrame,
    site_predictions: pd.DataFrame,
    row_counts: Dict[str, int],
    config: LopitConfig,
) -> Tuple[str, Dict[str, object]]:
    tags = config.tmt_tags
    save_config_snapshot(config)
    manifest = {
        "run_id": config.run_id,
        "output_dir": config.output_dir,
        "row_counts": row_counts,
        "config": json.loads(config.to_json()),
    }
    protein_hash = _universe_hash(proteins.index)
    site_hash = _universe_hash(sites.index)
    hashes_match = (
        protein_hash == _universe_hash(protein_predictions.index)
        and site_hash == _universe_hash(site_predictions.index)
    )
    profiles_complete = _profiles_complete(proteins, tags) and _profiles_complete(sites, tags)
    marker_classes = set(proteins.loc[proteins["markers"] != UNKNOWN, "markers"])
    predicted = set(protein_predictions["svm"]) | set(site_predictions["svm"])
    classes_backed = predicted <= marker_classes
    gate_failures = []
    if not hashes_match:
        gate_failures.append("Gate1: predictions do not cover the quantified feature universe")
    if not profiles_complete:
        gate_failures.append("Gate2: imputed profiles contain gaps or do not sum to one")
    if not classes_backed:
        gate_failures.append(
            f"Gate3: predicted classes without markers: {sorted(predicted - marker_classes)}"
        )
    run_status = INVALID if gate_failures else VALID
    manifest["run_status"] = run_status
    manifest["universe_hashes"] = {"proteins": protein_hash, "sites": site_hash}
    manifest_path = config.output_path("lopit_run_manifest.json")
    manifest_path.write_text(json.dumps(manifest, indent=2))
    lines = [
        "# Integrity report",
        f"Run: {config.run_id}",
        f"Run status: {run_status}",
        f"Protein universe hash: {protein_hash}",
        f"Site universe hash: {site_hash}",
        f"Hashes consistent: {hashes_match}",
        f"Profiles complete: {profiles_complete}",
        f"Predicted classes backed by markers: {classes_backed}",
        "",
        "## Row counts",
    ]
    for stage, count in row_counts.items():
        lines.append(f"- {stage}: {count}")
    lines.extend(
        [
            "",
            "## Troubleshooting",
            "- hashes inconsistent -> verify predictions were made on the imputed tables of this run",
            "- profiles incomplete -> inspect max_missing and the KNN imputation step",
            "- few PTM sites -> inspect the ptmRS threshold and the proteome FASTA used for site mapping",
            "",
            "## Gate failures" if gate_failures else "## All gates passed",
        ]
    )
    for failure in gate_failures:
        lines.append(f"- {failure}")
    report_path = config.output_path("lopit_integrity_report.md")
    report_path.write_text("\n".join(lines))
    logging.info("Wrote integrity report to %s", report_path)
    metrics = {
        "hashes_match": hashes_match,
        "profiles_complete": profiles_complete,
        "classes_backed": classes_backed,
    }
    return run_status, metrics
