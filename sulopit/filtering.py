from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Set

import numpy as np
import pandas as pd

from .config import LopitConfig

CRAP_PREFIX = "cRAP"
NO_QUAN_LABELS = "NoQuanLabels"


def split_accessions(value) -> List[str]:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return []
    return [a.strip() for a in str(value).split(";") if a.strip()]


def is_contaminant(accession: str, crap: Set[str]) -> bool:
    return accession.startswith(CRAP_PREFIX) or accession in crap


def _record(steps: List[Dict], step: str, before: int, df: pd.DataFrame) -> None:
    steps.append({"step": step, "remaining": len(df), "removed": before - len(df)})
    logging.info("%s: kept %d of %d features", step, len(df), before)


def parse_features(
    df: pd.DataFrame,
    tags: List[str],
    crap_accessions: Iterable[str] = (),
    unique_master: bool = True,
    filter_crap: bool = True,
    filter_associated_crap: bool = True,
    steps: Optional[List[Dict]] = None,
):
    """Remove features unsuitable for quantification.

    Drops features without a master protein, features assigned to a
    contaminant, features sharing a protein group with a contaminant, features
    with more than one master protein and features carrying no reporter
    quantification. Returns the filtered frame together with one record per
    step.
    """
    steps = [] if steps is None else steps
    crap = set(crap_accessions)
    steps.append({"step": "input", "remaining": len(df), "removed": 0})

    masters = df["master_protein_accessions"].map(split_accessions)
    before = len(df)
    df = df[masters.map(len) > 0].copy()
    _record(steps, "no master protein", before, df)

    if filter_crap:
        before = len(df)
        masters = df["master_protein_accessions"].map(split_accessions)
        crap_master = masters.map(lambda accs: any(is_contaminant(a, crap) for a in accs))
        df = df[~crap_master]
        _record(steps, "cRAP master protein", before, df)

    if filter_associated_crap:
        before = len(df)
        associated = df["protein_accessions"].map(split_accessions)
        crap_associated = associated.map(lambda accs: any(is_contaminant(a, crap) for a in accs))
        df = df[~crap_associated]
        _record(steps, "associated cRAP protein", before, df)

    if unique_master:
        before = len(df)
        groups = pd.to_numeric(df["n_protein_groups"], errors="coerce")
        single = df["master_protein_accessions"].map(lambda v: len(split_accessions(v)) == 1)
        keep = np.where(groups.notna(), groups == 1, single)
        df = df[keep.astype(bool)]
        _record(steps, "non-unique master protein", before, df)

    before = len(df)
    no_labels = df["quan_info"].astype(str) == NO_QUAN_LABELS
    no_values = df[tags].isna().all(axis=1)
    df = df[~(no_labels | no_values)]
    _record(steps, "no quantification", before, df)

    df = df.copy()
    df["master_protein"] = df["master_protein_accessions"].map(lambda v: split_accessions(v)[0])
    return df.reset_index(drop=True), steps


def filter_tmt_psms(
    df: pd.DataFrame,
    tags: List[str],
    interference_threshold: float = 50.0,
    sn_threshold: float = 10.0,
    steps: Optional[List[Dict]] = None,
):
    """Drop PSMs with high co-isolation interference or low reporter signal."""
    steps = [] if steps is None else steps
    df = df.copy()
    df[tags] = df[tags].replace(0, np.nan)

    before = len(df)
    interference = pd.to_numeric(df["isolation_interference"], errors="coerce")
    df = df[interference.notna() & (interference <= interference_threshold)]
    _record(steps, f"interference > {interference_threshold:g}%", before, df)

    before = len(df)
    sn = pd.to_numeric(df["average_reporter_sn"], errors="coerce")
    df = df[sn.notna() & (sn >= sn_threshold)]
    _record(steps, f"average reporter S/N < {sn_threshold:g}", before, df)

    before = len(df)
    df = df[df[tags].notna().any(axis=1)]
    _record(steps, "all reporter values missing", before, df)
    return df.reset_index(drop=True), steps


def filter_report(steps: List[Dict], name: str, config: LopitConfig) -> pd.DataFrame:
    steps_df = pd.DataFrame(steps, columns=["step", "remaining", "removed"])
    lines = [
        f"# Feature filtering report: {name}",
        f"Run: {config.run_id}",
        "",
        "| step | remaining | removed |",
        "|---|---|---|",
    ]
    for row in steps_df.itertuples(index=False):
        lines.append(f"| {row.step} | {row.remaining} | {row.removed} |")
    report_path = config.output_path(f"lopit_filtering_{name}.md")
    report_path.write_text("\n".join(lines))
    steps_df.to_csv(config.output_path(f"lopit_filtering_{name}.csv"), index=False)
    logging.info("Wrote filtering report to %s", report_path)
    return steps_df
