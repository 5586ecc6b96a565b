from __future__ import annotations

import collections
import logging
import re
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .config import LopitConfig

SITE_SCORE_RE = re.compile(r"^([A-Z])(\d+)\(([^)]+)\):\s*([-+]?\d*\.?\d+)$")

SiteScore = Tuple[str, int, float]


def parse_ptm_probabilities(value, ptm_name: str) -> Optional[List[SiteScore]]:
    """Parse a ptmRS best-site string into (residue, position, probability).

    ``"K5(Succinyl): 99.3; S9(Phospho): 12.1"`` with ``ptm_name="Succinyl"``
    gives ``[("K", 5, 99.3)]``. An empty cell gives ``[]``; a string with no
    recognisable site entry (e.g. "Too many isoforms") gives ``None``.
    """
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return []
    text = str(value).strip()
    if not text:
        return []
    sites: List[SiteScore] = []
    recognised = 0
    for part in text.split(";"):
        match = SITE_SCORE_RE.match(part.strip())
        if not match:
            continue
        recognised += 1
        residue, position, name, probability = match.groups()
        if name.strip().lower() == ptm_name.lower():
            sites.append((residue, int(position), float(probability)))
    if not recognised:
        return None
    return sites


def filter_ptm_scores(df: pd.DataFrame, ptm_name: str, threshold: float = 95.0):
    """Keep PSMs whose every ``ptm_name`` site is localised at >= threshold."""
    reasons = collections.Counter()
    keep = []
    sites_col = []
    for value in df["ptm_probabilities"]:
        sites = parse_ptm_probabilities(value, ptm_name)
        if sites is None:
            reasons["unparseable score"] += 1
            keep.append(False)
            sites_col.append([])
            continue
        if not sites:
            reasons["not modified"] += 1
            keep.append(False)
            sites_col.append([])
            continue
        if min(p for _, _, p in sites) < threshold:
            reasons["poorly localised"] += 1
            keep.append(False)
            sites_col.append([])
            continue
        keep.append(True)
        sites_col.append([(residue, position) for residue, position, _ in sites])
    out = df.copy()
    out["ptm_sites"] = pd.Series(sites_col, index=out.index, dtype=object)
    out = out[pd.Series(keep, index=out.index, dtype=bool)].reset_index(drop=True)
    logging.info(
        "ptmRS filter kept %d of %d PSMs (%s)",
        len(out),
        len(df),
        ", ".join(f"{k}: {v}" for k, v in reasons.items()) or "no rejections",
    )
    return out, dict(reasons)


def site_id(accession: str, residue: str, position: int) -> str:
    return f"{accession}_{residue}{position}"


def add_ptm_positions(df: pd.DataFrame, proteome: Dict[str, str]):
    """Map peptide-level sites onto positions in the master protein.

    Peptides are located at their first occurrence in the protein sequence.
    PSMs whose master protein is absent from the proteome, whose peptide is
    not found, or whose modified residue disagrees with the sequence are
    dropped and counted.
    """
    reasons = collections.Counter()
    keep = []
    protein_positions = []
    site_ids = []
    for _, row in df.iterrows():
        accession = row["master_protein"]
        peptide = row["sequence"]
        protein_seq = proteome.get(accession)
        if protein_seq is None:
            reasons["protein not in proteome"] += 1
            keep.append(False)
            protein_positions.append([])
            site_ids.append([])
            continue
        start = protein_seq.find(peptide)
        if start < 0:
            reasons["peptide not in protein"] += 1
            keep.append(False)
            protein_positions.append([])
            site_ids.append([])
            continue
        positions = []
        ids = []
        mismatch = False
        for residue, pep_pos in row["ptm_sites"]:
            if pep_pos < 1 or pep_pos > len(peptide) or peptide[pep_pos - 1] != residue:
                mismatch = True
                break
            prot_pos = start + pep_pos
            positions.append(prot_pos)
            ids.append(site_id(accession, residue, prot_pos))
        if mismatch:
            reasons["residue mismatch"] += 1
            keep.append(False)
            protein_positions.append([])
            site_ids.append([])
            continue
        keep.append(True)
        protein_positions.append(positions)
        site_ids.append(ids)
    out = df.copy()
    out["protein_positions"] = pd.Series(protein_positions, index=out.index, dtype=object)
    out["site_ids"] = pd.Series(site_ids, index=out.index, dtype=object)
    out = out[pd.Series(keep, index=out.index, dtype=bool)].reset_index(drop=True)
    if reasons:
        logging.warning(
            "Dropped %d PSMs while mapping sites: %s",
            sum(reasons.values()),
            ", ".join(f"{k}: {v}" for k, v in reasons.items()),
        )
    return out, dict(reasons)


def ptm_report(
    scored: pd.DataFrame,
    score_rejects: Dict[str, int],
    positioned: pd.DataFrame,
    position_rejects: Dict[str, int],
    config: LopitConfig,
) -> None:
    n_sites = len({s for ids in positioned["site_ids"] for s in ids})
    n_proteins = positioned["master_protein"].nunique()
    multi = int((positioned["site_ids"].map(len) > 1).sum())
    lines = [
        f"# {config.ptm_name} site localisation report",
        f"Run: {config.run_id}",
        f"ptmRS threshold: {config.ptm_threshold:g}",
        f"PSMs passing localisation: {len(scored)}",
        f"PSMs mapped to protein positions: {len(positioned)}",
        f"Multiply modified PSMs: {multi}",
        f"Distinct sites: {n_sites}",
        f"Proteins with sites: {n_proteins}",
        "",
        "## Rejected PSMs",
    ]
    for reason, count in list(score_rejects.items()) + list(position_rejects.items()):
        lines.append(f"- {reason}: {count}")
    report_path = config.output_path("lopit_ptm_report.md")
    report_path.write_text("\n".join(lines))
    logging.info("Wrote PTM report to %s", report_path)
