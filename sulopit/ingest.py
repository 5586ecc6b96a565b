from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

import pandas as pd
from Bio import SeqIO

CANONICAL_COLUMNS = {
    "sequence": ["Sequence", "Annotated Sequence", "Annotated.Sequence"],
    "modifications": ["Modifications"],
    "master_protein_accessions": ["Master Protein Accessions", "Master.Protein.Accessions"],
    "protein_accessions": ["Protein Accessions", "Protein.Accessions"],
    "n_protein_groups": ["Number of Protein Groups", "Number.of.Protein.Groups", "# Protein Groups"],
    "quan_info": ["Quan Info", "Quan.Info"],
    "isolation_interference": [
        "Isolation Interference in Percent",
        "Isolation.Interference.in.Percent",
        "Isolation Interference [%]",
    ],
    "average_reporter_sn": ["Average Reporter SN", "Average.Reporter.SN", "Average Reporter S/N"],
    "ptm_probabilities": ["ptmRS Best Site Probabilities", "ptmRS.Best.Site.Probabilities"],
    "spectrum_file": ["Spectrum File", "Spectrum.File"],
}
REQUIRED_COLUMNS = ["sequence", "master_protein_accessions"]

ABUNDANCE_RE = re.compile(r"^Abundance[ .:]+(?:F\d+[ .:]+)?(\w+)(?:[ .:,]+.*)?$")
FLANK_RE = re.compile(r"^\[[^\]]*\]\.|\.\[[^\]]*\]$")
UNIPROT_ID_RE = re.compile(r"^(?:sp|tr)\|([^|]+)\|")


def _choose_column(df: pd.DataFrame, candidates: Iterable[str]) -> Optional[str]:
    for name in candidates:
        if name in df.columns:
            return name
    return None


def clean_sequence(seq) -> str:
    """Strip flanking residues (``[K].PEPTIDE.[R]``) and upper-case."""
    if seq is None or (isinstance(seq, float) and pd.isna(seq)):
        return ""
    return FLANK_RE.sub("", str(seq).strip()).upper()


def abundance_columns(df: pd.DataFrame) -> Dict[str, str]:
    renamed = {}
    for col in df.columns:
        match = ABUNDANCE_RE.match(str(col))
        if match and "Normalized" not in col and "Ratio" not in col:
            renamed[col] = match.group(1)
    return renamed


def normalize_columns(df: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    renamed = {}
    for canonical, options in CANONICAL_COLUMNS.items():
        col = _choose_column(df, options)
        if col:
            renamed[col] = canonical
    renamed.update(abundance_columns(df))
    normalized = df.rename(columns=renamed)
    missing_required = [c for c in REQUIRED_COLUMNS if c not in normalized.columns]
    if missing_required:
        raise ValueError(f"PSM table is missing required columns: {missing_required}")
    missing_tags = [t for t in tags if t not in normalized.columns]
    if missing_tags:
        raise ValueError(f"PSM table is missing abundance columns for tags: {missing_tags}")
    for m in CANONICAL_COLUMNS:
        if m not in normalized.columns:
            normalized[m] = None
    normalized["sequence"] = normalized["sequence"].map(clean_sequence)
    for tag in tags:
        normalized[tag] = pd.to_numeric(normalized[tag], errors="coerce")
    return normalized[list(CANONICAL_COLUMNS.keys()) + list(tags)].reset_index(drop=True)


def load_table(input_path: str) -> pd.DataFrame:
    """Load a Proteome Discoverer export from parquet, csv or tab-separated text."""
    if input_path.endswith(".parquet"):
        df = pd.read_parquet(input_path)
    elif input_path.endswith(".csv"):
        df = pd.read_csv(input_path)
    else:
        df = pd.read_csv(input_path, sep="\t")
    logging.info("Loaded %s with %d rows", input_path, len(df))
    return df


def load_psms(input_path: str, tags: List[str]) -> pd.DataFrame:
    return normalize_columns(load_table(input_path), tags)


def fasta_accession(record_id: str) -> str:
    match = UNIPROT_ID_RE.match(record_id)
    if match:
        return match.group(1)
    return record_id.split("|")[0].split()[0]


def load_fasta(path: str) -> Dict[str, str]:
    """Map accession to sequence; UniProt ``sp|P12345|NAME`` headers give ``P12345``."""
    proteome = {}
    for record in SeqIO.parse(path, "fasta"):
        proteome[fasta_accession(record.id)] = str(record.seq).upper()
    logging.info("Loaded %d sequences from %s", len(proteome), path)
    return proteome
