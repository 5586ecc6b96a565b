from __future__ import annotations

import logging
from typing import List

import pandas as pd

PEPTIDE_KEY = ["sequence", "modifications", "master_protein"]


def _sum_tags(grouped, tags: List[str]) -> pd.DataFrame:
    # min_count=1 keeps an all-missing tag missing instead of 0
    return grouped[tags].sum(min_count=1)


def _with_total(df: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    df["total_abundance"] = df[tags].sum(axis=1, min_count=1)
    return df


def psms_to_peptides(psms: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Sum PSM reporter abundances per modified peptide."""
    keyed = psms.copy()
    keyed["modifications"] = keyed["modifications"].fillna("")
    grouped = keyed.groupby(PEPTIDE_KEY, sort=True)
    peptides = _sum_tags(grouped, tags)
    peptides["n_psms"] = grouped.size()
    peptides = peptides.reset_index()
    peptides.index = [
        f"{seq}|{mods}" if mods else seq
        for seq, mods in zip(peptides["sequence"], peptides["modifications"])
    ]
    peptides.index.name = "peptide_id"
    logging.info("Aggregated %d PSMs into %d peptides", len(psms), len(peptides))
    return _with_total(peptides, tags)


def peptides_to_proteins(peptides: pd.DataFrame, tags: List[str], min_peptides: int = 1) -> pd.DataFrame:
    """Sum peptide reporter abundances per master protein."""
    grouped = peptides.groupby("master_protein", sort=True)
    proteins = _sum_tags(grouped, tags)
    proteins["n_peptides"] = grouped.size()
    proteins["n_psms"] = grouped["n_psms"].sum()
    proteins.index.name = "accession"
    before = len(proteins)
    proteins = proteins[proteins["n_peptides"] >= min_peptides].copy()
    logging.info(
        "Aggregated %d peptides into %d proteins (%d below %d peptides dropped)",
        len(peptides),
        len(proteins),
        before - len(proteins),
        min_peptides,
    )
    return _with_total(proteins, tags)


def psms_to_sites(psms: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Sum PSM reporter abundances per modified site.

    A PSM carrying several sites contributes its full abundance to each.
    """
    exploded = psms.explode("site_ids").rename(columns={"site_ids": "site_id"})
    exploded = exploded[exploded["site_id"].notna()]
    grouped = exploded.groupby("site_id", sort=True)
    sites = _sum_tags(grouped, tags)
    sites["master_protein"] = grouped["master_protein"].first()
    sites["n_psms"] = grouped.size()
    sites["n_peptides"] = grouped["sequence"].nunique()
    logging.info("Aggregated %d PSMs into %d sites", len(psms), len(sites))
    return _with_total(sites, tags)
