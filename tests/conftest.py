import numpy as np
import pandas as pd
import pytest

from sulopit.config import LopitConfig

TAGS = ["126", "127N", "127C", "128N", "128C", "129N"]
COMPARTMENTS = {
    "NUCLEUS": [8.0, 4.0, 1.0, 1.0, 1.0, 1.0],
    "CYTOSOL": [1.0, 1.0, 8.0, 4.0, 1.0, 1.0],
    "MITOCHONDRION": [1.0, 1.0, 1.0, 1.0, 4.0, 8.0],
}
GO_TERMS = {
    "NUCLEUS": ("GO:0005634", "nucleus"),
    "CYTOSOL": ("GO:0005829", "cytosol"),
    "MITOCHONDRION": ("GO:0005739", "mitochondrion"),
}
RESIDUES = list("ACDEFGHILMNPQSTVWY")


@pytest.fixture
def tags():
    return list(TAGS)


@pytest.fixture
def config(tmp_path):
    return LopitConfig(
        total_psm_path="total.txt",
        ptm_psm_path="ptm.txt",
        proteome_fasta="proteome.fasta",
        markers_path="markers.tsv",
        go_annotations_path="go.tsv",
        output_dir=str(tmp_path / "out"),
        tmt_tags=list(TAGS),
        run_id="test-run",
    )


def psm_row(sequence, master, abundances, tags=TAGS, **extra):
    row = {
        "Sequence": sequence,
        "Modifications": extra.pop("modifications", ""),
        "Master Protein Accessions": master,
        "Protein Accessions": extra.pop("proteins", master),
        "Number of Protein Groups": extra.pop("groups", 1),
        "Quan Info": extra.pop("quan_info", "Unique"),
        "Isolation Interference in Percent": extra.pop("interference", 10.0),
        "Average Reporter SN": extra.pop("sn", 50.0),
        "ptmRS Best Site Probabilities": extra.pop("ptmrs", None),
        "Spectrum File": extra.pop("spectrum_file", "run1.raw"),
    }
    for tag, value in zip(tags, abundances):
        row[f"Abundance {tag}"] = value
    row.update(extra)
    return row


def _random_peptide(rng, length=9, k_position=None):
    residues = list(rng.choice(RESIDUES, size=length))
    if k_position is not None:
        residues[k_position - 1] = "K"
    return "".join(residues) + "R"


@pytest.fixture
def dataset(tmp_path):
    """Synthetic two-experiment LOPIT dataset written as PD-style exports."""
    rng = np.random.default_rng(11)
    proteome = {}
    total_rows = []
    ptm_rows = []
    marker_rows = []
    go_rows = []
    idx = 0
    for compartment, pattern in COMPARTMENTS.items():
        for member in range(20):
            accession = f"P{idx:05d}"
            idx += 1
            peptides = [_random_peptide(rng) for _ in range(2)]
            site_peptide = _random_peptide(rng, k_position=4)
            proteome[accession] = "M" + "".join(peptides) + site_peptide + "G"
            scale = float(rng.uniform(1e3, 1e5))
            for peptide in peptides:
                noise = rng.normal(1.0, 0.05, size=len(TAGS)).clip(0.5)
                total_rows.append(psm_row(peptide, accession, list(np.array(pattern) * scale * noise)))
            if member < 14:
                marker_rows.append({"accession": accession, "marker": compartment})
            go_id, term = GO_TERMS[compartment]
            go_rows.append({"accession": accession, "go_id": go_id, "term": term})
            go_rows.append({"accession": accession, "go_id": "GO:0005515", "term": "protein binding"})
            if member % 2 == 0:
                noise = rng.normal(1.0, 0.05, size=len(TAGS)).clip(0.5)
                ptm_rows.append(
                    psm_row(
                        site_peptide,
                        accession,
                        list(np.array(pattern) * scale * noise),
                        modifications="1xSuccinyl [K4]",
                        ptmrs="K4(Succinyl): 99.5",
                    )
                )
    # rows the filters must remove
    total_rows.append(psm_row("AAAAKR", "cRAP001", [1e4] * len(TAGS)))
    total_rows.append(psm_row("CCCCKR", "P00000; P00001", [1e4] * len(TAGS), groups=2))
    total_rows.append(psm_row("DDDDKR", "P00002", [1e4] * len(TAGS), interference=80.0))
    total_rows[0]["Abundance 129N"] = np.nan
    ptm_rows.append(
        psm_row("EEEKEER", "P00004", [1e4] * len(TAGS), ptmrs="K4(Succinyl): 60.0")
    )

    paths = {
        "total": tmp_path / "total_psms.txt",
        "ptm": tmp_path / "ptm_psms.txt",
        "fasta": tmp_path / "proteome.fasta",
        "markers": tmp_path / "markers.tsv",
        "go": tmp_path / "go.tsv",
    }
    pd.DataFrame(total_rows).to_csv(paths["total"], sep="\t", index=False)
    pd.DataFrame(ptm_rows).to_csv(paths["ptm"], sep="\t", index=False)
    pd.DataFrame(marker_rows).to_csv(paths["markers"], sep="\t", index=False)
    pd.DataFrame(go_rows).to_csv(paths["go"], sep="\t", index=False)
    paths["fasta"].write_text(
        "".join(f">sp|{acc}|PROT{acc[1:]}_HUMAN test protein\n{seq}\n" for acc, seq in proteome.items())
    )
    return {k: str(v) for k, v in paths.items()}
