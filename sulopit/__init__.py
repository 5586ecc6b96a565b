"""
Succinyl-LOPIT analysis package.

The modules inside this package implement the linear analysis pipeline:
parse and filter PSMs, build protein and succinyl-site profiles, explore
spatial resolution, classify localisation with an SVM trained on marker
proteins and explore the focus compartment with GO enrichment. The public
entrypoint is ``sulopit.run.main``.
"""

__all__ = [
    "config",
    "ingest",
    "filtering",
    "ptm",
    "aggregate",
    "normalise",
    "impute",
    "markers",
    "resolution",
    "classify",
    "focus",
    "enrichment",
    "plots",
    "integrity",
]
