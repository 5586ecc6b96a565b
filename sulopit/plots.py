from __future__ import annotations

import logging
import pathlib
from typing import List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .markers import UNKNOWN

sns.set(font_scale=1.1)
sns.set_style("whitegrid")


def _save(fig, path: pathlib.Path) -> None:
    fig.patch.set_facecolor("white")
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    logging.info("Wrote figure %s", path)


def plot_pca(scores: pd.DataFrame, labels: pd.Series, explained: List[float], title: str, path) -> None:
    """Scatter of the first two components, unknowns in grey beneath the markers."""
    fig, ax = plt.subplots(figsize=(8, 6))
    unknown = labels == UNKNOWN
    ax.scatter(scores.loc[unknown, "PC1"], scores.loc[unknown, "PC2"], color="#cccccc", s=8, alpha=0.6, label=UNKNOWN)
    classes = sorted(labels[~unknown].unique())
    palette = sns.color_palette("tab20", max(len(classes), 1))
    for colour, cls in zip(palette, classes):
        mask = labels == cls
        ax.scatter(scores.loc[mask, "PC1"], scores.loc[mask, "PC2"], color=colour, s=16, alpha=0.9, label=cls)
    ax.set_xlabel(f"PC1 ({explained[0] * 100:.1f}%)")
    ax.set_ylabel(f"PC2 ({explained[1] * 100:.1f}%)")
    ax.axhline(color="grey", alpha=0.4, linestyle="--")
    ax.axvline(color="grey", alpha=0.4, linestyle="--")
    ax.set_title(title)
    ax.legend(bbox_to_anchor=(1.02, 1), loc="upper left", fontsize=8, frameon=False)
    _save(fig, path)


def plot_qsep(matrix: pd.DataFrame, title: str, path) -> None:
    fig, ax = plt.subplots(figsize=(1 + 0.6 * len(matrix), 0.6 * len(matrix) + 1))
    sns.heatmap(matrix, annot=True, fmt=".1f", cmap="viridis", ax=ax, cbar_kws={"label": "normalised distance"})
    ax.set_title(title)
    _save(fig, path)


def plot_marker_profiles(df: pd.DataFrame, tags: List[str], title: str, path) -> None:
    markers = df[df["markers"] != UNKNOWN]
    long = markers[tags + ["markers"]].melt(id_vars="markers", var_name="tag", value_name="abundance")
    classes = sorted(markers["markers"].unique())
    n_cols = 4
    n_rows = max(1, int(np.ceil(len(classes) / n_cols)))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(4 * n_cols, 3 * n_rows), sharey=True, squeeze=False)
    for ax, cls in zip(axes.flat, classes):
        sns.lineplot(
            data=long[long["markers"] == cls], x="tag", y="abundance", errorbar=("pi", 50), ax=ax, sort=False
        )
        ax.set_title(cls, fontsize=10)
        ax.set_xlabel("")
        ax.tick_params(axis="x", labelrotation=90, labelsize=7)
    for ax in list(axes.flat)[len(classes):]:
        ax.axis("off")
    fig.suptitle(title)
    _save(fig, path)


def plot_pwf(pwf: pd.DataFrame, title: str, path, bins: int = 20) -> None:
    """Binned selection rate against abundance, with the fitted weighting function."""
    ordered = pwf.sort_values("bias")
    bin_ids = np.arange(len(ordered)) * bins // max(len(ordered), 1)
    binned = ordered.groupby(bin_ids).agg(bias=("bias", "median"), selected=("selected", "mean"))
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.scatter(binned["bias"], binned["selected"], color="#213A8F", s=20, label="binned selection rate")
    ax.plot(ordered["bias"], ordered["pwf"], color="#e4572e", label="PWF")
    ax.set_xscale("log")
    ax.set_xlabel("abundance")
    ax.set_ylabel("proportion selected")
    ax.set_title(title)
    ax.legend(frameon=False)
    _save(fig, path)


def plot_enrichment(results: pd.DataFrame, title: str, path, top: int = 20) -> None:
    shown = results.sort_values("over_represented_padj").head(top).copy()
    if shown.empty:
        logging.warning("No GO terms to plot for %s", title)
        return
    shown["label"] = shown["term"].fillna(shown["category"])
    shown["-log10 adj. p"] = -np.log10(shown["over_represented_padj"].clip(lower=1e-300))
    fig, ax = plt.subplots(figsize=(8, 0.35 * len(shown) + 1.5))
    sns.barplot(data=shown, y="label", x="-log10 adj. p", color="#1ca641", ax=ax)
    ax.set_ylabel("")
    ax.set_title(title)
    _save(fig, path)


def plot_transitions(transitions: pd.DataFrame, title: str, path) -> None:
    fig, ax = plt.subplots(figsize=(1 + 0.6 * transitions.shape[1], 1 + 0.6 * transitions.shape[0]))
    sns.heatmap(transitions, annot=True, fmt="d", cmap="Blues", ax=ax)
    ax.set_xlabel("site localisation")
    ax.set_ylabel("protein localisation")
    ax.set_title(title)
    _save(fig, path)
