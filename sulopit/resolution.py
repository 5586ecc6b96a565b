from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
import pandas as pd
from scipy.spatial.distance import cdist
from sklearn.decomposition import PCA

from .config import LopitConfig
from .markers import UNKNOWN, marker_summary
from .plots import plot_marker_profiles, plot_pca, plot_qsep


def run_pca(df: pd.DataFrame, tags: List[str], n_components: int = 2) -> Tuple[pd.DataFrame, List[float]]:
    n_components = min(n_components, len(tags), len(df))
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(df[tags].to_numpy())
    scores_df = pd.DataFrame(
        scores, index=df.index, columns=[f"PC{n + 1}" for n in range(n_components)]
    )
    return scores_df, [float(v) for v in pca.explained_variance_ratio_]


def qsep(df: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Spatial resolution between marker classes.

    Entry (A, B) is the mean Euclidean distance between members of A and B
    divided by the mean distance within A, so the diagonal is 1 and larger
    values mean better separated classes.
    """
    markers = df[df["markers"] != UNKNOWN]
    classes = sorted(markers["markers"].unique())
    profiles = {c: markers.loc[markers["markers"] == c, tags].to_numpy() for c in classes}
    raw = pd.DataFrame(index=classes, columns=classes, dtype=float)
    for a in classes:
        for b in classes:
            raw.loc[a, b] = cdist(profiles[a], profiles[b]).mean()
    within = pd.Series(np.diag(raw.to_numpy()), index=classes)
    if (within <= 0).any():
        raise ValueError(f"Marker classes without within-class spread: {list(within[within <= 0].index)}")
    return raw.div(within, axis=0)


def resolution_report(df: pd.DataFrame, tags: List[str], name: str, config: LopitConfig):
    scores, explained = run_pca(df, tags)
    separation = qsep(df, tags)
    counts = marker_summary(df)
    off_diagonal = separation.to_numpy()[~np.eye(len(separation), dtype=bool)]
    lines = [
        f"# Spatial resolution report: {name}",
        f"Run: {config.run_id}",
        f"Features: {len(df)}",
        f"Marker classes: {len(counts)}",
        f"Explained variance PC1/PC2: {explained[0] * 100:.1f}% / {explained[1] * 100:.1f}%",
    ]
    if off_diagonal.size:
        lines.append(f"QSep median between-class distance: {float(np.median(off_diagonal)):.2f}")
        lines.append(f"QSep minimum between-class distance: {float(off_diagonal.min()):.2f}")
    lines.append("\n## Markers per class")
    for cls, n in counts.items():
        lines.append(f"- {cls}: {n}")
    lines.append("\n## Least resolved class pairs")
    pairs = separation.stack()
    pairs = pairs[[a != b for a, b in pairs.index]].sort_values()
    for (a, b), value in pairs.head(10).items():
        lines.append(f"- {a} vs {b}: {value:.2f}")
    report_path = config.output_path(f"lopit_resolution_{name}.md")
    report_path.write_text("\n".join(lines))
    separation.to_csv(config.output_path(f"lopit_qsep_{name}.csv"))
    plot_pca(scores, df["markers"], explained, f"{name} PCA", config.output_path("figures", f"pca_{name}.png"))
    plot_qsep(separation, f"{name} QSep", config.output_path("figures", f"qsep_{name}.png"))
    plot_marker_profiles(
        df, tags, f"{name} marker profiles", config.output_path("figures", f"marker_profiles_{name}.png")
    )
    logging.info("Wrote resolution report to %s", report_path)
    return scores, separation
