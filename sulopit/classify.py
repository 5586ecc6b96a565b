from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.metrics import f1_score
from sklearn.model_selection import GridSearchCV, StratifiedKFold, StratifiedShuffleSplit
from sklearn.svm import SVC

from .config import LopitConfig
from .markers import UNKNOWN


def _svc(seed: int, **params) -> SVC:
    return SVC(kernel="rbf", probability=True, class_weight="balanced", random_state=seed, **params)


def optimise_svm(
    X: np.ndarray,
    y: np.ndarray,
    cost: Sequence[float],
    sigma: Sequence[float],
    times: int = 100,
    test_size: float = 0.2,
    cv_folds: int = 5,
    seed: int = 7,
) -> Tuple[Dict[str, float], pd.DataFrame]:
    """Choose C and gamma by repeated stratified splitting of the markers.

    Each repetition holds out ``test_size`` of the markers, grid-searches the
    remainder by macro F1 and scores the winner on the held-out set. The
    parameters that win most often are returned, ties going to the higher
    mean held-out F1.
    """
    smallest = Counter(y).most_common()[-1][1]
    folds = min(cv_folds, int(np.floor(smallest * (1 - test_size))))
    if folds < 2:
        raise RuntimeError(
            f"Too few markers in the smallest class ({smallest}) for {cv_folds}-fold optimisation"
        )
    splitter = StratifiedShuffleSplit(n_splits=times, test_size=test_size, random_state=seed)
    grid = {"C": list(cost), "gamma": list(sigma)}
    rows = []
    for rep, (train_idx, test_idx) in enumerate(splitter.split(X, y)):
        search = GridSearchCV(
            _svc(seed),
            grid,
            scoring="f1_macro",
            cv=StratifiedKFold(n_splits=folds, shuffle=True, random_state=seed + rep),
        )
        search.fit(X[train_idx], y[train_idx])
        predicted = search.predict(X[test_idx])
        rows.append(
            {
                "repetition": rep,
                "C": search.best_params_["C"],
                "gamma": search.best_params_["gamma"],
                "cv_f1": search.best_score_,
                "test_f1": f1_score(y[test_idx], predicted, average="macro"),
            }
        )
    results = pd.DataFrame(rows)
    summary = results.groupby(["C", "gamma"]).agg(wins=("repetition", "size"), mean_f1=("test_f1", "mean"))
    best = summary.sort_values(["wins", "mean_f1"], ascending=False).index[0]
    params = {"C": float(best[0]), "gamma": float(best[1])}
    logging.info(
        "SVM optimisation over %d repetitions chose C=%g gamma=%g (median F1 %.3f)",
        times,
        params["C"],
        params["gamma"],
        results["test_f1"].median(),
    )
    return params, results


def train_svm(X: np.ndarray, y: np.ndarray, params: Dict[str, float], seed: int = 7) -> SVC:
    model = _svc(seed, **params)
    model.fit(X, y)
    return model


def marker_matrix(df: pd.DataFrame, tags: List[str]) -> Tuple[np.ndarray, np.ndarray]:
    markers = df[df["markers"] != UNKNOWN]
    return markers[tags].to_numpy(), markers["markers"].to_numpy()


def predict_localisation(model: SVC, df: pd.DataFrame, tags: List[str]) -> pd.DataFrame:
    """Add ``svm`` and ``svm_score``; markers keep their class with score 1."""
    out = df.copy()
    if out.empty:
        out["svm"] = pd.Series(dtype=object)
        out["svm_score"] = pd.Series(dtype=float)
        return out
    probabilities = model.predict_proba(out[tags].to_numpy())
    best = probabilities.argmax(axis=1)
    out["svm"] = model.classes_[best]
    out["svm_score"] = probabilities[np.arange(len(out)), best]
    if "markers" in out.columns:
        is_marker = out["markers"] != UNKNOWN
        out.loc[is_marker, "svm"] = out.loc[is_marker, "markers"]
        out.loc[is_marker, "svm_score"] = 1.0
    return out


def score_thresholds(pred: pd.DataFrame, quantile: float = 0.5) -> Dict[str, float]:
    """Per-class score quantile over the non-marker predictions."""
    if "markers" in pred.columns:
        unlabelled = pred[pred["markers"] == UNKNOWN]
    else:
        unlabelled = pred
    thresholds = unlabelled.groupby("svm")["svm_score"].quantile(quantile).to_dict()
    return {cls: float(v) for cls, v in thresholds.items()}


def apply_thresholds(pred: pd.DataFrame, thresholds: Dict[str, float]) -> pd.DataFrame:
    out = pred.copy()
    cutoff = out["svm"].map(thresholds).fillna(0.0)
    out["svm_final"] = np.where(out["svm_score"] >= cutoff, out["svm"], UNKNOWN)
    if "markers" in out.columns:
        is_marker = out["markers"] != UNKNOWN
        out.loc[is_marker, "svm_final"] = out.loc[is_marker, "markers"]
    return out


def classification_report(
    params: Dict[str, float],
    optimisation: pd.DataFrame,
    thresholds: Dict[str, Dict[str, float]],
    predictions: Dict[str, pd.DataFrame],
    config: LopitConfig,
) -> None:
    lines = [
        "# SVM classification report",
        f"Run: {config.run_id}",
        f"Chosen parameters: C={params['C']:g}, gamma={params['gamma']:g}",
        f"Optimisation repetitions: {len(optimisation)}",
        f"Held-out macro F1 median/IQR: {optimisation['test_f1'].median():.3f} / "
        f"{optimisation['test_f1'].quantile(0.75) - optimisation['test_f1'].quantile(0.25):.3f}",
        f"Score threshold quantile: {config.threshold_quantile:g}",
    ]
    for name, pred in predictions.items():
        lines.append(f"\n## Per-class score thresholds: {name}")
        for cls, value in sorted(thresholds.get(name, {}).items()):
            lines.append(f"- {cls}: {value:.3f}")
        lines.append(f"\n## Final localisations: {name}")
        for cls, n in pred["svm_final"].value_counts().sort_index().items():
            lines.append(f"- {cls}: {n}")
    optimisation.to_csv(config.output_path("lopit_svm_optimisation.csv"), index=False)
    report_path = config.output_path("lopit_classification_report.md")
    report_path.write_text("\n".join(lines))
    logging.info("Wrote classification report to %s", report_path)
