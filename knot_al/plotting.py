"""
Plotting utilities for visualizing active learning results.

Everything here only consumes IterationResult history and tables; nothing
feeds back into the loop.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from sklearn.decomposition import PCA
from sklearn.neighbors import KNeighborsRegressor
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from knot_al.data_loader import FeatureTable
from knot_al.predictor_trainer import PredictorTrainer
from knot_al.round_tracker import IterationResult
from knot_al.uncertainty import max_entropy, predictive_entropy

logger = logging.getLogger(__name__)

FONT_SIZE = 14

METRIC_LABELS = {
    "accuracy": "Accuracy",
    "macro_auc": "Macro AUC",
    "mean_negentropy": "Mean negentropy",
}


def _finish(fig: plt.Figure, save_path: Optional[Path], show_plot: bool) -> plt.Figure:
    fig.tight_layout()
    if save_path is not None:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=200, bbox_inches="tight")
        logger.info(f"Figure saved to {save_path}")
    if show_plot:
        plt.show()
    else:
        plt.close(fig)
    return fig


def _pick_rounds(history: Sequence[IterationResult], max_lines: int) -> List[IterationResult]:
    if len(history) <= max_lines:
        return list(history)
    positions = np.unique(np.linspace(0, len(history) - 1, max_lines).round().astype(int))
    return [history[i] for i in positions]


def plot_roc_curves(
    history: Sequence[IterationResult],
    max_lines: int = 6,
    save_path: Optional[Path] = None,
    show_plot: bool = False,
) -> plt.Figure:
    """
    One-vs-rest ROC curves, one panel per class and one line per round.

    Args:
        history: Iteration results to draw from
        max_lines: Maximum number of rounds drawn per panel (evenly spaced)
        save_path: Path to save the plot. If None, plot is not saved.
        show_plot: Whether to display the plot
    """
    if not history:
        raise ValueError("No iteration results to plot.")
    classes = history[0].evaluation.classes
    rounds = _pick_rounds(history, max_lines)
    colors = sns.color_palette("viridis", n_colors=len(rounds))

    fig, axes = plt.subplots(1, len(classes), figsize=(5 * len(classes), 5), squeeze=False)
    for ax, label in zip(axes[0], classes):
        for color, result in zip(colors, rounds):
            fpr, tpr, _ = result.evaluation.roc_curves[label]
            if len(fpr) == 0:
                continue
            ax.plot(
                fpr,
                tpr,
                color=color,
                linewidth=2,
                label=f"iter {result.iteration} (AUC={result.evaluation.auc[label]:.3f})",
            )
        ax.plot([0, 1], [0, 1], "k--", linewidth=1)
        ax.set_title(label, fontsize=FONT_SIZE)
        ax.set_xlabel("False Positive Rate")
        ax.set_ylabel("True Positive Rate")
        ax.legend(loc="lower right", fontsize=8)
    return _finish(fig, save_path, show_plot)


def plot_confusion_matrix(
    result: IterationResult,
    save_path: Optional[Path] = None,
    show_plot: bool = False,
) -> plt.Figure:
    """Annotated confusion matrix of one round (rows true, columns predicted)."""
    evaluation = result.evaluation
    fig, ax = plt.subplots(figsize=(6, 5))
    sns.heatmap(
        pd.DataFrame(evaluation.confusion, index=evaluation.classes, columns=evaluation.classes),
        annot=True,
        fmt="d",
        cmap="Blues",
        cbar=False,
        ax=ax,
    )
    ax.set_xlabel("Predicted label")
    ax.set_ylabel("True label")
    ax.set_title(
        f"Iteration {result.iteration} (accuracy {evaluation.accuracy:.3f})",
        fontsize=FONT_SIZE,
    )
    return _finish(fig, save_path, show_plot)


def plot_metric_trends(
    rounds: pd.DataFrame,
    metrics: Optional[List[str]] = None,
    save_path: Optional[Path] = None,
    show_plot: bool = False,
) -> plt.Figure:
    """
    Line plots of per-round metrics against training-set size.

    Args:
        rounds: RoundTracker.to_frame() output
        metrics: Columns to plot. Defaults to accuracy, macro AUC and mean negentropy.
    """
    metrics = metrics or list(METRIC_LABELS)
    missing = [metric for metric in metrics if metric not in rounds.columns]
    if missing:
        raise ValueError(f"Metrics not found in rounds: {missing}")

    fig, axes = plt.subplots(1, len(metrics), figsize=(6 * len(metrics), 4), squeeze=False)
    for ax, metric in zip(axes[0], metrics):
        ax.plot(rounds["train_size"], rounds[metric], marker="o", linewidth=2)
        ax.set_xlabel("Training set size")
        ax.set_ylabel(METRIC_LABELS.get(metric, metric))
        ax.set_title(METRIC_LABELS.get(metric, metric), fontsize=FONT_SIZE)
        ax.grid(True, alpha=0.3)
    return _finish(fig, save_path, show_plot)


def plot_entropy_histograms(
    history: Sequence[IterationResult],
    max_panels: int = 6,
    bins: int = 30,
    save_path: Optional[Path] = None,
    show_plot: bool = False,
) -> plt.Figure:
    """
    Candidate-pool entropy per round, with the lowest selected entropy marked.
    """
    rounds = [result for result in history if result.selection is not None]
    if not rounds:
        raise ValueError("No rounds with a selection to plot.")
    rounds = _pick_rounds(rounds, max_panels)
    n_classes = len(rounds[0].evaluation.classes)

    fig, axes = plt.subplots(
        1, len(rounds), figsize=(4 * len(rounds), 3.5), sharey=True, squeeze=False
    )
    for ax, result in zip(axes[0], rounds):
        selection = result.selection
        sns.histplot(selection.pool_entropy, bins=bins, ax=ax, color="steelblue")
        if len(selection):
            ax.axvline(float(np.min(selection.entropy)), color="crimson", linestyle="--")
        ax.set_xlim(0, max_entropy(n_classes))
        ax.set_title(f"Iteration {result.iteration}")
        ax.set_xlabel("Predictive entropy")
    return _finish(fig, save_path, show_plot)


def plot_decision_surface(
    model: Any,
    trainer: PredictorTrainer,
    labelled: FeatureTable,
    unlabelled: FeatureTable,
    train_paths: Optional[Sequence[str]] = None,
    selected_paths: Optional[Sequence[str]] = None,
    highlight_paths: Optional[Sequence[str]] = None,
    n_neighbors: int = 15,
    resolution: int = 150,
    random_state: int = 0,
    save_path: Optional[Path] = None,
    show_plot: bool = False,
) -> plt.Figure:
    """
    2-D PCA projection of all rows over a background of local model entropy.

    The projection is fit on labelled and unlabelled rows together, so it does
    not depend on the model. The background at each grid point is the mean
    predictive entropy of the nearest projected rows.

    Args:
        model: Fitted classifier
        trainer: Trainer used to produce class-ordered probabilities
        labelled: Labelled table (coloured by class)
        unlabelled: Unlabelled table (grey)
        train_paths: Labelled paths drawn as filled markers (others hollow)
        selected_paths: Unlabelled paths already selected and pseudolabelled
        highlight_paths: Paths to mark, e.g. the latest selection
        n_neighbors: Neighbours averaged for the entropy background
        resolution: Grid points per axis
        random_state: Seed for PCA
    """
    all_features = np.vstack([labelled.features, unlabelled.features])
    all_paths = list(labelled.paths) + list(unlabelled.paths)
    if len(all_features) < 3:
        raise ValueError("At least three rows are needed for a 2-D projection.")

    projector = make_pipeline(
        StandardScaler(), PCA(n_components=2, random_state=random_state)
    )
    projected = projector.fit_transform(all_features)
    entropies = predictive_entropy(trainer.predict_proba(model, all_features))

    knn = KNeighborsRegressor(n_neighbors=min(n_neighbors, len(projected)))
    knn.fit(projected, entropies)

    pad = 0.05 * (projected.max(axis=0) - projected.min(axis=0) + 1e-9)
    lo = projected.min(axis=0) - pad
    hi = projected.max(axis=0) + pad
    xx, yy = np.meshgrid(
        np.linspace(lo[0], hi[0], resolution), np.linspace(lo[1], hi[1], resolution)
    )
    surface = knn.predict(np.c_[xx.ravel(), yy.ravel()]).reshape(xx.shape)

    fig, ax = plt.subplots(figsize=(8, 7))
    contour = ax.contourf(
        xx,
        yy,
        surface,
        levels=np.linspace(0.0, max_entropy(len(trainer.classes)), 21),
        cmap="magma",
        alpha=0.8,
        extend="both",
    )
    fig.colorbar(contour, ax=ax, label="Local predictive entropy")

    n_labelled = len(labelled)
    selected = set(selected_paths or [])
    is_selected = np.array([path in selected for path in unlabelled.paths], dtype=bool)
    unlabelled_points = projected[n_labelled:]
    ax.scatter(
        unlabelled_points[~is_selected, 0],
        unlabelled_points[~is_selected, 1],
        s=6,
        color="lightgrey",
        alpha=0.5,
        label="unlabelled",
    )
    if is_selected.any():
        ax.scatter(
            unlabelled_points[is_selected, 0],
            unlabelled_points[is_selected, 1],
            s=24,
            marker="^",
            color="white",
            edgecolor="black",
            label="pseudolabelled (train)",
        )

    train_set = set(train_paths or [])
    palette = sns.color_palette("Set2", n_colors=len(trainer.classes))
    labelled_points = projected[:n_labelled]
    is_train = np.array([path in train_set for path in labelled.paths], dtype=bool)
    for color, label in zip(palette, trainer.classes):
        is_class = np.asarray(labelled.labels).astype(str) == label
        ax.scatter(
            labelled_points[is_class & is_train, 0],
            labelled_points[is_class & is_train, 1],
            s=30,
            color=color,
            edgecolor="black",
            label=f"{label} (train)",
        )
        ax.scatter(
            labelled_points[is_class & ~is_train, 0],
            labelled_points[is_class & ~is_train, 1],
            s=20,
            facecolor="none",
            edgecolor=color,
            label=f"{label} (test)",
        )

    if highlight_paths:
        highlight = set(highlight_paths)
        mask = np.array([path in highlight for path in all_paths], dtype=bool)
        ax.scatter(
            projected[mask, 0],
            projected[mask, 1],
            s=60,
            marker="x",
            color="cyan",
            label="selected",
        )

    ax.set_xlabel("PC 1")
    ax.set_ylabel("PC 2")
    ax.set_title("Decision surface (local entropy)", fontsize=FONT_SIZE)
    ax.legend(loc="best", fontsize=8)
    return _finish(fig, save_path, show_plot)


def generate_report(
    history: Sequence[IterationResult],
    rounds: pd.DataFrame,
    output_dir: Path,
    trainer: Optional[PredictorTrainer] = None,
    labelled: Optional[FeatureTable] = None,
    unlabelled: Optional[FeatureTable] = None,
    final_result: Optional[IterationResult] = None,
    train_paths: Optional[Sequence[str]] = None,
    selected_paths: Optional[Sequence[str]] = None,
    random_state: int = 0,
) -> Dict[str, Path]:
    """
    Write the standard figure set into ``output_dir``.

    The decision surface is drawn only when trainer and tables are given.

    Returns:
        Mapping of figure name to file path
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    figures: Dict[str, Path] = {}
    if not history:
        logger.warning("No iterations to report; skipping figures.")
        return figures

    last = final_result or history[-1]

    roc_history = list(history)
    if final_result is not None:
        roc_history.append(final_result)
    figures["roc_curves"] = output_dir / "roc_curves.png"
    plot_roc_curves(roc_history, save_path=figures["roc_curves"])

    figures["confusion_matrix"] = output_dir / "confusion_matrix.png"
    plot_confusion_matrix(last, save_path=figures["confusion_matrix"])

    figures["metric_trends"] = output_dir / "metric_trends.png"
    plot_metric_trends(rounds, save_path=figures["metric_trends"])

    figures["entropy_histograms"] = output_dir / "entropy_histograms.png"
    plot_entropy_histograms(history, save_path=figures["entropy_histograms"])

    if trainer is not None and labelled is not None and unlabelled is not None:
        figures["decision_surface"] = output_dir / "decision_surface.png"
        plot_decision_surface(
            last.model,
            trainer,
            labelled,
            unlabelled,
            train_paths=train_paths,
            selected_paths=selected_paths,
            highlight_paths=history[-1].selection.paths
            if history[-1].selection is not None
            else None,
            random_state=random_state,
            save_path=figures["decision_surface"],
        )

    return figures
