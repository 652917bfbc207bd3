"""
Smoke tests for the reporting figures.
"""

import pytest
from sklearn.linear_model import LogisticRegression

from knot_al.experiment import ActiveLearningExperiment
from knot_al.initial_selection_strategies import PerClassInitialSelection
from knot_al.plotting import (
    generate_report,
    plot_confusion_matrix,
    plot_decision_surface,
    plot_entropy_histograms,
    plot_metric_trends,
    plot_roc_curves,
)
from knot_al.query_strategies import MaxEntropy


@pytest.fixture
def finished_experiment(make_data):
    data = make_data(n_labelled_per_class=12, n_unlabelled=60, n_features=4)
    experiment = ActiveLearningExperiment(
        data=data,
        initial_selection_strategy=PerClassInitialSelection(
            seed=0, examples_per_class=4, classes=data.classes
        ),
        query_strategy=MaxEntropy(),
        predictor=LogisticRegression(max_iter=500),
        examples_per_iteration=5,
        random_seed=0,
        monte_carlo_samples=20,
        show_progress=False,
    )
    history = experiment.run(num_iterations=3)
    return experiment, history


def test_individual_plots_are_saved(finished_experiment, tmp_path):
    experiment, history = finished_experiment

    plot_roc_curves(history, save_path=tmp_path / "roc.png")
    plot_confusion_matrix(history[-1], save_path=tmp_path / "cm.png")
    plot_metric_trends(experiment.round_tracker.to_frame(), save_path=tmp_path / "trend.png")
    plot_entropy_histograms(history, save_path=tmp_path / "hist.png")
    plot_decision_surface(
        history[-1].model,
        experiment.trainer,
        experiment.data.labelled,
        experiment.data.unlabelled,
        train_paths=experiment.initial_training_set.paths,
        highlight_paths=history[-1].selection.paths,
        resolution=20,
        save_path=tmp_path / "surface.png",
    )

    for name in ("roc.png", "cm.png", "trend.png", "hist.png", "surface.png"):
        assert (tmp_path / name).stat().st_size > 0


def test_decision_surface_draws_selected_rows_as_own_layer(finished_experiment):
    experiment, history = finished_experiment
    selected = sorted(experiment.final_state.already_evaluated)

    fig = plot_decision_surface(
        history[-1].model,
        experiment.trainer,
        experiment.data.labelled,
        experiment.data.unlabelled,
        train_paths=experiment.initial_training_set.paths,
        selected_paths=selected,
        resolution=20,
    )

    ax = fig.axes[0]
    legend = [text.get_text() for text in ax.get_legend().get_texts()]
    assert "pseudolabelled (train)" in legend
    sizes = {
        collection.get_label(): len(collection.get_offsets())
        for collection in ax.collections
        if collection.get_label() in ("unlabelled", "pseudolabelled (train)")
    }
    assert sizes["pseudolabelled (train)"] == len(selected)
    assert sizes["unlabelled"] == len(experiment.data.unlabelled) - len(selected)


def test_generate_report(finished_experiment, tmp_path):
    experiment, history = finished_experiment

    figures = generate_report(
        history,
        experiment.round_tracker.to_frame(),
        tmp_path / "figures",
        trainer=experiment.trainer,
        labelled=experiment.data.labelled,
        unlabelled=experiment.data.unlabelled,
        final_result=experiment.final_result,
    )

    assert set(figures) == {
        "roc_curves",
        "confusion_matrix",
        "metric_trends",
        "entropy_histograms",
        "decision_surface",
    }
    assert all(path.exists() for path in figures.values())


def test_report_without_tables_skips_decision_surface(finished_experiment, tmp_path):
    experiment, history = finished_experiment

    figures = generate_report(history, experiment.round_tracker.to_frame(), tmp_path)

    assert "decision_surface" not in figures
    assert len(figures) == 4


def test_empty_history_writes_nothing(tmp_path):
    assert generate_report([], None, tmp_path) == {}


def test_unknown_metric_rejected(finished_experiment):
    experiment, _ = finished_experiment
    with pytest.raises(ValueError, match="Metrics not found"):
        plot_metric_trends(experiment.round_tracker.to_frame(), metrics=["f1"])
