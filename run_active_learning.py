"""
Active learning loop for wood knot defect classification.

Trains a classifier on a small labelled seed set, selects the most uncertain
unlabelled images each round, pseudolabels them from a reference table and
tracks test-set performance as the training set grows.

Run with Hydra, e.g.::

    python run_active_learning.py data.labelled_path=labelled.csv \
        data.unlabelled_path=unlabelled.csv data.reference_path=pseudolabels.csv
"""

import json
import logging
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any

import hydra
from hydra.utils import instantiate
from omegaconf import DictConfig, ListConfig, OmegaConf

from knot_al.config import (
    ActiveLearningSettings,
    DataConfig,
    ensure_resolvers,
    resolve_classes,
)
from knot_al.data_loader import DataLoader
from knot_al.experiment import ActiveLearningExperiment
from knot_al.initial_selection_strategies import PerClassInitialSelection
from knot_al.plotting import generate_report

logger = logging.getLogger(__name__)

ensure_resolvers()


def run_one_experiment(cfg: DictConfig) -> dict[str, Any]:
    """
    Run a single experiment with given configuration.

    Args:
        cfg: Composed Hydra configuration

    Returns:
        Dictionary containing the results summary
    """
    settings = ActiveLearningSettings.from_cfg(cfg.al_settings)
    if settings.output_dir is None:
        raise ValueError("al_settings.output_dir must be provided in the config.")
    output_dir_path = Path(settings.output_dir)
    output_dir_path.mkdir(parents=True, exist_ok=True)
    logger.info(
        "RUN_CONTEXT seed=%s output_dir=%s mu=%s sigma=%s",
        settings.seed,
        output_dir_path,
        settings.mu,
        settings.sigma,
    )

    # stage reported for errors that do not carry their own
    current_stage = "config"
    try:
        classes = resolve_classes(cfg)
        data_cfg = DataConfig.from_cfg(cfg.data)

        current_stage = "load"
        data = DataLoader(
            labelled_path=data_cfg.labelled_path,
            unlabelled_path=data_cfg.unlabelled_path,
            reference_path=data_cfg.reference_path,
            feature_columns=data_cfg.feature_columns,
            classes=classes,
            path_column=data_cfg.path_column,
            label_column=data_cfg.label_column,
            reference_label_column=data_cfg.reference_label_column,
        ).load()

        # Instantiate components
        current_stage = "setup"
        predictor = instantiate(cfg.classifier)
        query_strategy = instantiate(cfg.query_strategy)
        feature_transforms = make_steps(cfg.feature_transforms.steps)
        initial_selection_strategy = PerClassInitialSelection(
            seed=settings.seed,
            examples_per_class=settings.initial_examples_per_class,
            classes=classes,
        )

        experiment = ActiveLearningExperiment(
            data=data,
            initial_selection_strategy=initial_selection_strategy,
            query_strategy=query_strategy,
            predictor=predictor,
            examples_per_iteration=settings.examples_per_iteration,
            random_seed=settings.seed,
            feature_transforms=feature_transforms,
            missing_label_policy=settings.missing_label_policy,
            allow_partial_batch=settings.allow_partial_batch,
            monte_carlo_samples=settings.monte_carlo_samples,
            show_progress=settings.show_progress,
        )

        current_stage = "run"
        history = experiment.run(
            num_iterations=settings.num_iterations,
            evaluate_final=settings.evaluate_final,
        )

        # Save individual results
        current_stage = "save"
        tracker = experiment.round_tracker
        tracker.save_to_csv(output_path=output_dir_path / "results.csv")
        tracker.save_predictions(output_path=output_dir_path / "predictions.csv")
        summary_metrics = (
            tracker.compute_summary_metrics() if tracker.rounds else {}
        )
    except Exception as exc:
        stage = getattr(exc, "stage", current_stage)
        logger.error("Run halted at stage '%s': %s", stage, exc)
        error_path = output_dir_path / "error.txt"
        error_details = [
            f"timestamp: {datetime.now().isoformat(timespec='seconds')}",
            f"seed: {settings.seed}",
            f"stage: {stage}",
            "",
            traceback.format_exc(),
        ]
        error_path.write_text("\n".join(error_details))
        raise

    final = experiment.final_result
    final_state = experiment.final_state
    summary = {
        "query_strategy": query_strategy.name,
        "predictor": predictor.__class__.__name__,
        "initial_selection": initial_selection_strategy.name,
        "feature_transforms": [name for name, _ in feature_transforms],
        "classes": classes,
        "seed": settings.seed,
        "initial_examples_per_class": settings.initial_examples_per_class,
        "examples_per_iteration": settings.examples_per_iteration,
        "num_iterations": settings.num_iterations,
        **summary_metrics,
        "completed_rounds": len(history),
        "test_size": len(experiment.test_set),
        "final_train_size": len(final_state.training_set),
        "n_already_evaluated": len(final_state.already_evaluated),
        "final_evaluation": final.evaluation.metrics() if final is not None else None,
    }

    # Persist summary for downstream aggregation
    summary_path = output_dir_path / "summary.json"
    summary_path.write_text(json.dumps(summary, indent=2))

    if settings.make_plots and history:
        labelled_paths = set(data.labelled.paths)
        labelled_train_paths = [
            path for path in final_state.training_set.paths if path in labelled_paths
        ]
        generate_report(
            history,
            tracker.to_frame(),
            output_dir_path / "figures",
            trainer=experiment.trainer,
            labelled=data.labelled,
            unlabelled=data.unlabelled,
            final_result=final,
            train_paths=labelled_train_paths,
            selected_paths=sorted(final_state.already_evaluated),
            random_state=settings.seed,
        )

    return summary


def make_steps(steps_cfg: ListConfig | None) -> list[tuple[str, Any]]:
    """
    Make a list of (name, transformer) steps from a list of step configurations.

    Args:
        steps_cfg: List of step configurations

    Returns:
        List of (name, transformer) steps
    """
    steps: list[tuple[str, Any]] = []
    for step_cfg in steps_cfg or []:
        step_dict = OmegaConf.to_container(step_cfg, resolve=True)
        name = step_dict.pop("id")
        transformer = instantiate(step_dict)
        steps.append((name, transformer))
    return steps


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    """Hydra entrypoint."""
    logger.info("Config:\n%s", OmegaConf.to_yaml(cfg))
    run_one_experiment(cfg)


if __name__ == "__main__":
    main()
