import copy
import json
import os
import sys

import numpy as np
import pandas as pd
import pytest

from modeling.artifacts import load_workflow, save_workflow
from modeling.config_schema import ConfigValidationError
from runners.run_comparison import build_candidate_workflows, run_comparison
from runners.run_workflow import main, run_workflow


def _read_json(run_dir, name):
    with open(os.path.join(run_dir, name)) as f:
        return json.load(f)


def test_run_workflow_writes_artifacts(patch_dataset_loader, freeze_time, write_yaml,
                                       base_regression_config, regression_df):
    run_dir = run_workflow(write_yaml(base_regression_config))

    assert os.path.basename(run_dir).startswith("pytest_regression_20260104_123456_")
    for name in ["config.yaml", "metrics.json", "data_profile.json",
                 "workflow.joblib", "model_metadata.json"]:
        assert os.path.exists(os.path.join(run_dir, name)), name

    metrics = _read_json(run_dir, "metrics.json")
    assert metrics["target_type"] == "regression"
    assert metrics["resampling"]["method"] == "vfold"
    assert metrics["resampling"]["n_splits"] == 8
    assert metrics["best_params"] is None
    assert len(metrics["results"]["resamples"]["rmse"]["all"]) == 8
    assert set(metrics["results"]["test"]) == {"rmse", "rsq", "mae"}

    profile = _read_json(run_dir, "data_profile.json")
    assert profile["total_rows"] == len(regression_df)

    wf = load_workflow(os.path.join(run_dir, "workflow.joblib"))
    preds = wf.predict(regression_df)
    assert len(preds) == len(regression_df)

    meta = _read_json(run_dir, "model_metadata.json")
    assert meta["features"] == wf.feature_names_
    assert [step["id"] for step in meta["recipe"]] == ["log_1", "other_2", "dummy_3"]
    assert meta["model_type"] == "linear_reg"
    assert meta["task_type"] == "regression"
    # linear_reg takes no random_state, so no seed is recorded
    assert meta["seed"] is None
    assert meta["is_deterministic"]


def test_run_workflow_is_reproducible(patch_dataset_loader, write_yaml, tmp_path,
                                      base_regression_config):
    path = write_yaml(base_regression_config)
    first = run_workflow(path, output_dir=str(tmp_path / "a"))
    second = run_workflow(path, output_dir=str(tmp_path / "b"))

    assert _read_json(first, "metrics.json")["results"] == _read_json(second, "metrics.json")["results"]


def test_run_workflow_with_tuning(patch_dataset_loader, write_yaml, base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["model"] = {"type": "ridge", "params": {"ridge": {}}}
    cfg["recipe"].append({"step": "ns", "id": "spl", "columns": ["x2"], "deg_free": 3})
    cfg["tuning"] = {
        "method": "grid",
        "metric": "rmse",
        "grid": {"model__alpha": [0.01, 1.0], "recipe__spl__deg_free": [2, 4]},
    }
    cfg["metrics"]["save_plots"] = True

    run_dir = run_workflow(write_yaml(cfg))

    tuning = pd.read_csv(os.path.join(run_dir, "tuning.csv"))
    assert len(tuning) == 4 * 3
    best = _read_json(run_dir, "metrics.json")["best_params"]
    assert best[".config"].startswith("Model")
    assert set(best) == {".config", "model__alpha", "recipe__spl__deg_free"}

    wf = load_workflow(os.path.join(run_dir, "workflow.joblib"))
    assert wf.get_params()["recipe__spl__deg_free"] == best["recipe__spl__deg_free"]
    assert os.path.exists(os.path.join(run_dir, "resample_distribution.png"))
    assert os.path.exists(os.path.join(run_dir, "test_predictions.png"))
    assert os.path.exists(os.path.join(run_dir, "tuning_model_alpha.png"))


def test_run_workflow_classification_with_plots(patch_dataset_loader, write_yaml,
                                                base_classification_config):
    cfg = copy.deepcopy(base_classification_config)
    cfg["metrics"]["save_plots"] = True

    run_dir = run_workflow(write_yaml(cfg))

    metrics = _read_json(run_dir, "metrics.json")
    assert set(metrics["results"]["test"]) == {"accuracy", "f1", "mcc", "roc_auc"}
    assert os.path.exists(os.path.join(run_dir, "test_roc.png"))


def test_run_workflow_race_writes_log(patch_dataset_loader, write_yaml, base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["model"] = {"type": "ridge"}
    cfg["resampling"] = {"method": "vfold", "v": 6}
    cfg["tuning"] = {"method": "race_anova", "burn_in": 3,
                     "grid": {"model__alpha": [0.01, 100000.0]}}

    run_dir = run_workflow(write_yaml(cfg))

    race_log = _read_json(run_dir, "race_log.json")
    assert [entry[".config"] for entry in race_log] == ["Model02"]
    assert _read_json(run_dir, "metrics.json")["best_params"]["model__alpha"] == 0.01


def test_run_workflow_rejects_invalid_config(patch_dataset_loader, write_yaml, base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    cfg["model"]["type"] = "quantum_forest"
    with pytest.raises(ConfigValidationError):
        run_workflow(write_yaml(cfg))


def test_main_parses_arguments(patch_dataset_loader, write_yaml, monkeypatch, tmp_path,
                               base_regression_config):
    path = write_yaml(base_regression_config)
    monkeypatch.setattr(sys, "argv", ["run_workflow.py", "-c", path, "-o", str(tmp_path / "cli")])
    main()
    assert len(os.listdir(tmp_path / "cli")) == 1


def test_save_workflow_requires_fitted(tmp_path, base_regression_config):
    from sklearn.exceptions import NotFittedError
    from modeling.workflow import build_workflow

    with pytest.raises(NotFittedError):
        save_workflow(build_workflow(base_regression_config), str(tmp_path / "wf.joblib"))


@pytest.fixture
def comparison_config(base_regression_config):
    cfg = copy.deepcopy(base_regression_config)
    del cfg["model"]
    cfg["experiment"]["name"] = "pytest_comparison"
    cfg["comparison"] = {
        "metric": "rmse",
        "rope": 0.05,
        "models": [
            {"type": "linear_reg"},
            {"name": "ridge_strong", "type": "ridge", "params": {"alpha": 50.0}},
            {"type": "knn_reg", "params": {"n_neighbors": 5},
             "recipe": cfg["recipe"] + [{"step": "normalize", "columns": "all_numeric"}]},
        ],
    }
    return cfg


def test_build_candidate_workflows(comparison_config):
    workflows = build_candidate_workflows(comparison_config)
    assert list(workflows) == ["linear_reg", "ridge_strong", "knn_reg"]
    assert workflows["ridge_strong"].model.alpha == 50.0
    assert len(workflows["knn_reg"].recipe.steps) == 4

    comparison_config["comparison"]["models"].append({"type": "linear_reg"})
    with pytest.raises(ValueError, match="Duplicate model name"):
        build_candidate_workflows(comparison_config)


def test_run_comparison_writes_tables(patch_dataset_loader, write_yaml, comparison_config):
    comparison_config["metrics"]["save_plots"] = True
    run_dir = run_comparison(write_yaml(comparison_config))

    ranking = pd.read_csv(os.path.join(run_dir, "ranking.csv"))
    assert sorted(ranking["model"]) == ["knn_reg", "linear_reg", "ridge_strong"]
    assert ranking["rank"].tolist() == [1, 2, 3]

    paired = pd.read_csv(os.path.join(run_dir, "paired_tests.csv"))
    assert len(paired) == 3
    assert (paired["p_adj"] >= paired["p_value"]).all()

    bayes = pd.read_csv(os.path.join(run_dir, "bayesian_comparison.csv"))
    assert len(bayes) == 3
    assert bayes["rho"].between(0.2, 0.3).all()
    # rmse is minimised: the posterior difference is the paired difference flipped
    assert "mean_diff" not in bayes.columns
    assert np.allclose(bayes["diff_favouring_a"], -paired["mean_diff"])
    total = bayes["prob_a_better"] + bayes["prob_rope"] + bayes["prob_b_better"]
    assert total.round(6).eq(1.0).all()

    metrics = _read_json(run_dir, "metrics.json")
    assert set(metrics["results"]) == {"linear_reg", "ridge_strong", "knn_reg"}
    assert metrics["comparison_metric"] == "rmse"
    assert os.path.exists(os.path.join(run_dir, "model_comparison.png"))
    assert os.path.exists(os.path.join(run_dir, "posterior_linear_reg_vs_ridge_strong.png"))
