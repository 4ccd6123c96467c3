import pytest
import pandas as pd
import numpy as np


@pytest.fixture(scope="session")
def seed():
    return 42


@pytest.fixture
def regression_df(seed):
    """
    Small deterministic housing-style frame.
    Includes:
      - outcome (numeric regression target)
      - size (positive, log-transformable)
      - group (nominal with one rare level)
      - bldg (nominal)
      - x1, x2 numeric predictors
    """
    rng = np.random.default_rng(seed)
    n = 120

    group = np.array(['a'] * 50 + ['b'] * 40 + ['c'] * 29 + ['rare'] * 1)
    group = group[rng.permutation(n)]

    df = pd.DataFrame({
        "x1": rng.normal(size=n),
        "x2": rng.uniform(0, 1, size=n),
        "size": rng.lognormal(mean=3.0, sigma=0.5, size=n),
        "group": group,
        "bldg": rng.choice(["One", "Two", "Twn"], size=n),
    })
    df["outcome"] = (
        2.0 * df["x1"] - df["x2"] + 0.5 * np.log10(df["size"])
        + 0.5 * (df["group"] == "a") + rng.normal(0, 0.3, size=n)
    )
    return df


@pytest.fixture
def classification_df(seed):
    """Two-class frame (PS/WS) with informative and constant predictors."""
    rng = np.random.default_rng(seed)
    n = 150

    X = rng.normal(size=(n, 4))
    logit = 1.5 * X[:, 0] - 1.0 * X[:, 1]
    prob = 1.0 / (1.0 + np.exp(-logit))
    df = pd.DataFrame(X, columns=["f1", "f2", "f3", "f4"])
    df["const"] = 1.0
    df["class"] = np.where(rng.uniform(size=n) < prob, "PS", "WS")
    return df


@pytest.fixture
def base_regression_config(tmp_path, seed):
    """
    Minimal config for a linear regression workflow on the synthetic frame.
    """
    cfg = {
        "experiment": {
            "name": "pytest_regression",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "target_column": "outcome",
            "target_type": "regression"
        },
        "split": {"prop": 0.75, "strata": True},
        "resampling": {"method": "vfold", "v": 4, "repeats": 2, "strata": True},
        "recipe": [
            {"step": "log", "columns": ["size"]},
            {"step": "other", "columns": ["group"], "threshold": 0.05},
            {"step": "dummy", "columns": "all_nominal"},
        ],
        "model": {
            "type": "linear_reg",
            "params": {"linear_reg": {}}
        },
        "metrics": {"names": ["rmse", "rsq", "mae"], "save_plots": False}
    }
    return cfg


@pytest.fixture
def base_classification_config(tmp_path, seed):
    cfg = {
        "experiment": {
            "name": "pytest_classification",
            "seed": seed,
            "output_dir": str(tmp_path / "runs")
        },
        "data": {
            "dataset_path": "DUMMY.csv",
            "target_column": "class",
            "target_type": "classification"
        },
        "split": {"prop": 0.75, "strata": True},
        "resampling": {"method": "vfold", "v": 5, "strata": True},
        "recipe": [
            {"step": "zv"},
            {"step": "normalize", "columns": "all_numeric"},
        ],
        "model": {
            "type": "logistic_regression",
            "params": {"logistic_regression": {"max_iter": 500}}
        },
        "metrics": {"save_plots": False}
    }
    return cfg


@pytest.fixture
def patch_dataset_loader(monkeypatch, regression_df, classification_df):
    """
    Monkeypatch load_dataset so experiments don't hit disk or network.
    """
    def _fake_load_dataset(config, dataset_path=None):
        if config["data"]["target_column"] == "class":
            return classification_df.copy(), "test_dataset.csv"
        return regression_df.copy(), "test_dataset.csv"

    monkeypatch.setattr("modeling.data.load_dataset", _fake_load_dataset)
    monkeypatch.setattr("runners.run_workflow.load_dataset", _fake_load_dataset)
    return _fake_load_dataset


@pytest.fixture
def freeze_time(monkeypatch):
    """
    Pin datetime.now() inside modeling.io so run directory names are predictable.
    """
    import datetime as dt

    class _FixedDT:
        @staticmethod
        def now():
            return dt.datetime(2026, 1, 4, 12, 34, 56)

    monkeypatch.setattr("modeling.io.datetime", _FixedDT)
    return _FixedDT


@pytest.fixture
def write_yaml(tmp_path):
    import yaml
    def _write(cfg, name="temp.yaml"):
        p = tmp_path / name
        with open(p, "w") as f:
            yaml.safe_dump(cfg, f, default_flow_style=False)
        return str(p)
    return _write
