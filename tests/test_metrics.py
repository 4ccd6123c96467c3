import numpy as np
import pandas as pd
import pytest

from modeling.metrics import compute_metrics, is_better, resolve_metrics


def test_regression_metrics_known_values():
    y_true = [1.0, 2.0, 3.0, 4.0]
    y_pred = [1.0, 2.0, 3.0, 6.0]
    scores = compute_metrics(y_true, y_pred, task="regression")

    assert list(scores) == ["rmse", "rsq", "mae"]
    assert scores["rmse"] == pytest.approx(1.0)
    assert scores["mae"] == pytest.approx(0.5)
    assert scores["rsq"] == pytest.approx(1 - 4.0 / 5.0)


def test_classification_metrics_with_probabilities():
    y_true = np.array(["PS", "PS", "WS", "WS"])
    y_pred = np.array(["PS", "WS", "WS", "WS"])
    y_prob = pd.DataFrame({"PS": [0.9, 0.4, 0.3, 0.1], "WS": [0.1, 0.6, 0.7, 0.9]})

    scores = compute_metrics(y_true, y_pred, y_prob=y_prob, task="classification")

    assert scores["accuracy"] == pytest.approx(0.75)
    # event is PS: precision 1, recall 0.5
    assert scores["f1"] == pytest.approx(2 / 3)
    assert scores["roc_auc"] == pytest.approx(1.0)
    assert -1.0 <= scores["mcc"] <= 1.0


def test_roc_auc_is_nan_for_single_class_holdout():
    y_prob = pd.DataFrame({"PS": [0.9, 0.6], "WS": [0.1, 0.4]})
    scores = compute_metrics(["PS", "PS"], ["PS", "PS"], y_prob=y_prob,
                             metrics=["accuracy", "roc_auc"], task="classification")
    assert scores["accuracy"] == 1.0
    assert np.isnan(scores["roc_auc"])


def test_multiclass_roc_auc():
    y_true = np.array(["a", "b", "c", "a", "b", "c"])
    y_prob = pd.DataFrame(np.eye(3)[[0, 1, 2, 0, 1, 2]], columns=["a", "b", "c"])
    scores = compute_metrics(y_true, y_true, y_prob=y_prob,
                             metrics=["roc_auc", "f1"], task="classification")
    assert scores["roc_auc"] == pytest.approx(1.0)
    assert scores["f1"] == pytest.approx(1.0)


def test_resolve_metrics_rejects_unknown_and_mismatched():
    assert resolve_metrics(None, "classification") == ["accuracy", "f1", "mcc", "roc_auc"]
    with pytest.raises(ValueError, match="Unknown metrics"):
        resolve_metrics(["nope"], "regression")
    with pytest.raises(ValueError, match="not valid for regression"):
        resolve_metrics(["accuracy"], "regression")


def test_length_mismatch():
    with pytest.raises(ValueError, match="Length mismatch"):
        compute_metrics([1.0, 2.0], [1.0], task="regression")


def test_is_better_respects_direction():
    assert is_better(0.5, 1.0, "rmse")
    assert is_better(0.9, 0.8, "rsq")
    assert not is_better(0.8, 0.9, "roc_auc")


def test_f1_event_comes_from_class_set_not_fold_labels():
    y_prob = pd.DataFrame({"PS": [0.2, 0.1], "WS": [0.8, 0.9]})
    scores = compute_metrics(["WS", "WS"], ["WS", "WS"], y_prob=y_prob,
                             metrics=["f1"], task="classification")
    # no PS rows at all: nothing to recover for the event class
    assert scores["f1"] == 0.0


def test_f1_macro_over_all_model_classes():
    y_true = ["a", "a", "b", "b"]
    y_pred = ["a", "b", "b", "b"]
    scores = compute_metrics(y_true, y_pred, metrics=["f1"], task="classification",
                             classes=["a", "b", "c"])
    # a: 2/3, b: 0.8, c: 0 (absent from the fold)
    assert scores["f1"] == pytest.approx((2 / 3 + 0.8 + 0.0) / 3)
