# Performance metrics for regression and classification

import numpy as np
import pandas as pd
from sklearn.metrics import (
    accuracy_score, f1_score, matthews_corrcoef, mean_absolute_error,
    mean_squared_error, r2_score, roc_auc_score
)

METRIC_SETS = {
    'regression': ['rmse', 'rsq', 'mae'],
    'classification': ['accuracy', 'f1', 'mcc', 'roc_auc'],
}

METRIC_DIRECTION = {
    'rmse': 'minimize',
    'mae': 'minimize',
    'rsq': 'maximize',
    'accuracy': 'maximize',
    'f1': 'maximize',
    'mcc': 'maximize',
    'roc_auc': 'maximize',
}

# Metrics computed from class probabilities rather than hard predictions
PROBABILITY_METRICS = ['roc_auc']


def rmse(y_true, y_pred):
    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def rsq(y_true, y_pred):
    """Coefficient of determination."""
    return float(r2_score(y_true, y_pred))


def mae(y_true, y_pred):
    return float(mean_absolute_error(y_true, y_pred))


def accuracy(y_true, y_pred):
    return float(accuracy_score(y_true, y_pred))


def f1(y_true, y_pred, classes=None):
    """
    F1 for two classes (first level is the event), macro-averaged otherwise.

    `classes` is the model's full class set. Without it the levels present in
    y_true/y_pred are used, which is only safe when every class appears.
    """
    if classes is None:
        classes = np.unique(np.concatenate([np.asarray(y_true), np.asarray(y_pred)]))
    classes = list(classes)
    if len(classes) <= 2:
        return float(f1_score(y_true, y_pred, pos_label=classes[0], average='binary',
                              zero_division=0))
    return float(f1_score(y_true, y_pred, labels=classes, average='macro', zero_division=0))



def mcc(y_true, y_pred):
    """Matthews correlation coefficient."""
    return float(matthews_corrcoef(y_true, y_pred))


def roc_auc(y_true, y_prob):
    """
    Area under the ROC curve.

    y_prob is a DataFrame of class probabilities (columns = classes). For two
    classes the first column is treated as the event; otherwise one-vs-rest
    macro averaging is used.
    """
    y_prob = pd.DataFrame(y_prob)
    classes = list(y_prob.columns)
    if len(classes) == 2:
        event = classes[0]
        return float(roc_auc_score(np.asarray(y_true) == event, y_prob[event].to_numpy()))
    return float(roc_auc_score(y_true, y_prob.to_numpy(), multi_class='ovr', average='macro', labels=classes))


METRIC_FUNCTIONS = {
    'rmse': rmse,
    'rsq': rsq,
    'mae': mae,
    'accuracy': accuracy,
    'f1': f1,
    'mcc': mcc,
    'roc_auc': roc_auc,
}


def resolve_metrics(metrics, task):
    """Return the metric names to compute, validating unknown names and task mismatch."""
    if metrics is None:
        return list(METRIC_SETS[task])
    unknown = [m for m in metrics if m not in METRIC_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown metrics: {unknown}. Supported: {sorted(METRIC_FUNCTIONS)}")
    wrong = [m for m in metrics if m not in METRIC_SETS[task]]
    if wrong:
        raise ValueError(f"Metrics {wrong} are not valid for {task}")
    return list(metrics)


def compute_metrics(y_true, y_pred, y_prob=None, metrics=None, task='regression', classes=None):
    """
    Compute a set of metrics on one set of predictions.

    Returns dict metric -> float. Probability metrics are skipped when no
    probabilities are given, or when the assessment set holds a single class.
    `classes` fixes the event level and averaging for class metrics; it
    defaults to the probability columns.
    """
    metrics = resolve_metrics(metrics, task)
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if len(y_true) != len(y_pred):
        raise ValueError(f"Length mismatch: y_true({len(y_true)}) vs y_pred({len(y_pred)})")
    if classes is None and y_prob is not None:
        classes = list(pd.DataFrame(y_prob).columns)

    results = {}
    for name in metrics:
        if name in PROBABILITY_METRICS:
            if y_prob is None or len(np.unique(y_true)) < 2:
                results[name] = np.nan
                continue
            results[name] = METRIC_FUNCTIONS[name](y_true, y_prob)
        elif name == 'f1':
            results[name] = f1(y_true, y_pred, classes=classes)
        else:
            results[name] = METRIC_FUNCTIONS[name](y_true, y_pred)
    return results



def is_better(a, b, metric):
    """True when score a beats score b for this metric."""
    if METRIC_DIRECTION[metric] == 'minimize':
        return a < b
    return a > b
