# Resampling-based evaluation
# Fit a workflow on every analysis set, score it on the matching assessment set

from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.base import clone

from .metrics import compute_metrics, resolve_metrics
from .splits import analysis, assessment, validate_split


def workflow_task(workflow):
    return 'classification' if workflow.is_classifier else 'regression'


def summarize_scores(scores):
    """Mean, standard deviation, standard error and count of fold scores (NaN-aware)."""
    values = np.asarray(scores, dtype=float)
    values = values[~np.isnan(values)]
    n = len(values)
    if n == 0:
        return {'mean': np.nan, 'std': np.nan, 'std_err': np.nan, 'n': 0}
    std = float(np.std(values, ddof=1)) if n > 1 else 0.0
    return {'mean': float(np.mean(values)), 'std': std, 'std_err': std / np.sqrt(n), 'n': n}


def check_outcome(df, split, outcome):
    train_y = df[outcome].iloc[split.analysis_idx]
    test_y = df[outcome].iloc[split.assessment_idx]
    if train_y.isnull().any():
        raise ValueError(f"{split.id} contains NaN outcomes in the analysis set")
    if test_y.isnull().any():
        raise ValueError(f"{split.id} contains NaN outcomes in the assessment set")


def score_split(workflow, df, split, metrics, task):
    """Fit a fresh clone on the analysis rows, predict the assessment rows."""
    fitted = clone(workflow).fit(analysis(df, split))
    holdout = assessment(df, split)
    y_true = holdout[workflow.outcome].to_numpy()
    y_pred = fitted.predict(holdout)
    y_prob = fitted.predict_proba(holdout) if task == 'classification' else None
    classes = list(fitted.classes_) if task == 'classification' else None

    scores = compute_metrics(y_true, y_pred, y_prob=y_prob, metrics=metrics, task=task,
                             classes=classes)

    preds = pd.DataFrame({
        'id': split.id,
        'row': split.assessment_idx,
        'truth': y_true,
        'pred': y_pred,
    })
    if y_prob is not None:
        for cls in y_prob.columns:
            preds[f"pred_{cls}"] = y_prob[cls].to_numpy()
    return fitted, scores, preds


@dataclass
class ResampleResults:
    """Per-fold metrics (and optionally predictions) of one workflow."""
    metrics: pd.DataFrame
    task: str
    kind: str
    predictions: Optional[pd.DataFrame] = None
    params: Dict = field(default_factory=dict)

    def collect_metrics(self, summarize=True):
        """Summary per metric (mean/std/std_err/n) or the raw per-fold rows."""
        if not summarize:
            return self.metrics.copy()
        rows = []
        for metric, group in self.metrics.groupby('metric', sort=False):
            rows.append({'metric': metric, **summarize_scores(group['estimate'])})
        return pd.DataFrame(rows)

    def collect_predictions(self):
        if self.predictions is None:
            raise ValueError("Predictions were not saved; rerun with save_pred=True")
        return self.predictions.copy()

    def fold_scores(self, metric) -> List[float]:
        rows = self.metrics[self.metrics['metric'] == metric]
        if rows.empty:
            raise ValueError(f"Metric '{metric}' not in results: {self.metrics['metric'].unique().tolist()}")
        return rows['estimate'].tolist()

    def to_dict(self):
        """{metric: {'mean', 'std', 'std_err', 'n', 'all'}} with fold-level scores for saving/plots."""
        out = {}
        for metric in self.metrics['metric'].unique():
            scores = self.fold_scores(metric)
            out[metric] = {**summarize_scores(scores), 'all': [float(s) for s in scores]}
        return out


def fit_resamples(workflow, df, resamples, metrics=None, save_pred=False, verbose=True):
    """
    Evaluate a workflow over a set of resamples.

    Each split is validated, a fresh clone of the workflow is fit on its
    analysis set and scored on its assessment set; fitted models are discarded.
    """
    task = workflow_task(workflow)
    metrics = resolve_metrics(metrics, task)

    if verbose:
        print(f"Resampling {type(workflow.model).__name__} over {len(resamples)} {resamples.kind} splits...")

    rows = []
    all_preds = []
    for split in resamples:
        validate_split(split, len(df))
        check_outcome(df, split, workflow.outcome)

        _, scores, preds = score_split(workflow, df, split, metrics, task)
        for name, value in scores.items():
            rows.append({'id': split.id, 'metric': name, 'estimate': value})
        if save_pred:
            all_preds.append(preds)

    return ResampleResults(
        metrics=pd.DataFrame(rows, columns=['id', 'metric', 'estimate']),
        task=task,
        kind=resamples.kind,
        predictions=pd.concat(all_preds, ignore_index=True) if save_pred else None,
    )


@dataclass
class LastFitResult:
    """Workflow fit on the full training set and scored once on the test set."""
    workflow: object
    metrics: Dict[str, float]
    predictions: pd.DataFrame

    def collect_metrics(self):
        return pd.DataFrame([{'metric': k, 'estimate': v} for k, v in self.metrics.items()])

    def collect_predictions(self):
        return self.predictions.copy()


def last_fit(workflow, df, split, metrics=None, verbose=True):
    """Fit on the training rows of an initial split and evaluate on its test rows."""
    task = workflow_task(workflow)
    metrics = resolve_metrics(metrics, task)
    validate_split(split, len(df))
    check_outcome(df, split, workflow.outcome)

    fitted, scores, preds = score_split(workflow, df, split, metrics, task)
    if verbose:
        summary = ", ".join(f"{k}={v:.4f}" for k, v in scores.items())
        print(f"Test set ({split.n_assessment} rows): {summary}")
    return LastFitResult(workflow=fitted, metrics=scores, predictions=preds)
