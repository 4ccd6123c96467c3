# Model comparison
# Compares resampled performance of several workflows evaluated on the same folds

import itertools
from typing import Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

from .metrics import METRIC_DIRECTION
from .resampling import ResampleResults, summarize_scores


def collect_fold_scores(
    model_results: Dict[str, ResampleResults],
    metric: str
) -> pd.DataFrame:
    """
    Wide table of fold scores: one row per resample id, one column per model.

    All models must have been evaluated on the same resample ids.
    """
    columns = {}
    reference_ids = None
    for name, results in model_results.items():
        rows = results.metrics[results.metrics['metric'] == metric]
        if rows.empty:
            raise ValueError(f"Metric '{metric}' missing for model '{name}'")
        ids = rows['id'].tolist()
        if reference_ids is None:
            reference_ids = ids
        elif sorted(ids) != sorted(reference_ids):
            raise ValueError(f"Model '{name}' was not evaluated on the same resamples")
        columns[name] = rows.set_index('id')['estimate']

    return pd.DataFrame(columns).loc[reference_ids]


def rank_models(
    model_results: Dict[str, ResampleResults],
    metric: str
) -> pd.DataFrame:
    """Resampled mean/std_err per model, best first."""
    rows = []
    for name, results in model_results.items():
        scores = results.fold_scores(metric)
        rows.append({'model': name, 'metric': metric, **summarize_scores(scores)})
    ascending = METRIC_DIRECTION[metric] == 'minimize'
    table = pd.DataFrame(rows).sort_values('mean', ascending=ascending).reset_index(drop=True)
    table['rank'] = np.arange(1, len(table) + 1)
    return table


def holm_adjust(p_values):
    """Holm step-down adjusted p-values (same order as input)."""
    p = np.asarray(p_values, dtype=float)
    m = len(p)
    order = np.argsort(p)
    adjusted = np.empty(m)
    running = 0.0
    for rank, idx in enumerate(order):
        running = max(running, (m - rank) * p[idx])
        adjusted[idx] = min(running, 1.0)
    return adjusted


def compare_models(
    model_results: Dict[str, ResampleResults],
    metric: str,
    alpha: float = 0.05
) -> pd.DataFrame:
    """
    Pairwise paired t-tests on fold scores.

    Scores from the same resample are matched, which removes the
    resample-to-resample variation shared by all models. p-values are
    Holm-adjusted across all pairs.
    """
    wide = collect_fold_scores(model_results, metric)
    if len(wide.columns) < 2:
        raise ValueError("Need at least two models to compare")
    if len(wide) < 2:
        raise ValueError("Need at least two resamples for a paired test")

    rows = []
    for name_a, name_b in itertools.combinations(wide.columns, 2):
        a = wide[name_a].to_numpy()
        b = wide[name_b].to_numpy()
        t_stat, p_value = stats.ttest_rel(a, b)
        rows.append({
            'model_a': name_a,
            'model_b': name_b,
            'metric': metric,
            'mean_diff': float(np.mean(a - b)),
            't_stat': float(t_stat),
            'p_value': float(p_value),
        })

    table = pd.DataFrame(rows)
    table['p_adj'] = holm_adjust(table['p_value'].fillna(1.0))
    table['significant'] = table['p_adj'] < alpha
    return table


def correlation_factor(resamples):
    """
    Correlation between fold scores due to overlapping training sets,
    approximated by the assessment share of the data (1/V for V-fold).
    """
    sizes = [s.n_assessment for s in resamples]
    return float(np.mean(sizes) / resamples.n_rows)


def bayesian_compare(
    scores_a,
    scores_b,
    metric: str,
    rho: float,
    rope: float = 0.0,
    credible_mass: float = 0.95
) -> Dict:
    """
    Correlated Bayesian t-test of model a against model b.

    The posterior of the mean difference is Student-t with n-1 degrees of
    freedom, centred on the observed mean difference, with variance inflated by
    (1/n + rho/(1-rho)) to account for correlated folds. Differences are
    oriented so that positive means "a is better" for the metric.

    Returns posterior probabilities of a better, practical equivalence
    (|diff| <= rope) and b better, plus a credible interval.
    """
    a = np.asarray(scores_a, dtype=float)
    b = np.asarray(scores_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Score vectors differ in length: {a.shape} vs {b.shape}")
    if not 0 <= rho < 1:
        raise ValueError(f"rho must be in [0, 1), got {rho}")
    n = len(a)
    if n < 2:
        raise ValueError("Need at least two resamples for a posterior")

    diff = a - b
    if METRIC_DIRECTION[metric] == 'minimize':
        diff = -diff

    mean = float(np.mean(diff))
    var = float(np.var(diff, ddof=1))
    df = n - 1

    if var == 0:
        # Degenerate posterior: all mass at the observed difference
        p_rope = float(abs(mean) <= rope)
        p_a = float(mean > rope)
        return {
            'metric': metric, 'diff_favouring_a': mean, 'scale': 0.0, 'df': df, 'rho': rho, 'rope': rope,
            'prob_a_better': p_a, 'prob_rope': p_rope, 'prob_b_better': 1.0 - p_a - p_rope,
            'lower': mean, 'upper': mean,
        }

    scale = float(np.sqrt((1.0 / n + rho / (1.0 - rho)) * var))
    posterior = stats.t(df, loc=mean, scale=scale)

    prob_b = float(posterior.cdf(-rope))
    prob_a = float(posterior.sf(rope))
    prob_rope = max(0.0, 1.0 - prob_a - prob_b)
    lower, upper = posterior.interval(credible_mass)

    return {
        'metric': metric,
        'diff_favouring_a': mean,
        'scale': scale,
        'df': df,
        'rho': rho,
        'rope': rope,
        'prob_a_better': prob_a,
        'prob_rope': prob_rope,
        'prob_b_better': prob_b,
        'lower': float(lower),
        'upper': float(upper),
    }


def posterior_samples(comparison: Dict, size: int = 10000, seed: Optional[int] = None) -> np.ndarray:
    """Draws from the posterior of the mean difference returned by bayesian_compare."""
    if comparison['scale'] == 0:
        return np.full(size, comparison['diff_favouring_a'])
    return stats.t.rvs(
        comparison['df'], loc=comparison['diff_favouring_a'], scale=comparison['scale'],
        size=size, random_state=seed,
    )


def bayesian_compare_models(
    model_results: Dict[str, ResampleResults],
    metric: str,
    rho: float,
    rope: float = 0.0
) -> pd.DataFrame:
    """bayesian_compare for every pair of models."""
    wide = collect_fold_scores(model_results, metric)
    rows = []
    for name_a, name_b in itertools.combinations(wide.columns, 2):
        res = bayesian_compare(wide[name_a], wide[name_b], metric, rho=rho, rope=rope)
        rows.append({'model_a': name_a, 'model_b': name_b, **res})
    return pd.DataFrame(rows)
