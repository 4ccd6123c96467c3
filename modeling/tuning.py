# Hyperparameter tuning
# Grid/random search over resamples and racing (early elimination of poor candidates)

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.model_selection import ParameterGrid, ParameterSampler

from .metrics import METRIC_DIRECTION, is_better, resolve_metrics
from .resampling import check_outcome, score_split, workflow_task, summarize_scores
from .splits import validate_split
from .workflow import finalize_workflow


def _range_values(spec, levels):
    low, high = spec['range']
    trans = spec.get('trans')
    if trans == 'log10':
        values = np.logspace(np.log10(low), np.log10(high), levels)
    elif trans is None:
        values = np.linspace(low, high, levels)
    else:
        raise ValueError(f"Unknown parameter transform: '{trans}'")
    if spec.get('integer'):
        return sorted({int(round(v)) for v in values})
    return [float(v) for v in values]


def grid_regular(params, levels=3):
    """
    Regular grid of candidates.

    params maps a parameter name to either an explicit list of values or a
    range spec {'range': [low, high], 'trans': 'log10', 'integer': bool}
    expanded to `levels` evenly spaced values (on the transformed scale).
    """
    if not params:
        raise ValueError("Tuning grid needs at least one parameter")
    expanded = {}
    for name, spec in params.items():
        if isinstance(spec, dict):
            expanded[name] = _range_values(spec, spec.get('levels', levels))
        else:
            expanded[name] = list(spec)
    return [dict(c) for c in ParameterGrid(expanded)]


def _distribution(spec):
    low, high = spec['range']
    if spec.get('integer'):
        return stats.randint(int(low), int(high) + 1)
    if spec.get('trans') == 'log10':
        return stats.loguniform(low, high)
    return stats.uniform(low, high - low)


def grid_random(params, size=10, seed=None):
    """Random candidates: ranges are sampled uniformly (log-uniform for 'log10'), lists by choice."""
    if not params:
        raise ValueError("Tuning grid needs at least one parameter")
    distributions = {
        name: _distribution(spec) if isinstance(spec, dict) else list(spec)
        for name, spec in params.items()
    }
    sampler = ParameterSampler(distributions, n_iter=size, random_state=seed)
    candidates = []
    for cand in sampler:
        cand = {k: (v.item() if isinstance(v, np.generic) else v) for k, v in cand.items()}
        if cand not in candidates:
            candidates.append(cand)
    return candidates


def _label_candidates(grid):
    width = max(len(str(len(grid))), 2)
    return [{'.config': f"Model{i + 1:0{width}d}", **params} for i, params in enumerate(grid)]


@dataclass
class TuneResults:
    """Fold-level metrics for every candidate evaluated during tuning."""
    metrics: pd.DataFrame
    candidates: List[Dict[str, Any]]
    task: str
    n_resamples: int
    race_log: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def param_names(self):
        return [k for k in self.candidates[0] if k != '.config'] if self.candidates else []

    def collect_metrics(self, summarize=True):
        if not summarize:
            return self.metrics.copy()
        rows = []
        params = {c['.config']: c for c in self.candidates}
        for (config, metric), group in self.metrics.groupby(['.config', 'metric'], sort=False):
            row = dict(params[config])
            row.update({'metric': metric, **summarize_scores(group['estimate'])})
            rows.append(row)
        return pd.DataFrame(rows)

    def _completed(self, metric):
        summary = self.collect_metrics()
        summary = summary[summary['metric'] == metric]
        if summary.empty:
            raise ValueError(f"Metric '{metric}' was not computed during tuning")
        # Racing: only candidates that survived every resample are eligible
        return summary[summary['n'] == summary['n'].max()]

    def show_best(self, metric, n=5):
        summary = self._completed(metric)
        ascending = METRIC_DIRECTION[metric] == 'minimize'
        return summary.sort_values('mean', ascending=ascending).head(n).reset_index(drop=True)

    def select_best(self, metric):
        best = self.show_best(metric, n=1).iloc[0]
        return {k: _python_value(best[k]) for k in ['.config'] + self.param_names}

    def select_by_one_std_err(self, metric, order_by, ascending=True):
        """
        Simplest candidate within one standard error of the numerically best.

        Simplicity is the order of `order_by` (a parameter name); ascending=True
        means smaller values are simpler.
        """
        summary = self._completed(metric)
        best = self.show_best(metric, n=1).iloc[0]
        if METRIC_DIRECTION[metric] == 'minimize':
            ok = summary['mean'] <= best['mean'] + best['std_err']
        else:
            ok = summary['mean'] >= best['mean'] - best['std_err']
        chosen = summary[ok].sort_values(order_by, ascending=ascending).iloc[0]
        return {k: _python_value(chosen[k]) for k in ['.config'] + self.param_names}


def _python_value(v):
    return v.item() if isinstance(v, np.generic) else v


def _metric_rows(config, split_id, scores):
    return [{'.config': config, 'id': split_id, 'metric': k, 'estimate': v} for k, v in scores.items()]


def tune_grid(workflow, df, resamples, grid, metrics=None, verbose=True):
    """Evaluate every candidate in grid on every resample."""
    task = workflow_task(workflow)
    metrics = resolve_metrics(metrics, task)
    candidates = _label_candidates(grid)

    if verbose:
        print(f"Tuning {len(candidates)} candidates x {len(resamples)} resamples (grid search)...")

    for split in resamples:
        validate_split(split, len(df))
        check_outcome(df, split, workflow.outcome)

    rows = []
    for cand in candidates:
        wf = finalize_workflow(workflow, cand)
        for split in resamples:
            _, scores, _ = score_split(wf, df, split, metrics, task)
            rows.extend(_metric_rows(cand['.config'], split.id, scores))

    return TuneResults(
        metrics=pd.DataFrame(rows, columns=['.config', 'id', 'metric', 'estimate']),
        candidates=candidates,
        task=task,
        n_resamples=len(resamples),
    )


def _race_eliminate(scores, active, metric, alpha):
    """
    Compare every active candidate with the current leader on the folds seen so
    far; one-sided paired t-test, eliminate when the candidate is significantly
    worse. Returns {config: p_value} for eliminated candidates.
    """
    means = {c: float(np.mean(scores[c])) for c in active}
    leader = active[0]
    for c in active[1:]:
        if is_better(means[c], means[leader], metric):
            leader = c

    # H1: candidate scores are worse than the leader's
    alternative = 'greater' if METRIC_DIRECTION[metric] == 'minimize' else 'less'
    eliminated = {}
    for c in active:
        if c == leader:
            continue
        diffs = np.asarray(scores[c]) - np.asarray(scores[leader])
        if np.allclose(diffs, diffs[0]):
            continue
        p_value = stats.ttest_rel(scores[c], scores[leader], alternative=alternative).pvalue
        if p_value < alpha:
            eliminated[c] = float(p_value)
    return eliminated


def tune_race_anova(workflow, df, resamples, grid, metrics=None, metric=None,
                    burn_in=3, alpha=0.05, verbose=True):
    """
    Racing search: all candidates are evaluated on the first `burn_in`
    resamples; after that, each new resample is followed by an elimination
    round against the current leader on the primary metric.
    """
    task = workflow_task(workflow)
    metrics = resolve_metrics(metrics, task)
    metric = metric or metrics[0]
    if metric not in metrics:
        raise ValueError(f"Racing metric '{metric}' must be one of the computed metrics {metrics}")
    if burn_in < 2:
        raise ValueError("burn_in must be >= 2")

    candidates = _label_candidates(grid)
    workflows = {c['.config']: finalize_workflow(workflow, c) for c in candidates}
    active = [c['.config'] for c in candidates]
    primary = {c: [] for c in active}
    rows = []
    race_log = []

    if verbose:
        print(f"Racing {len(candidates)} candidates over {len(resamples)} resamples "
              f"(burn-in={burn_in}, alpha={alpha}, metric={metric})...")

    for i, split in enumerate(resamples):
        validate_split(split, len(df))
        check_outcome(df, split, workflow.outcome)

        for config in active:
            _, scores, _ = score_split(workflows[config], df, split, metrics, task)
            rows.extend(_metric_rows(config, split.id, scores))
            primary[config].append(scores[metric])

        if i + 1 >= burn_in and len(active) > 1:
            dropped = _race_eliminate(primary, active, metric, alpha)
            for config, p_value in dropped.items():
                race_log.append({'.config': config, 'eliminated_after': i + 1, 'p_value': p_value})
            active = [c for c in active if c not in dropped]
            if verbose and dropped:
                print(f"  after {split.id}: eliminated {len(dropped)}, {len(active)} remaining")

    return TuneResults(
        metrics=pd.DataFrame(rows, columns=['.config', 'id', 'metric', 'estimate']),
        candidates=candidates,
        task=task,
        n_resamples=len(resamples),
        race_log=race_log,
    )


def make_grid(tuning_config, seed: Optional[int] = None):
    """Candidates for config['tuning']."""
    method = tuning_config.get('method')
    if method in ('grid', 'race_anova'):
        return grid_regular(tuning_config['grid'], levels=tuning_config.get('levels', 3))
    elif method == 'random':
        return grid_random(tuning_config['grid'], size=tuning_config.get('size', 10), seed=seed)
    raise ValueError(f"Unknown tuning method: '{method}'")


def run_tuning(workflow, df, resamples, tuning_config, metrics=None, seed=None, verbose=True):
    """Dispatch on config['tuning']['method']."""
    grid = make_grid(tuning_config, seed=seed)
    if tuning_config['method'] == 'race_anova':
        return tune_race_anova(
            workflow, df, resamples, grid, metrics=metrics,
            metric=tuning_config.get('metric'),
            burn_in=tuning_config.get('burn_in', 3),
            alpha=tuning_config.get('alpha', 0.05),
            verbose=verbose,
        )
    return tune_grid(workflow, df, resamples, grid, metrics=metrics, verbose=verbose)
