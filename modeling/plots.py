# Plotting helpers for resampling, tuning and comparison results

import os
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib
# Use non-interactive backend to allow saving plots on CI without display
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from sklearn.metrics import roc_curve

from .comparison import collect_fold_scores, posterior_samples

COLORS = ['#2E86AB', '#A23B72', '#F18F01', '#C73E1D', '#3B1F2B', '#6A994E']


def _finish(fig, save_path):
    fig.tight_layout()
    if save_path:
        os.makedirs(os.path.dirname(save_path) or '.', exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    return fig


def plot_observed_vs_predicted(
    predictions: pd.DataFrame,
    title: str = None,
    figsize: Tuple[int, int] = (6, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """Scatter of predictions against observed outcomes with the identity line."""
    fig, ax = plt.subplots(figsize=figsize)
    ax.scatter(predictions['truth'], predictions['pred'], alpha=0.4, s=12, color=COLORS[0])
    lo = min(predictions['truth'].min(), predictions['pred'].min())
    hi = max(predictions['truth'].max(), predictions['pred'].max())
    ax.plot([lo, hi], [lo, hi], linestyle='--', color='grey')
    ax.set_xlabel('Observed')
    ax.set_ylabel('Predicted')
    ax.set_aspect('equal', adjustable='datalim')
    if title:
        ax.set_title(title)
    return _finish(fig, save_path)


def plot_roc_curve(
    predictions: pd.DataFrame,
    event: str,
    save_path: Optional[str] = None
) -> plt.Figure:
    """ROC curve per resample from saved class-probability predictions."""
    fig, ax = plt.subplots(figsize=(6, 6))
    for i, (split_id, group) in enumerate(predictions.groupby('id', sort=False)):
        fpr, tpr, _ = roc_curve(group['truth'] == event, group[f"pred_{event}"])
        ax.plot(fpr, tpr, color=COLORS[i % len(COLORS)], alpha=0.7, label=split_id)
    ax.plot([0, 1], [0, 1], linestyle='--', color='grey')
    ax.set_xlabel('1 - specificity')
    ax.set_ylabel('sensitivity')
    if predictions['id'].nunique() <= 10:
        ax.legend(fontsize=8)
    return _finish(fig, save_path)


def plot_tuning(
    tune_results,
    metric: str,
    param: str,
    save_path: Optional[str] = None
) -> plt.Figure:
    """Mean resampled metric (± 1 std_err) against one tuning parameter."""
    summary = tune_results.collect_metrics()
    summary = summary[summary['metric'] == metric]
    others = [p for p in tune_results.param_names if p != param]

    fig, ax = plt.subplots(figsize=(8, 5))
    groups = summary.groupby(others, sort=True) if others else [(None, summary)]
    for i, (key, group) in enumerate(groups):
        group = group.sort_values(param)
        label = None if key is None else str(key)
        ax.errorbar(group[param], group['mean'], yerr=group['std_err'],
                    marker='o', capsize=3, color=COLORS[i % len(COLORS)], label=label)
    if pd.api.types.is_numeric_dtype(summary[param]) and (summary[param] > 0).all():
        if summary[param].max() / summary[param].min() >= 100:
            ax.set_xscale('log')
    ax.set_xlabel(param)
    ax.set_ylabel(metric)
    ax.grid(alpha=0.3)
    if others:
        ax.legend(title=", ".join(others), fontsize=8)
    return _finish(fig, save_path)


def plot_model_comparison(
    model_results: Dict,
    metric: str,
    title: str = None,
    save_path: Optional[str] = None
) -> plt.Figure:
    """Boxplots of fold scores per model, with lines joining the same resample."""
    wide = collect_fold_scores(model_results, metric)
    fig, ax = plt.subplots(figsize=(max(6, 1.5 * len(wide.columns)), 5))

    x = np.arange(1, len(wide.columns) + 1)
    for _, row in wide.iterrows():
        ax.plot(x, row.to_numpy(), color='grey', alpha=0.25, linewidth=0.8)

    bp = ax.boxplot([wide[c] for c in wide.columns], patch_artist=True)
    for i, patch in enumerate(bp['boxes']):
        patch.set_facecolor(COLORS[i % len(COLORS)])
        patch.set_alpha(0.6)
    ax.set_xticks(x)
    ax.set_xticklabels(wide.columns, rotation=20)
    ax.set_ylabel(metric)
    ax.set_title(title or f'{metric} across resamples')
    ax.grid(axis='y', alpha=0.3)
    return _finish(fig, save_path)


def plot_posterior(
    comparison: Dict,
    label_a: str = 'a',
    label_b: str = 'b',
    seed: Optional[int] = None,
    save_path: Optional[str] = None
) -> plt.Figure:
    """Histogram of posterior draws of the difference with the ROPE band shaded."""
    draws = posterior_samples(comparison, size=20000, seed=seed)
    fig, ax = plt.subplots(figsize=(7, 4))
    ax.hist(draws, bins=60, color=COLORS[0], alpha=0.7, edgecolor='black', linewidth=0.3)
    rope = comparison['rope']
    if rope > 0:
        ax.axvspan(-rope, rope, color='grey', alpha=0.25, label='ROPE')
    ax.axvline(0, color='red', linestyle='--')
    ax.set_xlabel(f"{comparison['metric']} difference (> 0 favours {label_a})")
    ax.set_ylabel('Posterior draws')
    ax.set_title(f"P({label_a} better) = {comparison['prob_a_better']:.3f}, "
                 f"P({label_b} better) = {comparison['prob_b_better']:.3f}")
    if rope > 0:
        ax.legend()
    return _finish(fig, save_path)


def save_resample_plot(run_dir, results_dict, title):
    """Histogram grid of fold-level scores (first four metrics)."""
    metric_names = [k for k, v in results_dict.items() if isinstance(v, dict) and 'all' in v][:4]
    fig, axes = plt.subplots(2, 2, figsize=(12, 10))
    axes = axes.flatten()

    for ax, metric in zip(axes, metric_names):
        scores = [s for s in results_dict[metric]['all'] if not np.isnan(s)]
        ax.hist(scores, bins=20, edgecolor='black', alpha=0.7)
        ax.axvline(results_dict[metric]['mean'], color='red', linestyle='--',
                   label=f"Mean: {results_dict[metric]['mean']:.4f}")
        ax.set_title(f"{metric.upper()} Distribution")
        ax.set_xlabel(metric)
        ax.set_ylabel("Frequency")
        ax.legend()
    for ax in axes[len(metric_names):]:
        ax.set_visible(False)

    fig.suptitle(title, fontsize=14)
    path = os.path.join(run_dir, 'resample_distribution.png')
    _finish(fig, path)
    plt.close(fig)
    return path
