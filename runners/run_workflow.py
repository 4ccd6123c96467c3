# Single-workflow experiment runner
# initial split -> resamples -> (optional) tuning -> resampled estimate -> last fit on the test set

import argparse
import random
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import numpy as np

from modeling.config_schema import validate_workflow_config, ConfigValidationError
from modeling.io import load_config, save_results, create_run_dir, save_data_profile, save_tuning_results
from modeling.data import load_dataset, preprocess_data, prepare_outcome, validate_data_integrity
from modeling.splits import initial_split, training, make_resamples
from modeling.workflow import build_workflow, finalize_workflow
from modeling.resampling import fit_resamples, last_fit
from modeling.tuning import run_tuning
from modeling.artifacts import save_workflow, write_model_metadata
from modeling.metrics import METRIC_SETS
from modeling.models import get_model_info


def set_seeds(seed):
    """Set all random seeds for reproducibility."""
    random.seed(seed)
    np.random.seed(seed)


def print_header(title):
    print("\n" + "=" * 60)
    print(title)
    print("=" * 60)


def split_strata(config):
    strata = config.get('split', {}).get('strata')
    if strata is True:
        return config['data']['target_column']
    return strata


def load_modeling_frame(config, dataset_path=None):
    """Load, select columns, transform the outcome and validate. Returns (df, path)."""
    df, actual_path = load_dataset(config, dataset_path)
    df = preprocess_data(df, config)
    df = prepare_outcome(df, config)
    validate_data_integrity(df, config)
    return df, actual_path


def save_plots(run_dir, config, resample_results, final, tune_results=None, tune_metric=None):
    from modeling.plots import (
        save_resample_plot, plot_observed_vs_predicted, plot_roc_curve, plot_tuning
    )
    import matplotlib.pyplot as plt

    save_resample_plot(run_dir, resample_results.to_dict(),
                       f"{config['model']['type']} - {config['data']['target_column']}")

    preds = final.collect_predictions()
    if config['data']['target_type'] == 'regression':
        fig = plot_observed_vs_predicted(preds, title='Test set',
                                         save_path=os.path.join(run_dir, 'test_predictions.png'))
        plt.close(fig)
    else:
        event = final.workflow.classes_[0]
        if len(final.workflow.classes_) == 2:
            fig = plot_roc_curve(preds.assign(id='test'), event,
                                 save_path=os.path.join(run_dir, 'test_roc.png'))
            plt.close(fig)

    if tune_results is not None:
        for param in tune_results.param_names:
            fig = plot_tuning(tune_results, tune_metric, param,
                              save_path=os.path.join(run_dir, f"tuning_{param.replace('__', '_')}.png"))
            plt.close(fig)


def run_workflow(config_path, dataset_path=None, output_dir=None):
    """
    Run one workflow experiment.

    Args:
        config_path: Path to YAML config file
        dataset_path: Optional path to dataset CSV (overrides config)
        output_dir: Optional output directory (overrides config)

    Returns:
        run_dir: Path to experiment output directory
    """
    config = load_config(config_path)

    if output_dir:
        config['experiment']['output_dir'] = output_dir

    try:
        validate_workflow_config(config)
    except ConfigValidationError as e:
        print(f"\nCONFIG ERROR:\n{e}")
        raise

    seed = config['experiment']['seed']
    set_seeds(seed)

    target = config['data']['target_column']
    target_type = config['data']['target_type']
    metric_names = config.get('metrics', {}).get('names') or METRIC_SETS[target_type]

    print_header("WORKFLOW EXPERIMENT")
    print(f"Experiment: {config['experiment']['name']}")
    print(f"Target: {target} ({target_type})")
    print(f"Model: {config['model']['type']}")
    print(f"Seed: {seed}")
    print("=" * 60)

    df, actual_path = load_modeling_frame(config, dataset_path)
    print(f"\nDataset shape: {df.shape}")

    split_cfg = config.get('split', {})
    split = initial_split(df, prop=split_cfg.get('prop', 0.75), strata=split_strata(config),
                          breaks=split_cfg.get('breaks', 4), seed=seed)
    train = training(df, split).reset_index(drop=True)
    print(f"Training rows: {split.n_analysis}, test rows: {split.n_assessment}")

    resamples = make_resamples(train, config)
    workflow = build_workflow(config)

    tune_results = None
    best_params = None
    tuning_cfg = config.get('tuning') or {}
    tune_metric = tuning_cfg.get('metric') or metric_names[0]
    if tuning_cfg.get('method'):
        tune_results = run_tuning(workflow, train, resamples, tuning_cfg,
                                  metrics=metric_names, seed=seed)
        print("\nTop candidates:")
        print(tune_results.show_best(tune_metric, n=5).to_string(index=False))
        best_params = tune_results.select_best(tune_metric)
        print(f"Selected: {best_params}")
        workflow = finalize_workflow(workflow, best_params)

    resample_results = fit_resamples(workflow, train, resamples, metrics=metric_names, save_pred=True)

    print_header(f"RESAMPLING RESULTS ({resamples.kind}, {len(resamples)} splits)")
    for _, row in resample_results.collect_metrics().iterrows():
        print(f"{row['metric']:10s} {row['mean']:.4f} ± {row['std_err']:.4f} (n={row['n']})")

    final = last_fit(workflow, df, split, metrics=metric_names)

    run_dir = create_run_dir(config)
    save_data_profile(run_dir, df, target, actual_path)
    save_results(
        run_dir, config,
        {'resamples': resample_results.to_dict(), 'test': final.metrics},
        target_type,
        extra={
            'model_type': config['model']['type'],
            'resampling': {'method': resamples.kind, 'n_splits': len(resamples), 'ids': resamples.ids},
            'best_params': best_params,
        },
    )
    model_path = save_workflow(final.workflow, os.path.join(run_dir, 'workflow.joblib'))
    print(f"Workflow saved to: {model_path}")
    model_info = get_model_info(config['model']['type'])
    write_model_metadata(run_dir, {
        'model_type': model_info['type'],
        'task_type': model_info['task_type'],
        'seed': config['experiment']['seed'] if model_info['supports_random_state'] else None,
        'is_deterministic': model_info['is_deterministic'],
        'features': final.workflow.feature_names_,
        'recipe': final.workflow.extract_recipe().tidy().to_dict(orient='records'),
        'params': best_params,
    })

    if tune_results is not None:
        save_tuning_results(run_dir, tune_results)

    if config.get('metrics', {}).get('save_plots', True):
        save_plots(run_dir, config, resample_results, final, tune_results, tune_metric)

    print_header("Workflow experiment complete!")
    return run_dir


def main():
    parser = argparse.ArgumentParser(description='Run a single modeling workflow experiment')
    parser.add_argument('--config', '-c', type=str, default='configs/ames_linear.yaml',
                        help='Path to config YAML file')
    parser.add_argument('--dataset', '-d', type=str, default=None,
                        help='Path to dataset CSV (overrides config)')
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Output directory (overrides config)')
    args = parser.parse_args()

    run_workflow(args.config, args.dataset, args.output)


if __name__ == "__main__":
    main()
