# Multi-model comparison runner
# Several workflows on the same resamples -> paired t-tests + Bayesian posterior comparison

import argparse
import copy
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from modeling.config_schema import validate_comparison_config, ConfigValidationError
from modeling.io import load_config, save_results, create_run_dir, save_data_profile
from modeling.splits import initial_split, training, make_resamples
from modeling.workflow import build_workflow
from modeling.resampling import fit_resamples
from modeling.comparison import (
    rank_models, compare_models, bayesian_compare_models, correlation_factor
)
from modeling.metrics import METRIC_SETS
from runners.run_workflow import set_seeds, print_header, load_modeling_frame, split_strata


def build_candidate_workflows(config):
    """name -> Workflow for every entry of comparison.models (each may override the recipe)."""
    workflows = {}
    for spec in config['comparison']['models']:
        name = spec.get('name') or spec['type']
        if name in workflows:
            raise ValueError(f"Duplicate model name in comparison: '{name}'")
        model_config = copy.deepcopy(config)
        if 'recipe' in spec:
            model_config['recipe'] = spec['recipe']
        workflows[name] = build_workflow(model_config, model_type=spec['type'],
                                         params=spec.get('params', {}))
    return workflows


def save_comparison_plots(run_dir, model_results, bayes, metric, seed):
    from modeling.plots import plot_model_comparison, plot_posterior
    from modeling.comparison import bayesian_compare
    import matplotlib.pyplot as plt

    fig = plot_model_comparison(model_results, metric,
                                save_path=os.path.join(run_dir, 'model_comparison.png'))
    plt.close(fig)

    for _, row in bayes.iterrows():
        res = bayesian_compare(
            model_results[row['model_a']].fold_scores(metric),
            model_results[row['model_b']].fold_scores(metric),
            metric, rho=row['rho'], rope=row['rope'],
        )
        fig = plot_posterior(res, row['model_a'], row['model_b'], seed=seed,
                             save_path=os.path.join(run_dir, f"posterior_{row['model_a']}_vs_{row['model_b']}.png"))
        plt.close(fig)


def run_comparison(config_path, dataset_path=None, output_dir=None):
    """
    Compare several models on identical resamples of the training set.

    Returns:
        run_dir: Path to experiment output directory
    """
    config = load_config(config_path)

    if output_dir:
        config['experiment']['output_dir'] = output_dir

    try:
        validate_comparison_config(config)
    except ConfigValidationError as e:
        print(f"\nCONFIG ERROR:\n{e}")
        raise

    seed = config['experiment']['seed']
    set_seeds(seed)

    target = config['data']['target_column']
    target_type = config['data']['target_type']
    metric_names = config.get('metrics', {}).get('names') or METRIC_SETS[target_type]
    comparison_cfg = config['comparison']
    metric = comparison_cfg.get('metric') or metric_names[0]
    rope = comparison_cfg.get('rope', 0.0)

    print_header("MODEL COMPARISON")
    print(f"Experiment: {config['experiment']['name']}")
    print(f"Target: {target} ({target_type})")
    print(f"Models: {[m.get('name') or m['type'] for m in comparison_cfg['models']]}")
    print(f"Comparison metric: {metric} (ROPE = {rope})")
    print("=" * 60)

    df, actual_path = load_modeling_frame(config, dataset_path)

    split_cfg = config.get('split', {})
    split = initial_split(df, prop=split_cfg.get('prop', 0.75), strata=split_strata(config),
                          breaks=split_cfg.get('breaks', 4), seed=seed)
    train = training(df, split).reset_index(drop=True)
    resamples = make_resamples(train, config)

    model_results = {}
    for name, workflow in build_candidate_workflows(config).items():
        model_results[name] = fit_resamples(workflow, train, resamples, metrics=metric_names)

    ranking = rank_models(model_results, metric)
    print_header(f"RANKING ({metric})")
    print(ranking.to_string(index=False))

    frequentist = compare_models(model_results, metric)
    print_header("PAIRED T-TESTS (Holm adjusted)")
    print(frequentist[['model_a', 'model_b', 'mean_diff', 'p_value', 'p_adj', 'significant']].to_string(index=False))

    rho = correlation_factor(resamples)
    bayes = bayesian_compare_models(model_results, metric, rho=rho, rope=rope)
    print_header(f"BAYESIAN COMPARISON (rho={rho:.3f})")
    print(bayes[['model_a', 'model_b', 'diff_favouring_a', 'prob_a_better', 'prob_rope', 'prob_b_better']].to_string(index=False))

    run_dir = create_run_dir(config)
    save_data_profile(run_dir, df, target, actual_path)
    save_results(
        run_dir, config,
        {name: res.to_dict() for name, res in model_results.items()},
        target_type,
        extra={
            'comparison_metric': metric,
            'resampling': {'method': resamples.kind, 'n_splits': len(resamples), 'ids': resamples.ids},
        },
    )
    ranking.to_csv(os.path.join(run_dir, 'ranking.csv'), index=False)
    frequentist.to_csv(os.path.join(run_dir, 'paired_tests.csv'), index=False)
    bayes.to_csv(os.path.join(run_dir, 'bayesian_comparison.csv'), index=False)

    if config.get('metrics', {}).get('save_plots', True):
        save_comparison_plots(run_dir, model_results, bayes, metric, seed)

    print_header("Model comparison complete!")
    return run_dir


def main():
    parser = argparse.ArgumentParser(description='Compare several models on the same resamples')
    parser.add_argument('--config', '-c', type=str, default='configs/concrete_comparison.yaml',
                        help='Path to config YAML file')
    parser.add_argument('--dataset', '-d', type=str, default=None,
                        help='Path to dataset CSV (overrides config)')
    parser.add_argument('--output', '-o', type=str, default=None,
                        help='Output directory (overrides config)')
    args = parser.parse_args()

    run_comparison(args.config, args.dataset, args.output)


if __name__ == "__main__":
    main()
