# Run I/O for modeling experiments
# YAML configs, run directories, metrics.json and tuning tables

import os
import json
import hashlib
from datetime import datetime

import numpy as np
import pandas as pd
import yaml


def load_config(config_path):
    """Load YAML configuration file."""
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ValueError(f"Config file is empty or invalid: {config_path}")

    return config


def config_hash(config):
    """Short md5 of the config, used in run directory names."""
    config_str = json.dumps(config, sort_keys=True, default=str)
    return hashlib.md5(config_str.encode()).hexdigest()[:8]


def dataset_hash(df):
    """Generate hash of dataset content for fingerprinting."""
    # Hash based on shape and sample of data
    content = f"{df.shape}_{df.columns.tolist()}_{df.head(10).to_json()}_{df.tail(10).to_json()}"
    return hashlib.md5(content.encode()).hexdigest()[:12]


def create_run_dir(config, output_dir=None):
    """Create <output_dir>/<name>_<timestamp>_<config hash> and return its path."""
    output_dir = output_dir or config['experiment'].get('output_dir', 'runs')
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    cfg_hash = config_hash(config)
    run_name = f"{config['experiment']['name']}_{timestamp}_{cfg_hash}"
    run_dir = os.path.join(output_dir, run_name)
    os.makedirs(run_dir, exist_ok=True)
    return run_dir


def _to_json(value):
    if isinstance(value, dict):
        return {str(k): _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def save_results(run_dir, config, results, target_type, extra=None):
    """
    Save config and metrics to the run directory.

    results: {section: {metric: {'mean', 'std', ..., 'all'}}} or a flat metric dict;
    fold-level scores are kept for CI/boxplots.
    """
    with open(os.path.join(run_dir, 'config.yaml'), 'w') as f:
        yaml.dump(config, f, default_flow_style=False)

    results_json = {
        'experiment_name': config['experiment']['name'],
        'seed': config['experiment']['seed'],
        'dataset': config['data'].get('dataset'),
        'target_column': config['data']['target_column'],
        'target_type': target_type,
        'results': _to_json(results),
    }
    if extra:
        results_json.update(_to_json(extra))

    with open(os.path.join(run_dir, 'metrics.json'), 'w') as f:
        json.dump(results_json, f, indent=2)

    print(f"Results saved to: {run_dir}")
    return run_dir


def save_tuning_results(run_dir, tune_results):
    """Write per-candidate summaries (tuning.csv) and the racing log, if any."""
    path = os.path.join(run_dir, 'tuning.csv')
    tune_results.collect_metrics().to_csv(path, index=False)
    if tune_results.race_log:
        with open(os.path.join(run_dir, 'race_log.json'), 'w') as f:
            json.dump(_to_json(tune_results.race_log), f, indent=2)
    return path


def save_data_profile(run_dir, df, target, dataset_path):
    """Write data_profile.json: fingerprint, shape and outcome summary of the modeling frame."""
    y = df[target]
    numeric = pd.api.types.is_numeric_dtype(y) and not pd.api.types.is_bool_dtype(y)
    profile = {
        'dataset_path': str(dataset_path) if dataset_path else None,
        'dataset_hash': dataset_hash(df),
        'total_rows': len(df),
        'total_columns': len(df.columns),
        'feature_count': len(df.columns) - 1,
        'features_used': [c for c in df.columns if c != target],
        'target_column': target,
        'target_stats': {
            'mean': float(y.mean()) if numeric else None,
            'std': float(y.std()) if numeric else None,
            'min': float(y.min()) if numeric else None,
            'max': float(y.max()) if numeric else None,
            'unique_values': int(y.nunique()),
            'value_counts': {str(k): int(v) for k, v in y.value_counts().items()} if y.nunique() <= 10 else None
        },
        'missing_values': int(df.drop(columns=[target]).isnull().sum().sum()),
        'timestamp': datetime.now().isoformat()
    }

    with open(os.path.join(run_dir, 'data_profile.json'), 'w') as f:
        json.dump(profile, f, indent=2)

    return profile
