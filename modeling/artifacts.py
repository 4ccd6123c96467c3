"""Artifact helpers: joblib for fitted workflows and recipes, plus a
minimal metadata writer.
"""

import os
import json

import joblib
from sklearn.utils.validation import check_is_fitted


def save_workflow(obj, path):
    """Save a fitted workflow or recipe with joblib. Returns the path."""
    check_is_fitted(obj)
    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    joblib.dump(obj, path)
    return path


def load_workflow(path):
    if not os.path.exists(path):
        raise FileNotFoundError(f"Artifact not found: {path}")
    return joblib.load(path)


def write_model_metadata(run_dir, metadata: dict, filename: str = 'model_metadata.json'):
    os.makedirs(run_dir, exist_ok=True)
    path = os.path.join(run_dir, filename)
    with open(path, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)
    return path
