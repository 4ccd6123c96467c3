# Data loading and preprocessing utilities

import re

import numpy as np
import pandas as pd

# Named public datasets. 'openml' is the fetch_openml identifier used when no
# local CSV is given; the fetched target column is renamed to 'target'.
DATASETS = {
    'ames': {
        'description': 'Ames, Iowa residential sale prices',
        'target': 'Sale_Price',
        'target_type': 'regression',
        'openml': {'name': 'house_prices', 'version': 1},
        'id_columns': ['Id'],
    },
    'cells': {
        'description': 'Cell image segmentation quality (PS = poorly segmented, WS = well segmented)',
        'target': 'class',
        'target_type': 'classification',
        'openml': None,
        'id_columns': ['case'],
    },
    'concrete': {
        'description': 'Concrete mixture compressive strength',
        'target': 'compressive_strength',
        'target_type': 'regression',
        'openml': {'data_id': 4353},
        'id_columns': [],
    },
}


def clean_names(df):
    """Return a copy of df with column names reduced to [A-Za-z0-9_]."""
    renamed = {c: re.sub(r'[^0-9a-zA-Z]+', '_', str(c)).strip('_') for c in df.columns}
    return df.rename(columns=renamed)


def _fetch_openml(name):
    from sklearn.datasets import fetch_openml

    spec = DATASETS[name]
    if spec['openml'] is None:
        raise ValueError(
            f"Dataset '{name}' has no public identifier; set data.dataset_path to a CSV export"
        )

    print(f"Fetching dataset '{name}' from OpenML: {spec['openml']}")
    bunch = fetch_openml(as_frame=True, parser='auto', **spec['openml'])
    df = bunch.frame.rename(columns={bunch.target.name: spec['target']})
    return clean_names(df)


def load_dataset(config, dataset_path=None):
    """Load dataset from a CSV path or, for registered datasets, from OpenML."""
    path = dataset_path or config['data'].get('dataset_path')
    name = config['data'].get('dataset')

    if path is None:
        if name is None:
            raise ValueError("No dataset given: set data.dataset or data.dataset_path")
        if name not in DATASETS:
            raise ValueError(f"Unknown dataset '{name}'. Available: {sorted(DATASETS)}")
        return _fetch_openml(name), f"openml:{name}"

    print(f"Loading dataset: {path}")
    df = pd.read_csv(path)

    return df, path


def prepare_outcome(df, config):
    """
    Apply the configured outcome transform (e.g. log10 sale price).

    The outcome is transformed before splitting so that every resample and the
    test set are measured on the same scale.
    """
    transform = config['data'].get('outcome_transform')
    if transform is None:
        return df

    target = config['data']['target_column']
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found in dataset. Available: {list(df.columns)}")
    if (df[target] <= 0).any():
        raise ValueError(f"Cannot apply {transform} to non-positive values in '{target}'")

    df = df.copy()
    if transform == 'log10':
        df[target] = np.log10(df[target])
    elif transform == 'log':
        df[target] = np.log(df[target])
    else:
        raise ValueError(f"Unknown outcome transform: '{transform}'")
    return df


def average_duplicates(df, group_cols, outcome):
    """Collapse replicated rows (same predictors) to their mean outcome."""
    missing = [c for c in list(group_cols) + [outcome] if c not in df.columns]
    if missing:
        raise ValueError(f"Columns not found for averaging: {missing}")
    return df.groupby(list(group_cols), as_index=False)[outcome].mean()


def preprocess_data(df, config):
    """
    Select modeling columns: drop id/auxiliary columns, keep the outcome.

    Returns a new DataFrame; the input frame is never modified. Feature/outcome
    separation happens inside the recipe so that resampling sees whole rows.
    """
    target = config['data']['target_column']
    prep = config.get('preprocessing', {})

    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found in dataset. Available: {list(df.columns)}")

    name = config['data'].get('dataset')
    id_cols = DATASETS[name]['id_columns'] if name in DATASETS else []
    cols_to_drop = list(prep.get('columns_to_drop', [])) + list(id_cols)
    cols_to_drop = [c for c in cols_to_drop if c in df.columns and c != target]

    if cols_to_drop:
        print(f"DROPPED columns: {cols_to_drop}")
    df = df.drop(columns=cols_to_drop)

    keep = prep.get('keep_columns')
    if keep:
        missing = [c for c in keep if c not in df.columns]
        if missing:
            raise ValueError(f"keep_columns not found in dataset: {missing}")
        df = df[[c for c in keep if c != target] + [target]]

    average_by = prep.get('average_duplicates')
    if average_by:
        before = len(df)
        df = average_duplicates(df, average_by, target)
        print(f"Averaged replicates: {before} -> {len(df)} rows")

    return df.reset_index(drop=True)


def split_xy(df, target):
    """Return (X, y) views of a modeling frame."""
    if target not in df.columns:
        raise ValueError(f"Target column '{target}' not found. Available: {list(df.columns)}")
    return df.drop(columns=[target]), df[target]


def validate_data_integrity(df, config):
    """
    Validate data integrity before training.

    Checks:
    - No NaN/infinite values in the outcome
    - No infinite values in numeric predictors
    - At least two classes for classification
    """
    errors = []
    target = config['data']['target_column']
    X, y = split_xy(df, target)

    if y.isnull().any():
        errors.append(f"NaN values found in target ({y.name}): {y.isnull().sum()} missing")

    numeric_cols = X.select_dtypes(include=[np.number]).columns
    for col in numeric_cols:
        if np.isinf(X[col].to_numpy(dtype=float)).any():
            errors.append(f"Infinite values found in feature: {col}")

    target_type = config['data'].get('target_type', 'regression')
    if target_type == 'regression':
        if not pd.api.types.is_numeric_dtype(y):
            errors.append(f"Regression target '{target}' is not numeric (dtype={y.dtype})")
        elif not np.isfinite(y.dropna()).all():
            errors.append(f"Infinite values found in target: {target}")
    elif y.nunique() < 2:
        errors.append(f"Classification target '{target}' has fewer than 2 classes")

    if errors:
        raise ValueError("Data integrity check failed:\n  - " + "\n  - ".join(errors))

    return True
