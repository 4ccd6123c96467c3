# Data splitting and resampling
# Initial train/test split, V-fold cross-validation, bootstrap and validation sets

import warnings
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.model_selection import (
    KFold, RepeatedKFold, RepeatedStratifiedKFold, StratifiedKFold, train_test_split
)

# Strata holding less than this share of rows are pooled into a neighbour
POOL_FRACTION = 0.1


def _frozen(idx):
    arr = np.asarray(idx, dtype=np.int64).copy()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Split:
    """Row indices of one analysis/assessment partition."""
    analysis_idx: np.ndarray
    assessment_idx: np.ndarray
    id: str = 'Split'

    def __post_init__(self):
        object.__setattr__(self, 'analysis_idx', _frozen(self.analysis_idx))
        object.__setattr__(self, 'assessment_idx', _frozen(self.assessment_idx))

    @property
    def n_analysis(self):
        return len(self.analysis_idx)

    @property
    def n_assessment(self):
        return len(self.assessment_idx)

    def __repr__(self):
        return f"<{self.id}: analysis={self.n_analysis}/assessment={self.n_assessment}>"


@dataclass(frozen=True, eq=False)
class Resamples:
    """Ordered, immutable collection of splits over the same frame."""
    splits: Tuple[Split, ...]
    kind: str
    n_rows: int

    def __iter__(self):
        return iter(self.splits)

    def __len__(self):
        return len(self.splits)

    def __getitem__(self, i):
        return self.splits[i]

    @property
    def ids(self):
        return [s.id for s in self.splits]


def _pool_small_strata(strata, pool):
    """
    Merge levels holding less than `pool` of the rows into an adjacent level.

    Levels keep their natural order (integer bins numerically, classes
    alphabetically), and the smallest level is merged into its smaller
    neighbour, so numeric bins stay contiguous ranges.
    """
    strata = pd.Series(strata).reset_index(drop=True)
    n = len(strata)
    while True:
        counts = strata.value_counts().sort_index()
        if len(counts) <= 1 or counts.min() >= pool * n:
            break
        levels = list(counts.index)
        pos = levels.index(counts.idxmin())
        neighbours = [p for p in (pos - 1, pos + 1) if 0 <= p < len(levels)]
        target = min(neighbours, key=lambda p: counts.iloc[p])
        strata = strata.replace(levels[pos], levels[target])
    if strata.nunique() == 1:
        warnings.warn(
            "All strata were pooled into a single level; using unstratified sampling",
            UserWarning,
            stacklevel=3,
        )
        return None
    return strata.astype(str).to_numpy()


def make_strata(y, breaks=4, pool=POOL_FRACTION):
    """
    Build stratification labels for an outcome.

    Categorical outcomes stratify on their classes; numeric outcomes on quantile
    bins (quartiles by default). Returns None when the outcome cannot be
    stratified (too few unique values, or everything pooled into one level).
    """
    y = pd.Series(y).reset_index(drop=True)

    if y.dtype == bool or not pd.api.types.is_numeric_dtype(y):
        return _pool_small_strata(y.astype(str), pool)

    if y.nunique() < breaks:
        warnings.warn(
            f"Too few unique values ({y.nunique()}) to stratify into {breaks} bins; "
            "using unstratified sampling",
            UserWarning,
            stacklevel=2,
        )
        return None

    bins = pd.qcut(y, q=breaks, labels=False, duplicates='drop')
    return _pool_small_strata(bins.astype(int), pool)


def _resolve_strata(df, strata, breaks):
    if strata is None:
        return None
    if strata not in df.columns:
        raise ValueError(f"Strata column '{strata}' not found. Available: {list(df.columns)}")
    return make_strata(df[strata], breaks=breaks)


def validate_split(split, n_rows):
    """
    Validate split integrity.

    Assertions:
    - Analysis/assessment indices are disjoint
    - Every index lies in [0, n_rows)
    """
    analysis_set = set(split.analysis_idx.tolist())
    assessment_set = set(split.assessment_idx.tolist())
    if not analysis_set.isdisjoint(assessment_set):
        overlap = analysis_set.intersection(assessment_set)
        raise ValueError(f"SPLIT LEAK: analysis/assessment indices overlap! {len(overlap)} shared indices")

    for name, idx in (('analysis', split.analysis_idx), ('assessment', split.assessment_idx)):
        if len(idx) == 0:
            raise ValueError(f"{split.id} has an empty {name} set")
        if idx.min() < 0 or idx.max() >= n_rows:
            raise ValueError(f"{split.id} {name} indices out of range for {n_rows} rows")

    return True


def initial_split(df, prop=0.75, strata=None, breaks=4, seed=None):
    """Partition rows into training (prop) and testing sets."""
    if not 0 < prop < 1:
        raise ValueError(f"prop must be in (0, 1), got {prop}")

    n = len(df)
    labels = _resolve_strata(df, strata, breaks)
    train_idx, test_idx = train_test_split(
        np.arange(n), train_size=prop, stratify=labels, random_state=seed
    )
    return Split(np.sort(train_idx), np.sort(test_idx), id='initial')


def training(df, split):
    return df.iloc[split.analysis_idx]


def testing(df, split):
    return df.iloc[split.assessment_idx]


def analysis(df, split):
    return df.iloc[split.analysis_idx]


def assessment(df, split):
    return df.iloc[split.assessment_idx]


def vfold_cv(df, v=10, repeats=1, strata=None, breaks=4, seed=None):
    """
    V-fold cross-validation, optionally repeated and stratified.

    Within each repeat every row lands in exactly one assessment set.
    """
    n = len(df)
    if v < 2 or v > n:
        raise ValueError(f"v must be in [2, {n}], got {v}")

    labels = _resolve_strata(df, strata, breaks)

    if labels is not None:
        if repeats > 1:
            cv = RepeatedStratifiedKFold(n_splits=v, n_repeats=repeats, random_state=seed)
        else:
            cv = StratifiedKFold(n_splits=v, shuffle=True, random_state=seed)
        split_iter = cv.split(np.zeros(n), labels)
    else:
        if repeats > 1:
            cv = RepeatedKFold(n_splits=v, n_repeats=repeats, random_state=seed)
        else:
            cv = KFold(n_splits=v, shuffle=True, random_state=seed)
        split_iter = cv.split(np.zeros(n))

    width = len(str(v))
    splits = []
    for i, (analysis_idx, assessment_idx) in enumerate(split_iter):
        fold_id = f"Fold{i % v + 1:0{max(width, 2)}d}"
        if repeats > 1:
            fold_id = f"Repeat{i // v + 1}_{fold_id}"
        splits.append(Split(analysis_idx, assessment_idx, id=fold_id))

    return Resamples(tuple(splits), kind='vfold', n_rows=n)


def bootstraps(df, times=25, strata=None, breaks=4, seed=None):
    """
    Bootstrap resamples: analysis rows drawn with replacement, assessment rows
    are the ones never drawn (out-of-bag).
    """
    n = len(df)
    rng = np.random.default_rng(seed)
    labels = _resolve_strata(df, strata, breaks)
    all_idx = np.arange(n)

    width = max(len(str(times)), 2)
    splits = []
    for i in range(times):
        if labels is None:
            drawn = rng.integers(0, n, size=n)
        else:
            drawn = np.concatenate([
                rng.choice(all_idx[labels == level], size=(labels == level).sum(), replace=True)
                for level in np.unique(labels)
            ])
        oob = np.setdiff1d(all_idx, drawn)
        if len(oob) == 0:
            raise ValueError("Bootstrap resample left no out-of-bag rows; dataset is too small")
        splits.append(Split(np.sort(drawn), oob, id=f"Bootstrap{i + 1:0{width}d}"))

    return Resamples(tuple(splits), kind='bootstrap', n_rows=n)


def validation_split(df, prop=0.75, strata=None, breaks=4, seed=None):
    """A single analysis/assessment partition of the training set."""
    split = initial_split(df, prop=prop, strata=strata, breaks=breaks, seed=seed)
    split = Split(split.analysis_idx, split.assessment_idx, id='validation')
    return Resamples((split,), kind='validation', n_rows=len(df))


def make_resamples(df, config, seed: Optional[int] = None):
    """Build the resamples described by config['resampling']."""
    rs = config['resampling']
    seed = config['experiment']['seed'] if seed is None else seed
    strata = rs.get('strata')
    if strata is True:
        strata = config['data']['target_column']
    breaks = rs.get('breaks', 4)

    method = rs['method']
    if method == 'vfold':
        return vfold_cv(df, v=rs.get('v', 10), repeats=rs.get('repeats', 1),
                        strata=strata, breaks=breaks, seed=seed)
    elif method == 'bootstrap':
        return bootstraps(df, times=rs.get('times', 25), strata=strata, breaks=breaks, seed=seed)
    elif method == 'validation':
        return validation_split(df, prop=rs.get('prop', 0.75), strata=strata, breaks=breaks, seed=seed)
    else:
        raise ValueError(f"Unknown resampling method: '{method}'")
