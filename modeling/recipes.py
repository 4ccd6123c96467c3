# Declarative preprocessing recipes
# Ordered column steps fit on analysis data only and applied unchanged to new data

import itertools
import re

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin, clone
from sklearn.decomposition import PCA
from sklearn.preprocessing import SplineTransformer
from sklearn.utils.validation import check_is_fitted


def resolve_columns(X, selector):
    """
    Resolve a column selector against a frame.

    Selectors: an explicit column name, a list of names/selectors,
    'all_numeric', 'all_nominal', 'all_predictors', 'starts_with:<prefix>',
    'ends_with:<suffix>' or 'matches:<regex>'.
    """
    if selector is None:
        return []

    if isinstance(selector, (list, tuple)):
        cols = []
        for s in selector:
            for c in resolve_columns(X, s):
                if c not in cols:
                    cols.append(c)
        return cols

    if selector == 'all_predictors':
        return list(X.columns)
    if selector == 'all_numeric':
        return list(X.select_dtypes(include=[np.number]).columns)
    if selector == 'all_nominal':
        return [c for c in X.columns
                if pd.api.types.is_bool_dtype(X[c]) or not pd.api.types.is_numeric_dtype(X[c])]
    if selector.startswith('starts_with:'):
        prefix = selector.split(':', 1)[1]
        return [c for c in X.columns if str(c).startswith(prefix)]
    if selector.startswith('ends_with:'):
        suffix = selector.split(':', 1)[1]
        return [c for c in X.columns if str(c).endswith(suffix)]
    if selector.startswith('matches:'):
        pattern = re.compile(selector.split(':', 1)[1])
        return [c for c in X.columns if pattern.search(str(c))]

    if selector not in X.columns:
        raise ValueError(f"Column '{selector}' not found. Available: {list(X.columns)}")
    return [selector]


def _level_name(level):
    return re.sub(r'[^0-9a-zA-Z]+', '_', str(level)).strip('_')


class Step(BaseEstimator, TransformerMixin):
    """Base class for recipe steps. Subclasses learn `*_` attributes in fit()."""

    def _check_frame(self, X):
        if not isinstance(X, pd.DataFrame):
            raise TypeError(f"{type(self).__name__} expects a pandas DataFrame, got {type(X).__name__}")

    def _check_columns(self, X, columns):
        missing = [c for c in columns if c not in X.columns]
        if missing:
            raise ValueError(f"{type(self).__name__}: columns missing from new data: {missing}")


class StepLog(Step):
    """Log transform of numeric columns."""

    def __init__(self, columns='all_numeric', base=10, offset=0):
        self.columns = columns
        self.base = base
        self.offset = offset

    def fit(self, X, y=None):
        self._check_frame(X)
        self.columns_ = resolve_columns(X, self.columns)
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        X = X.copy()
        for col in self.columns_:
            X[col] = np.log(X[col].astype(float) + self.offset) / np.log(self.base)
        return X


class StepOther(Step):
    """
    Pool infrequent levels of nominal columns into a single 'other' level.

    threshold < 1 is a proportion of training rows, >= 1 a minimum count.
    Levels never seen in training are pooled as well.
    """

    def __init__(self, columns='all_nominal', threshold=0.01, other='other'):
        self.columns = columns
        self.threshold = threshold
        self.other = other

    def fit(self, X, y=None):
        self._check_frame(X)
        self.columns_ = resolve_columns(X, self.columns)
        self.levels_ = {}
        for col in self.columns_:
            counts = X[col].value_counts(dropna=True)
            if self.threshold < 1:
                keep = counts[counts / len(X) >= self.threshold].index
            else:
                keep = counts[counts >= self.threshold].index
            self.levels_[col] = sorted(str(v) for v in keep)
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        X = X.copy()
        for col in self.columns_:
            values = X[col].astype(object)
            keep = values.isna() | values.astype(str).isin(self.levels_[col])
            X[col] = values.where(keep, self.other)
        return X


class StepDummy(Step):
    """
    Dummy-encode nominal columns.

    One indicator per non-reference level seen at fit time (the first sorted
    level is the reference unless one_hot=True). Unseen levels encode as zeros.
    """

    def __init__(self, columns='all_nominal', one_hot=False):
        self.columns = columns
        self.one_hot = one_hot

    def fit(self, X, y=None):
        self._check_frame(X)
        self.columns_ = resolve_columns(X, self.columns)
        self.levels_ = {}
        for col in self.columns_:
            levels = sorted(str(v) for v in X[col].dropna().unique())
            self.levels_[col] = levels if self.one_hot else levels[1:]
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        pieces = {}
        for col in self.columns_:
            values = X[col].astype(str)
            for level in self.levels_[col]:
                pieces[f"{col}_{_level_name(level)}"] = (values == level).astype(float)
        dummies = pd.DataFrame(pieces, index=X.index)
        return pd.concat([X.drop(columns=self.columns_), dummies], axis=1)


class StepInteract(Step):
    """
    Product terms. Each term is 'a:b' where either side may be a column
    selector, e.g. 'Gr_Liv_Area:starts_with:Bldg_Type_' expands to one
    product per matching column.
    """

    def __init__(self, terms=None, sep='_x_'):
        self.terms = terms
        self.sep = sep

    def _split_term(self, term):
        # 'starts_with:...' uses ':' too; split only at factor boundaries
        parts = []
        for token in term.split(':'):
            if parts and parts[-1] in ('starts_with', 'ends_with', 'matches'):
                parts[-1] = f"{parts[-1]}:{token}"
            else:
                parts.append(token)
        return parts

    def fit(self, X, y=None):
        self._check_frame(X)
        self.interactions_ = []
        for term in self.terms or []:
            factors = [resolve_columns(X, p) for p in self._split_term(term)]
            if any(len(f) == 0 for f in factors):
                raise ValueError(f"Interaction term '{term}' matched no columns")
            for combo in itertools.product(*factors):
                if len(set(combo)) == len(combo) and combo not in self.interactions_:
                    self.interactions_.append(combo)
        return self

    def transform(self, X):
        check_is_fitted(self)
        X = X.copy()
        for combo in self.interactions_:
            self._check_columns(X, combo)
            X[self.sep.join(combo)] = np.prod([X[c].astype(float).to_numpy() for c in combo], axis=0)
        return X


class StepSpline(Step):
    """
    B-spline basis expansion with deg_free columns per input column.

    Knots sit at training-set quantiles; beyond the boundary knots the basis is
    extended linearly, as a natural spline is.
    """

    def __init__(self, columns=None, deg_free=5, degree=3):
        self.columns = columns
        self.deg_free = deg_free
        self.degree = degree

    def fit(self, X, y=None):
        self._check_frame(X)
        if self.deg_free < 2:
            raise ValueError(f"deg_free must be >= 2, got {self.deg_free}")
        degree = min(self.degree, self.deg_free - 1)
        n_knots = self.deg_free - degree + 1

        self.columns_ = resolve_columns(X, self.columns)
        self.splines_ = {}
        for col in self.columns_:
            spline = SplineTransformer(
                n_knots=n_knots, degree=degree, knots='quantile', extrapolation='linear'
            )
            spline.fit(X[[col]].astype(float).to_numpy())
            self.splines_[col] = spline
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        pieces = []
        for col in self.columns_:
            basis = self.splines_[col].transform(X[[col]].astype(float).to_numpy())
            names = [f"{col}_ns_{i + 1:02d}" for i in range(basis.shape[1])]
            pieces.append(pd.DataFrame(basis, columns=names, index=X.index))
        return pd.concat([X.drop(columns=self.columns_)] + pieces, axis=1)


class StepNormalize(Step):
    """Center and scale numeric columns with training means and standard deviations."""

    def __init__(self, columns='all_numeric'):
        self.columns = columns

    def fit(self, X, y=None):
        self._check_frame(X)
        self.columns_ = resolve_columns(X, self.columns)
        values = X[self.columns_].astype(float)
        self.means_ = values.mean().to_dict()
        sds = values.std(ddof=1).fillna(0.0)
        # Constant columns are centred only
        self.sds_ = sds.where(sds > 0, 1.0).to_dict()
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        X = X.copy()
        for col in self.columns_:
            X[col] = (X[col].astype(float) - self.means_[col]) / self.sds_[col]
        return X


class StepPCA(Step):
    """Replace numeric columns with their first num_comp principal components."""

    def __init__(self, columns='all_numeric', num_comp=5, prefix='PC'):
        self.columns = columns
        self.num_comp = num_comp
        self.prefix = prefix

    def fit(self, X, y=None):
        self._check_frame(X)
        self.columns_ = resolve_columns(X, self.columns)
        if not self.columns_:
            raise ValueError("StepPCA selected no columns")
        k = min(self.num_comp, len(self.columns_), len(X))
        self.pca_ = PCA(n_components=k, svd_solver='full')
        self.pca_.fit(X[self.columns_].astype(float).to_numpy())
        width = len(str(k))
        self.component_names_ = [f"{self.prefix}{i + 1:0{width}d}" for i in range(k)]
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        scores = self.pca_.transform(X[self.columns_].astype(float).to_numpy())
        pcs = pd.DataFrame(scores, columns=self.component_names_, index=X.index)
        return pd.concat([X.drop(columns=self.columns_), pcs], axis=1)


class StepZeroVariance(Step):
    """Drop columns that hold a single value in the training data."""

    def __init__(self, columns='all_predictors'):
        self.columns = columns

    def fit(self, X, y=None):
        self._check_frame(X)
        candidates = resolve_columns(X, self.columns)
        self.removed_ = [c for c in candidates if X[c].nunique(dropna=False) <= 1]
        return self

    def transform(self, X):
        check_is_fitted(self)
        return X.drop(columns=[c for c in self.removed_ if c in X.columns])


class StepImpute(Step):
    """Fill missing values with training medians, means or modes."""

    def __init__(self, columns='all_numeric', strategy='median'):
        self.columns = columns
        self.strategy = strategy

    def fit(self, X, y=None):
        self._check_frame(X)
        if self.strategy not in ('median', 'mean', 'mode'):
            raise ValueError(f"Unknown impute strategy: '{self.strategy}'")
        self.columns_ = resolve_columns(X, self.columns)
        self.fill_values_ = {}
        for col in self.columns_:
            if self.strategy == 'median':
                self.fill_values_[col] = X[col].median()
            elif self.strategy == 'mean':
                self.fill_values_[col] = X[col].mean()
            else:
                self.fill_values_[col] = X[col].mode(dropna=True).iloc[0]
        return self

    def transform(self, X):
        check_is_fitted(self)
        self._check_columns(X, self.columns_)
        return X.fillna(value=self.fill_values_)


STEP_REGISTRY = {
    'log': StepLog,
    'other': StepOther,
    'dummy': StepDummy,
    'interact': StepInteract,
    'ns': StepSpline,
    'spline': StepSpline,
    'normalize': StepNormalize,
    'pca': StepPCA,
    'zv': StepZeroVariance,
    'impute': StepImpute,
}


class Recipe(BaseEstimator, TransformerMixin):
    """
    Ordered list of named preprocessing steps.

    fit() trains clones of the configured steps in order, each on the output of
    the previous one; transform() (alias bake) only applies the trained steps.
    Nested parameters are addressed as '<step name>__<param>' for tuning.
    """

    def __init__(self, steps=None):
        self.steps = steps

    def get_params(self, deep=True):
        params = {'steps': self.steps}
        if deep:
            for name, step in self.steps or []:
                params[name] = step
                for key, value in step.get_params(deep=True).items():
                    params[f"{name}__{key}"] = value
        return params

    def set_params(self, **params):
        if 'steps' in params:
            self.steps = params.pop('steps')
        named = dict(self.steps or [])
        for key, value in params.items():
            name, _, sub = key.partition('__')
            if name not in named:
                raise ValueError(f"Invalid parameter '{key}' for recipe; steps: {list(named)}")
            if sub:
                named[name].set_params(**{sub: value})
            else:
                self.steps = [(n, value if n == name else s) for n, s in self.steps]
                named = dict(self.steps)
        return self

    def fit(self, X, y=None):
        if not isinstance(X, pd.DataFrame):
            raise TypeError(f"Recipe expects a pandas DataFrame, got {type(X).__name__}")
        self.trained_steps_ = []
        Xt = X
        for name, step in self.steps or []:
            fitted = clone(step).fit(Xt)
            Xt = fitted.transform(Xt)
            self.trained_steps_.append((name, fitted))
        self.feature_names_ = list(Xt.columns)
        return self

    def transform(self, X):
        check_is_fitted(self)
        Xt = X
        for _, step in self.trained_steps_:
            Xt = step.transform(Xt)
        return Xt

    prep = fit
    bake = transform

    def tidy(self):
        """One row per step: number, id, step type and whether it is trained."""
        trained = dict(getattr(self, 'trained_steps_', []))
        return pd.DataFrame([
            {'number': i + 1, 'id': name, 'step': type(step).__name__, 'trained': name in trained}
            for i, (name, step) in enumerate(self.steps or [])
        ])


def build_step(definition):
    """Build one step from a mapping like {'step': 'other', 'columns': [...], 'threshold': 0.01}."""
    definition = dict(definition)
    kind = definition.pop('step')
    definition.pop('id', None)
    if kind not in STEP_REGISTRY:
        raise ValueError(f"Unknown recipe step: '{kind}'. Supported: {sorted(STEP_REGISTRY)}")
    return STEP_REGISTRY[kind](**definition)


def build_recipe(config):
    """Build a Recipe from config['recipe'] (a list of step mappings)."""
    definitions = config.get('recipe') or []
    steps = []
    for i, definition in enumerate(definitions):
        name = definition.get('id') or f"{definition['step']}_{i + 1}"
        steps.append((name, build_step(definition)))
    return Recipe(steps)
