# Model building utilities

from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import ElasticNet, Lasso, LinearRegression, LogisticRegression, Ridge
from sklearn.naive_bayes import GaussianNB
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.neural_network import MLPClassifier, MLPRegressor
from sklearn.svm import SVR
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

try:
    from xgboost import XGBClassifier, XGBRegressor
    HAS_XGBOOST = True
except ImportError:
    XGBClassifier = None
    XGBRegressor = None
    HAS_XGBOOST = False

try:
    from lightgbm import LGBMClassifier, LGBMRegressor
    HAS_LIGHTGBM = True
except ImportError:
    LGBMClassifier = None
    LGBMRegressor = None
    HAS_LIGHTGBM = False


SUPPORTED_MODELS = {
    'regression': [
        'linear_reg', 'ridge', 'lasso', 'elastic_net', 'knn_reg', 'decision_tree_reg',
        'random_forest_reg', 'xgboost_reg', 'lightgbm_reg', 'mlp_reg', 'svm_reg',
    ],
    'classification': [
        'logistic_regression', 'knn', 'decision_tree', 'random_forest',
        'xgboost_clf', 'lightgbm_clf', 'mlp_clf', 'naive_bayes',
    ],
}

# Models that support random_state parameter
MODELS_WITH_RANDOM_STATE = [
    'decision_tree_reg', 'random_forest_reg', 'xgboost_reg', 'lightgbm_reg', 'mlp_reg',
    'logistic_regression', 'decision_tree', 'random_forest', 'xgboost_clf',
    'lightgbm_clf', 'mlp_clf',
]

# Models that are deterministic (no random_state needed)
DETERMINISTIC_MODELS = [
    'linear_reg', 'ridge', 'lasso', 'elastic_net', 'knn_reg', 'svm_reg', 'knn', 'naive_bayes',
]


def model_task(model_type):
    """Return 'regression' or 'classification' for a model type."""
    for task, names in SUPPORTED_MODELS.items():
        if model_type in names:
            return task
    raise ValueError(f"Unknown model type: '{model_type}'. Supported: {SUPPORTED_MODELS}")


def build_model(config, model_type=None, params=None):
    """
    Build and return an unfitted estimator based on config.

    model_type/params override config['model'] (used when comparing several
    models from one config). Seeded models take experiment.seed.
    """
    if model_type is None:
        model_type = config['model']['type']
    if params is None:
        params = config.get('model', {}).get('params', {}).get(model_type, {})
    params = dict(params or {})
    seed = config['experiment']['seed']

    # Regression models
    if model_type == 'linear_reg':
        return LinearRegression(**params)

    elif model_type == 'ridge':
        return Ridge(**params)

    elif model_type == 'lasso':
        return Lasso(**params)

    elif model_type == 'elastic_net':
        return ElasticNet(**params)

    elif model_type == 'knn_reg':
        return KNeighborsRegressor(**params)

    elif model_type == 'decision_tree_reg':
        return DecisionTreeRegressor(random_state=seed, **params)

    elif model_type == 'random_forest_reg':
        return RandomForestRegressor(random_state=seed, **params)

    elif model_type == 'xgboost_reg':
        if not HAS_XGBOOST:
            raise ImportError("XGBoost not installed. Run: pip install xgboost")
        return XGBRegressor(random_state=seed, verbosity=0, **params)

    elif model_type == 'lightgbm_reg':
        if not HAS_LIGHTGBM:
            raise ImportError("LightGBM not installed. Run: pip install lightgbm")
        return LGBMRegressor(random_state=seed, verbose=-1, **params)

    elif model_type == 'mlp_reg':
        return MLPRegressor(random_state=seed, **params)

    elif model_type == 'svm_reg':
        return SVR(**params)

    # Classification models
    elif model_type == 'logistic_regression':
        return LogisticRegression(random_state=seed, **params)

    elif model_type == 'knn':
        return KNeighborsClassifier(**params)

    elif model_type == 'decision_tree':
        return DecisionTreeClassifier(random_state=seed, **params)

    elif model_type == 'random_forest':
        return RandomForestClassifier(random_state=seed, **params)

    elif model_type == 'xgboost_clf':
        if not HAS_XGBOOST:
            raise ImportError("XGBoost not installed. Run: pip install xgboost")
        return XGBClassifier(random_state=seed, verbosity=0, eval_metric='logloss', **params)

    elif model_type == 'lightgbm_clf':
        if not HAS_LIGHTGBM:
            raise ImportError("LightGBM not installed. Run: pip install lightgbm")
        return LGBMClassifier(random_state=seed, verbose=-1, **params)

    elif model_type == 'mlp_clf':
        return MLPClassifier(random_state=seed, **params)

    elif model_type == 'naive_bayes':
        return GaussianNB(**params)

    else:
        raise ValueError(
            f"Unknown model type: '{model_type}'. "
            f"Supported: {SUPPORTED_MODELS}"
        )


def get_model_info(model_type):
    """Get information about a model type."""
    info = {
        'type': model_type,
        'supports_random_state': model_type in MODELS_WITH_RANDOM_STATE,
        'is_deterministic': model_type in DETERMINISTIC_MODELS,
        'task_type': model_task(model_type),
    }
    return info
