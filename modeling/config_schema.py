# Config schema validation
# Validates config structure, types, and allowed names

from .models import model_task

REQUIRED_KEYS = {
    'experiment': ['name', 'seed'],
    'data': ['target_column', 'target_type'],
    'model': ['type'],
    'resampling': ['method'],
}

ALLOWED_TARGET_TYPES = ['regression', 'classification']

ALLOWED_MODEL_TYPES = [
    'linear_reg', 'ridge', 'lasso', 'elastic_net', 'knn_reg', 'decision_tree_reg',
    'random_forest_reg', 'xgboost_reg', 'lightgbm_reg', 'mlp_reg', 'svm_reg',
    'logistic_regression', 'knn', 'decision_tree', 'random_forest', 'xgboost_clf',
    'lightgbm_clf', 'mlp_clf', 'naive_bayes',
]

ALLOWED_RESAMPLING_METHODS = ['vfold', 'bootstrap', 'validation']

ALLOWED_TUNING_METHODS = ['grid', 'random', 'race_anova', None]

ALLOWED_OUTCOME_TRANSFORMS = ['log10', 'log', None]


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def validate_config(config, mode='workflow'):
    """
    Validate experiment configuration.

    Args:
        config: dict - Configuration dictionary
        mode: str - 'workflow' or 'comparison'

    Raises:
        ConfigValidationError if validation fails
    """
    errors = []

    for section, required_keys in REQUIRED_KEYS.items():
        # Comparison configs list their models under comparison.models
        if mode == 'comparison' and section == 'model':
            continue

        if section not in config:
            errors.append(f"Missing required section: '{section}'")
            continue

        for key in required_keys:
            if key not in config[section]:
                errors.append(f"Missing required key: '{section}.{key}'")

    if mode == 'comparison' and 'comparison' not in config:
        errors.append("Missing required section: 'comparison'")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    target_type = config['data'].get('target_type')
    if target_type not in ALLOWED_TARGET_TYPES:
        errors.append(f"Invalid target_type '{target_type}'. Allowed: {ALLOWED_TARGET_TYPES}")

    transform = config['data'].get('outcome_transform')
    if transform not in ALLOWED_OUTCOME_TRANSFORMS:
        errors.append(f"Invalid outcome_transform '{transform}'. Allowed: {ALLOWED_OUTCOME_TRANSFORMS}")
    if transform and target_type == 'classification':
        errors.append("outcome_transform is only valid for regression targets")

    if mode == 'comparison':
        model_types = [m.get('type') for m in config['comparison'].get('models', [])]
        if len(model_types) < 2:
            errors.append("comparison.models must list at least two models")
    else:
        model_types = [config['model'].get('type')]

    for model_type in model_types:
        if model_type not in ALLOWED_MODEL_TYPES:
            errors.append(f"Invalid model type '{model_type}'. Allowed: {ALLOWED_MODEL_TYPES}")
        elif target_type in ALLOWED_TARGET_TYPES and model_task(model_type) != target_type:
            errors.append(f"Model type '{model_type}' is a {model_task(model_type)} model "
                          f"but target_type is '{target_type}'")

    resampling = config['resampling']
    method = resampling.get('method')
    if method not in ALLOWED_RESAMPLING_METHODS:
        errors.append(f"Invalid resampling method '{method}'. Allowed: {ALLOWED_RESAMPLING_METHODS}")

    if method == 'vfold':
        v = resampling.get('v', 10)
        if not isinstance(v, int):
            errors.append("resampling.v must be an integer")
        elif v < 2:
            errors.append("resampling.v must be >= 2")
        repeats = resampling.get('repeats', 1)
        if not isinstance(repeats, int) or repeats < 1:
            errors.append("resampling.repeats must be a positive integer")

    if method == 'bootstrap':
        times = resampling.get('times', 25)
        if not isinstance(times, int) or times < 1:
            errors.append("resampling.times must be a positive integer")

    prop = config.get('split', {}).get('prop', 0.75)
    if not 0 < prop < 1:
        errors.append(f"split.prop must be in (0, 1), got {prop}")

    tuning = config.get('tuning') or {}
    tune_method = tuning.get('method')
    if tune_method not in ALLOWED_TUNING_METHODS:
        errors.append(f"Invalid tuning method '{tune_method}'. Allowed: {ALLOWED_TUNING_METHODS}")
    if tune_method and not tuning.get('grid'):
        errors.append("tuning.grid must define at least one parameter")
    if tune_method == 'race_anova' and tuning.get('burn_in', 3) < 2:
        errors.append("tuning.burn_in must be >= 2 for racing")

    if not isinstance(config['experiment'].get('seed'), int):
        errors.append("experiment.seed must be an integer")

    recipe_steps = config.get('recipe', [])
    if not isinstance(recipe_steps, list):
        errors.append("recipe must be a list of step definitions")
    else:
        for i, step in enumerate(recipe_steps):
            if not isinstance(step, dict) or 'step' not in step:
                errors.append(f"recipe[{i}] must be a mapping with a 'step' key")

    if errors:
        raise ConfigValidationError("Config validation failed:\n  - " + "\n  - ".join(errors))

    return True


def validate_workflow_config(config):
    """Validate config specifically for single-workflow experiments."""
    return validate_config(config, mode='workflow')


def validate_comparison_config(config):
    """Validate config specifically for multi-model comparisons."""
    return validate_config(config, mode='comparison')
