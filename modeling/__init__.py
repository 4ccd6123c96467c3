# Modeling package
# Splitting, recipes, workflows, resampling, tuning and model comparison

from .config_schema import validate_config, ConfigValidationError
from .io import load_config, save_results, create_run_dir, save_data_profile
from .data import load_dataset, prepare_outcome, preprocess_data, validate_data_integrity
from .splits import initial_split, vfold_cv, bootstraps, validation_split, training, testing
from .recipes import Recipe, build_recipe
from .models import build_model, SUPPORTED_MODELS
from .workflow import Workflow, build_workflow, finalize_workflow
from .metrics import compute_metrics, METRIC_SETS
from .resampling import fit_resamples, last_fit
from .tuning import tune_grid, tune_race_anova, grid_regular, grid_random
from .comparison import compare_models, bayesian_compare, bayesian_compare_models

__all__ = [
    'validate_config',
    'ConfigValidationError',
    'load_config',
    'save_results',
    'create_run_dir',
    'save_data_profile',
    'load_dataset',
    'prepare_outcome',
    'preprocess_data',
    'validate_data_integrity',
    'initial_split',
    'vfold_cv',
    'bootstraps',
    'validation_split',
    'training',
    'testing',
    'Recipe',
    'build_recipe',
    'build_model',
    'SUPPORTED_MODELS',
    'Workflow',
    'build_workflow',
    'finalize_workflow',
    'compute_metrics',
    'METRIC_SETS',
    'fit_resamples',
    'last_fit',
    'tune_grid',
    'tune_race_anova',
    'grid_regular',
    'grid_random',
    'compare_models',
    'bayesian_compare',
    'bayesian_compare_models',
]
