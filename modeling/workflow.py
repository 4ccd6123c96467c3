# Workflow: a recipe bundled with a model

import pandas as pd
from sklearn.base import BaseEstimator, clone, is_classifier
from sklearn.preprocessing import LabelEncoder
from sklearn.utils.validation import check_is_fitted

from .data import split_xy
from .models import build_model
from .recipes import Recipe, build_recipe


class Workflow(BaseEstimator):
    """
    Preprocessing recipe + estimator, fit on whole modeling frames.

    fit() trains clones of the recipe and model, so the configured objects stay
    untouched and the fitted artifact belongs to the data it was fit on.
    Classification outcomes are label-encoded internally and decoded on predict.
    Tunable parameters: 'model__<param>' and 'recipe__<step id>__<param>'.
    """

    def __init__(self, recipe=None, model=None, outcome=None):
        self.recipe = recipe
        self.model = model
        self.outcome = outcome

    @property
    def is_classifier(self):
        return is_classifier(self.model)

    def fit(self, df, y=None):
        if self.model is None:
            raise ValueError("Workflow has no model")
        X, y = split_xy(df, self.outcome)

        self.recipe_ = clone(self.recipe) if self.recipe is not None else Recipe([])
        Xt = self.recipe_.fit(X).transform(X)

        if self.is_classifier:
            self.label_encoder_ = LabelEncoder().fit(y)
            self.classes_ = self.label_encoder_.classes_
            y = self.label_encoder_.transform(y)

        self.model_ = clone(self.model).fit(Xt, y)
        self.feature_names_ = list(Xt.columns)
        return self

    def _features(self, df):
        check_is_fitted(self)
        X = df.drop(columns=[self.outcome]) if self.outcome in df.columns else df
        return self.recipe_.transform(X)

    def predict(self, df):
        pred = self.model_.predict(self._features(df))
        if self.is_classifier:
            pred = self.label_encoder_.inverse_transform(pred.astype(int))
        return pred

    def predict_proba(self, df):
        """Class probabilities as a DataFrame with one column per class."""
        if not self.is_classifier:
            raise ValueError("predict_proba is only available for classification models")
        proba = self.model_.predict_proba(self._features(df))
        return pd.DataFrame(proba, columns=list(self.classes_), index=df.index)

    def extract_fit(self):
        check_is_fitted(self)
        return self.model_

    def extract_recipe(self):
        check_is_fitted(self)
        return self.recipe_


def build_workflow(config, model_type=None, params=None):
    """Workflow from config: recipe section + model section (or overrides)."""
    return Workflow(
        recipe=build_recipe(config),
        model=build_model(config, model_type=model_type, params=params),
        outcome=config['data']['target_column'],
    )


def finalize_workflow(workflow, params):
    """Return a copy of workflow with the chosen tuning parameters set."""
    final = clone(workflow)
    final.set_params(**{k: v for k, v in params.items() if k != '.config'})
    return final
