import numpy as np
import pandas as pd
import pytest

from modeling.data import (
    average_duplicates, clean_names, load_dataset, prepare_outcome, preprocess_data,
    split_xy, validate_data_integrity
)


def test_load_dataset_from_csv(tmp_path, regression_df, base_regression_config):
    path = tmp_path / "data.csv"
    regression_df.to_csv(path, index=False)

    df, actual = load_dataset(base_regression_config, dataset_path=str(path))
    assert actual == str(path)
    assert list(df.columns) == list(regression_df.columns)


def test_load_dataset_unknown_name(base_regression_config):
    cfg = {"data": {"dataset": "mystery"}}
    with pytest.raises(ValueError, match="Unknown dataset"):
        load_dataset(cfg)


def test_load_dataset_without_public_source():
    cfg = {"data": {"dataset": "cells"}}
    with pytest.raises(ValueError, match="no public identifier"):
        load_dataset(cfg)


def test_clean_names():
    df = pd.DataFrame({"Sale Price": [1], "Gr.Liv-Area": [2]})
    assert list(clean_names(df).columns) == ["Sale_Price", "Gr_Liv_Area"]


def test_prepare_outcome_log10(regression_df, base_regression_config):
    cfg = dict(base_regression_config, data=dict(base_regression_config["data"], outcome_transform="log10"))
    df = regression_df.assign(outcome=[100.0] * len(regression_df))
    out = prepare_outcome(df, cfg)

    assert (out["outcome"] == 2.0).all()
    assert (df["outcome"] == 100.0).all()


def test_prepare_outcome_rejects_non_positive(regression_df, base_regression_config):
    cfg = dict(base_regression_config, data=dict(base_regression_config["data"], outcome_transform="log"))
    with pytest.raises(ValueError, match="non-positive"):
        prepare_outcome(regression_df.assign(outcome=0.0), cfg)


def test_preprocess_drops_ids_and_keeps_target(regression_df, base_regression_config):
    cfg = dict(base_regression_config, preprocessing={
        "columns_to_drop": ["x2"],
        "keep_columns": ["outcome", "x1", "group"],
    })
    out = preprocess_data(regression_df, cfg)
    assert list(out.columns) == ["x1", "group", "outcome"]
    assert "x2" in regression_df.columns


def test_preprocess_keep_columns_missing(regression_df, base_regression_config):
    cfg = dict(base_regression_config, preprocessing={"keep_columns": ["nope", "outcome"]})
    with pytest.raises(ValueError, match="keep_columns not found"):
        preprocess_data(regression_df, cfg)


def test_average_duplicates_collapses_replicates():
    df = pd.DataFrame({
        "cement": [100, 100, 200],
        "age": [28, 28, 28],
        "strength": [30.0, 40.0, 50.0],
    })
    out = average_duplicates(df, ["cement", "age"], "strength")
    assert len(out) == 2
    assert out.loc[out["cement"] == 100, "strength"].item() == 35.0


def test_split_xy(regression_df):
    X, y = split_xy(regression_df, "outcome")
    assert "outcome" not in X.columns
    assert y.name == "outcome"
    with pytest.raises(ValueError, match="not found"):
        split_xy(regression_df, "missing")


def test_validate_data_integrity_reports_every_problem(regression_df, base_regression_config):
    df = regression_df.copy()
    df.loc[0, "outcome"] = np.nan
    df.loc[1, "x1"] = np.inf

    with pytest.raises(ValueError) as excinfo:
        validate_data_integrity(df, base_regression_config)
    message = str(excinfo.value)
    assert "NaN values found in target" in message
    assert "Infinite values found in feature: x1" in message


def test_validate_data_integrity_single_class(classification_df, base_classification_config):
    df = classification_df.assign(**{"class": "PS"})
    with pytest.raises(ValueError, match="fewer than 2 classes"):
        validate_data_integrity(df, base_classification_config)
    assert validate_data_integrity(classification_df, base_classification_config)
