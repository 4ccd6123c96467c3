import numpy as np
import pandas as pd
import pytest

from modeling.comparison import (
    bayesian_compare, bayesian_compare_models, collect_fold_scores, compare_models,
    correlation_factor, holm_adjust, posterior_samples, rank_models
)
from modeling.resampling import ResampleResults
from modeling.splits import vfold_cv


def _results(scores, metric="rmse", ids=None):
    ids = ids or [f"Fold{i + 1:02d}" for i in range(len(scores))]
    metrics = pd.DataFrame({"id": ids, "metric": metric, "estimate": scores})
    return ResampleResults(metrics=metrics, task="regression", kind="vfold")


@pytest.fixture
def three_models():
    rng = np.random.default_rng(0)
    fold_effect = rng.normal(0, 0.5, size=10)
    good = 5.0 + fold_effect + rng.normal(0, 0.05, 10)
    return {
        "good": _results(list(good)),
        "same": _results(list(good + np.tile([0.01, -0.01], 5))),
        "bad": _results(list(7.0 + fold_effect + rng.normal(0, 0.05, 10))),
    }


def test_holm_adjust_known_values():
    assert np.allclose(holm_adjust([0.01, 0.04, 0.03]), [0.03, 0.06, 0.06])
    assert np.allclose(holm_adjust([0.5, 0.9]), [1.0, 1.0])


def test_collect_fold_scores_requires_same_resamples():
    models = {"a": _results([1.0, 2.0]), "b": _results([1.0, 2.0], ids=["X", "Y"])}
    with pytest.raises(ValueError, match="same resamples"):
        collect_fold_scores(models, "rmse")


def test_collect_fold_scores_aligns_by_id():
    a = _results([1.0, 2.0], ids=["Fold01", "Fold02"])
    b = _results([20.0, 10.0], ids=["Fold02", "Fold01"])
    wide = collect_fold_scores({"a": a, "b": b}, "rmse")
    assert wide.loc["Fold01"].tolist() == [1.0, 10.0]


def test_rank_models_orders_by_direction(three_models):
    ranking = rank_models(three_models, "rmse")
    assert ranking["model"].iloc[-1] == "bad"
    assert ranking["rank"].tolist() == [1, 2, 3]


def test_paired_tests_flag_real_difference_only(three_models):
    table = compare_models(three_models, "rmse").set_index(["model_a", "model_b"])

    assert table.loc[("good", "bad"), "significant"]
    assert table.loc[("good", "bad"), "mean_diff"] == pytest.approx(-2.0, abs=0.1)
    assert not table.loc[("good", "same"), "significant"]
    assert (table["p_adj"] >= table["p_value"]).all()


def test_compare_models_needs_two_models(three_models):
    with pytest.raises(ValueError, match="two models"):
        compare_models({"good": three_models["good"]}, "rmse")


def test_correlation_factor_is_assessment_share(regression_df):
    assert correlation_factor(vfold_cv(regression_df, v=10, seed=0)) == pytest.approx(0.1)


def test_bayesian_orientation_for_minimized_metric():
    # a has lower rmse on every fold
    a = [1.0, 1.1, 0.9, 1.05, 0.95]
    b = [2.0, 2.2, 1.9, 2.1, 2.0]
    res = bayesian_compare(a, b, "rmse", rho=0.2)

    assert res["diff_favouring_a"] > 0
    assert res["prob_a_better"] > 0.99
    assert res["prob_a_better"] + res["prob_rope"] + res["prob_b_better"] == pytest.approx(1.0)
    assert res["lower"] < res["diff_favouring_a"] < res["upper"]


def test_bayesian_maximized_metric_and_rope():
    a = [0.80, 0.82, 0.81, 0.79, 0.80]
    b = [0.79, 0.815, 0.80, 0.795, 0.79]
    res = bayesian_compare(a, b, "rsq", rho=0.2, rope=0.05)
    assert res["diff_favouring_a"] > 0
    assert res["prob_rope"] > 0.9


def test_bayesian_scale_grows_with_correlation():
    a = [1.0, 1.3, 0.8, 1.1]
    b = [1.2, 1.1, 1.0, 1.3]
    low = bayesian_compare(a, b, "rmse", rho=0.0)
    high = bayesian_compare(a, b, "rmse", rho=0.5)
    assert high["scale"] > low["scale"]
    var = np.var(np.subtract(a, b), ddof=1)
    assert low["scale"] == pytest.approx(np.sqrt(var / 4))


def test_bayesian_degenerate_constant_difference():
    res = bayesian_compare([1.0, 2.0, 3.0], [1.5, 2.5, 3.5], "rsq", rho=0.1, rope=0.1)
    assert res["scale"] == 0.0
    assert res["prob_b_better"] == 1.0
    assert res["prob_a_better"] == 0.0

    same = bayesian_compare([1.0, 2.0], [1.0, 2.0], "rsq", rho=0.1, rope=0.0)
    assert same["prob_rope"] == 1.0


def test_bayesian_rejects_bad_inputs():
    with pytest.raises(ValueError, match="rho"):
        bayesian_compare([1.0, 2.0], [1.0, 2.0], "rmse", rho=1.0)
    with pytest.raises(ValueError, match="length"):
        bayesian_compare([1.0, 2.0], [1.0], "rmse", rho=0.1)


def test_posterior_samples_match_summary():
    res = bayesian_compare([1.0, 1.1, 0.9, 1.05], [2.0, 2.2, 1.9, 2.1], "rmse", rho=0.25)
    draws = posterior_samples(res, size=20000, seed=1)
    assert np.median(draws) == pytest.approx(res["diff_favouring_a"], abs=0.05)
    assert np.array_equal(draws, posterior_samples(res, size=20000, seed=1))


def test_bayesian_compare_models_all_pairs(three_models):
    table = bayesian_compare_models(three_models, "rmse", rho=0.1, rope=0.5)
    assert len(table) == 3
    row = table.set_index(["model_a", "model_b"]).loc[("good", "bad")]
    assert row["prob_a_better"] > 0.99
    row = table.set_index(["model_a", "model_b"]).loc[("good", "same")]
    assert row["prob_rope"] > 0.9
