#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from landgen.model import ffs

SMALL_GRID = {"interaction_depth": [2], "n_trees": [60], "shrinkage": [0.1], "n_minobsinnode": [2]}


def _data(n=120, seed=0):
    rng = np.random.default_rng(seed)
    X = pd.DataFrame({
        "a": rng.uniform(0, 1, n),
        "b": rng.uniform(0, 1, n),
        "noise": rng.uniform(0, 1, n),
        "euc_geog": rng.uniform(0, 1, n),
    })
    y = X["a"].to_numpy() + 0.5 * X["b"].to_numpy()
    groups = np.arange(n) % 4
    folds = [(np.flatnonzero(groups != g), np.flatnonzero(groups == g)) for g in range(4)]
    return X, y, folds


def test_sklearn_param_grid_names():
    out = ffs.sklearn_param_grid(ffs.DEFAULT_GRID)
    assert out["n_estimators"] == list(range(100, 401, 20))
    assert out["learning_rate"] == [0.01]
    assert out["max_depth"] == [2]
    assert out["min_samples_leaf"] == [10]
    assert ffs.sklearn_param_grid({"n_trees": 50}) == {"n_estimators": [50]}
    with pytest.raises(ValueError):
        ffs.sklearn_param_grid({"n_trees": []})


def test_evaluate_subset_reports_best_grid_point():
    X, y, folds = _data()
    grid = ffs.sklearn_param_grid({"n_trees": [5, 60], "shrinkage": [0.1], "interaction_depth": [2]})
    score = ffs.evaluate_subset(X, y, ["a", "b"], folds, grid, n_jobs=1)
    assert score.variables == ("a", "b")
    assert score.params["n_estimators"] == 60
    assert score.rmse > 0
    assert score.se >= 0
    assert len(score.cv_results) == 2


def test_forward_feature_selection_finds_signal():
    X, y, folds = _data()
    result = ffs.forward_feature_selection(X, y, folds, SMALL_GRID, min_vars=2, n_jobs=1)

    assert {"a", "b"} <= set(result.selected_vars)
    assert result.selected_vars[:2] == ["a", "b"]
    assert result.best_rmse == pytest.approx(result.perf_all["RMSE"].min())

    perf = result.perf_all
    assert list(perf.columns) == ["variables", "n_vars", "RMSE", "SE", "params"]
    # six starting pairs, then at least one round of additions
    assert (perf["n_vars"].iloc[:6] == 2).all()
    assert len(perf) >= 8
    assert "a+b" in set(perf["variables"])


def test_forward_feature_selection_needs_enough_candidates():
    X, y, folds = _data()
    with pytest.raises(ValueError, match="at least 2"):
        ffs.forward_feature_selection(X[["a"]], y, folds, SMALL_GRID, min_vars=2, n_jobs=1)


def test_fit_final_model_uses_params():
    X, y, _ = _data()
    model = ffs.fit_final_model(X, y, ["a", "b"], {"n_estimators": 30, "max_depth": 2})
    assert model.n_estimators == 30
    assert model.subsample == 0.5
    assert list(model.feature_names_in_) == ["a", "b"]
