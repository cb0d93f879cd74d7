#!/usr/bin/env python3
"""ffs.py

Forward feature selection for gradient boosting with spatial folds.

Procedure:
1. Score every subset of `min_vars` covariates; keep the best.
2. Try adding each remaining covariate to the current set; keep the best
   addition only if it lowers the cross-validated RMSE.
3. Stop at the first step that does not improve, or when no covariates remain.

A subset's score is the lowest mean RMSE over the hyperparameter grid,
cross-validated on the precomputed spatial folds. Grid points are fitted in
parallel through scikit-learn (n_jobs).

Grid keys use gbm's vocabulary and are mapped to GradientBoostingRegressor:
  n_trees -> n_estimators, shrinkage -> learning_rate,
  interaction_depth -> max_depth, n_minobsinnode -> min_samples_leaf
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.ensemble import GradientBoostingRegressor
from sklearn.model_selection import GridSearchCV

from landgen.model.spatial_cv import Fold

log = logging.getLogger(__name__)

GBM_PARAM_NAMES = {
    "n_trees": "n_estimators",
    "shrinkage": "learning_rate",
    "interaction_depth": "max_depth",
    "n_minobsinnode": "min_samples_leaf",
}

DEFAULT_GRID = {
    "interaction_depth": [2],
    "n_trees": list(range(100, 401, 20)),
    "shrinkage": [0.01],
    "n_minobsinnode": [10],
}


def sklearn_param_grid(grid: Mapping[str, Sequence[Any]]) -> Dict[str, List[Any]]:
    """Translate a gbm-style grid into GradientBoostingRegressor parameter names."""
    out: Dict[str, List[Any]] = {}
    for key, values in grid.items():
        name = GBM_PARAM_NAMES.get(key, key)
        values = list(values) if isinstance(values, (list, tuple)) else [values]
        if not values:
            raise ValueError(f"Empty grid for {key}")
        out[name] = values
    return out


def base_estimator(*, subsample: float = 0.5, seed: int = 1234) -> GradientBoostingRegressor:
    return GradientBoostingRegressor(loss="squared_error", subsample=subsample, random_state=seed)


@dataclass
class SubsetScore:
    variables: Tuple[str, ...]
    rmse: float
    se: float
    params: Dict[str, Any]
    cv_results: pd.DataFrame = field(repr=False)


@dataclass
class FFSResult:
    selected_vars: List[str]
    best_params: Dict[str, Any]
    best_rmse: float
    perf_all: pd.DataFrame
    cv_results: pd.DataFrame


def evaluate_subset(
    X: pd.DataFrame,
    y: np.ndarray,
    variables: Sequence[str],
    folds: Sequence[Fold],
    param_grid: Mapping[str, Sequence[Any]],
    *,
    subsample: float = 0.5,
    seed: int = 1234,
    n_jobs: int = -1,
) -> SubsetScore:
    """Grid-search one covariate subset on the spatial folds."""
    search = GridSearchCV(
        base_estimator(subsample=subsample, seed=seed),
        param_grid=dict(param_grid),
        scoring="neg_root_mean_squared_error",
        cv=list(folds),
        n_jobs=n_jobs,
        refit=False,
        error_score="raise",
    )
    search.fit(X[list(variables)], y)

    res = pd.DataFrame(search.cv_results_)
    best = int(np.argmax(res["mean_test_score"].to_numpy()))
    rmse = float(-res["mean_test_score"].iloc[best])
    se = float(res["std_test_score"].iloc[best] / np.sqrt(len(folds)))
    return SubsetScore(tuple(variables), rmse, se, dict(res["params"].iloc[best]), res)


def forward_feature_selection(
    X: pd.DataFrame,
    y: np.ndarray,
    folds: Sequence[Fold],
    grid: Mapping[str, Sequence[Any]] = DEFAULT_GRID,
    *,
    min_vars: int = 2,
    subsample: float = 0.5,
    seed: int = 1234,
    n_jobs: int = -1,
) -> FFSResult:
    candidates = list(X.columns)
    if min_vars < 1:
        raise ValueError(f"min_vars must be >= 1, got {min_vars}")
    if len(candidates) < min_vars:
        raise ValueError(
            f"Forward selection needs at least {min_vars} candidate covariates, got {len(candidates)}: {candidates}"
        )

    param_grid = sklearn_param_grid(grid)
    y = np.asarray(y, dtype=float)
    scored: List[SubsetScore] = []

    def score(variables: Sequence[str]) -> SubsetScore:
        s = evaluate_subset(X, y, variables, folds, param_grid, subsample=subsample, seed=seed, n_jobs=n_jobs)
        scored.append(s)
        log.debug("[MODEL] %s -> RMSE %.5f", "+".join(variables), s.rmse)
        return s

    # Step 1: every subset of the minimum size
    combos = list(itertools.combinations(candidates, min_vars))
    log.info("[MODEL] Scoring %d starting subsets of %d covariates", len(combos), min_vars)
    best = min((score(c) for c in combos), key=lambda s: s.rmse)
    log.info("[MODEL] Start: %s (RMSE %.5f)", "+".join(best.variables), best.rmse)

    # Step 2+: greedy additions while RMSE improves
    while True:
        remaining = [c for c in candidates if c not in best.variables]
        if not remaining:
            break
        step = min((score(best.variables + (c,)) for c in remaining), key=lambda s: s.rmse)
        if step.rmse >= best.rmse:
            log.info("[MODEL] No addition improves RMSE; stopping at %d covariates", len(best.variables))
            break
        best = step
        log.info("[MODEL] Added %s (RMSE %.5f)", best.variables[-1], best.rmse)

    perf_all = pd.DataFrame({
        "variables": ["+".join(s.variables) for s in scored],
        "n_vars": [len(s.variables) for s in scored],
        "RMSE": [s.rmse for s in scored],
        "SE": [s.se for s in scored],
        "params": [s.params for s in scored],
    })
    return FFSResult(
        selected_vars=list(best.variables),
        best_params=best.params,
        best_rmse=best.rmse,
        perf_all=perf_all,
        cv_results=best.cv_results,
    )


def fit_final_model(
    X: pd.DataFrame,
    y: np.ndarray,
    variables: Sequence[str],
    params: Mapping[str, Any],
    *,
    subsample: float = 0.5,
    seed: int = 1234,
) -> GradientBoostingRegressor:
    """Refit the accepted subset with its best grid point on all training pairs."""
    model = base_estimator(subsample=subsample, seed=seed).set_params(**params)
    return model.fit(X[list(variables)], np.asarray(y, dtype=float))
