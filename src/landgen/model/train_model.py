#!/usr/bin/env python3
"""train_model.py

Fit the spatial-CV gradient boosting model and predict a resistance surface.

Called by:
  python -m landgen.model train
  python -m landgen.model effects

Outputs in model_dir:
- model.joblib: fitted model, selected covariates, best parameters, training
  frame, median geographic distance
- perf_all.csv: RMSE/SE of every covariate subset scored during selection
- cv_results.csv: full grid results for the accepted subset
- ale.csv (effects command): accumulated local effects per selected covariate
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import joblib
import pandas as pd

from landgen.extract.rasters import CovariateStack
from landgen.model.ale import ale_table
from landgen.model.ffs import DEFAULT_GRID, FFSResult, fit_final_model, forward_feature_selection
from landgen.model.predict import predict_surface
from landgen.model.spatial_cv import GEODIST, TARGET, load_clusters, load_training_table, spatial_folds

log = logging.getLogger(__name__)

MODEL_FILE = "model.joblib"


def train_ffs_model(
    extracted_csv: Path,
    clusters_csv: Path,
    env_dir: Path,
    model_dir: Path,
    *,
    out_raster: Optional[Path] = None,
    max_geo_m: Optional[float] = 40000.0,
    covariates: Optional[Sequence[str]] = None,
    grid: Optional[Mapping[str, Sequence[Any]]] = None,
    min_vars: int = 2,
    subsample: float = 0.5,
    seed: int = 1234,
    n_jobs: int = -1,
    mask_layer: Optional[str] = None,
    id_column: str = "animal_id",
) -> FFSResult:
    """Select covariates, fit the final model, save it, and predict the surface.

    Args:
        extracted_csv: Output of landgen.extract (straight or lcp)
        clusters_csv: Spatial cluster table from landgen.pairwise
        env_dir: Covariate rasters (same layers that were extracted)
        model_dir: Directory for the model artifact and tables
        out_raster: Prediction GeoTIFF (None = skip prediction)
        max_geo_m: Keep only pairs at most this far apart
        covariates: Candidate covariates (None = every layer + euc_geog)
        grid: gbm-style hyperparameter grid (None = DEFAULT_GRID)
        min_vars: Size of the starting subsets
        subsample, seed, n_jobs: Passed to the boosting / grid search
        mask_layer: Layer bounding the constant geographic-distance layer

    Returns:
        The feature-selection result.
    """
    data, candidates = load_training_table(extracted_csv, max_geo_m=max_geo_m, covariates=covariates)
    clusters = load_clusters(clusters_csv, id_column=id_column)
    folds = spatial_folds(data, clusters, id_column=id_column)
    log.info("[MODEL] %d pairs, %d candidate covariates, %d spatial folds", len(data), len(candidates), len(folds))

    X = data[candidates]
    y = data[TARGET].to_numpy(dtype=float)

    result = forward_feature_selection(
        X, y, folds, grid or DEFAULT_GRID, min_vars=min_vars, subsample=subsample, seed=seed, n_jobs=n_jobs
    )
    model = fit_final_model(X, y, result.selected_vars, result.best_params, subsample=subsample, seed=seed)
    median_geodist = float(data[GEODIST].median())

    log.info("[MODEL] Selected: %s", ", ".join(result.selected_vars))
    log.info("[MODEL] Best parameters: %s (RMSE %.5f)", result.best_params, result.best_rmse)

    model_dir.mkdir(parents=True, exist_ok=True)
    artifact: Dict[str, Any] = {
        "model": model,
        "selected_vars": result.selected_vars,
        "best_params": result.best_params,
        "best_rmse": result.best_rmse,
        "median_geodist": median_geodist,
        "training_data": data[result.selected_vars + [TARGET]],
    }
    joblib.dump(artifact, model_dir / MODEL_FILE)
    result.perf_all.to_csv(model_dir / "perf_all.csv", index=False)
    result.cv_results.drop(columns=["params"]).to_csv(model_dir / "cv_results.csv", index=False)
    log.info("[MODEL] Wrote model and selection tables -> %s", model_dir)

    if out_raster is not None:
        predict_surface(
            model,
            result.selected_vars,
            CovariateStack.from_dir(env_dir),
            geodist_value=median_geodist,
            out_path=out_raster,
            mask_layer=mask_layer,
        )

    return result


def load_model(model_dir: Path) -> Dict[str, Any]:
    path = model_dir / MODEL_FILE
    if not path.exists():
        raise SystemExit(f"Model artifact not found: {path}")
    return joblib.load(path)


def write_effects(model_dir: Path, out_csv: Optional[Path] = None, *, grid_size: int = 100) -> pd.DataFrame:
    """ALE curves for every selected covariate of a saved model."""
    artifact = load_model(model_dir)
    X = artifact["training_data"][artifact["selected_vars"]]
    table = ale_table(artifact["model"], X, artifact["selected_vars"], grid_size=grid_size)

    out_csv = out_csv or model_dir / "ale.csv"
    out_csv.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(out_csv, index=False)
    log.info("[MODEL] Wrote ALE curves for %d covariates -> %s", len(artifact["selected_vars"]), out_csv)
    return table
