#!/usr/bin/env python3
"""predict.py

Apply a fitted model to the covariate stack, cell by cell.

Geographic distance only exists between two animals, so the prediction uses a
constant geographic-distance layer set to the median of the training pairs
and masked to the footprint of a reference layer. The result is the
resistance surface used by the least-cost-path extraction and by UNICOR.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
import rasterio

from landgen.extract.rasters import CovariateStack, check_grid_alignment
from landgen.model.spatial_cv import GEODIST

log = logging.getLogger(__name__)


def _read_layer(path: Path) -> np.ndarray:
    with rasterio.open(path) as src:
        band = src.read(1, masked=True)
    return np.ma.filled(band.astype("float64"), np.nan)


def predict_surface(
    model,
    selected_vars: Sequence[str],
    stack: CovariateStack,
    *,
    geodist_value: float,
    out_path: Optional[Path] = None,
    mask_layer: Optional[str] = None,
) -> np.ndarray:
    """Predict every cell where all selected inputs are valid.

    Args:
        model: Fitted regressor trained on columns `selected_vars`
        selected_vars: Model inputs, raster layer names and/or 'euc_geog'
        stack: Covariate layers (must include every selected layer)
        geodist_value: Value of the constant geographic-distance layer
        out_path: Optional float32 GeoTIFF to write
        mask_layer: Layer whose valid cells bound the geodistance layer
            (default: first layer in the stack)

    Returns:
        2D float array of predictions (NaN outside valid cells).
    """
    check_grid_alignment(stack.paths)
    by_name: Dict[str, Path] = dict(zip(stack.names, stack.paths))

    mask_name = mask_layer or stack.names[0]
    if mask_name not in by_name:
        raise ValueError(f"Mask layer '{mask_name}' not in covariate stack {stack.names}")
    needed = [v for v in selected_vars if v != GEODIST]
    absent = [v for v in needed if v not in by_name]
    if absent:
        raise ValueError(f"Selected covariates missing from the raster stack: {absent}")

    mask = np.isfinite(_read_layer(by_name[mask_name]))
    layers = {}
    for name in selected_vars:
        if name == GEODIST:
            layers[name] = np.where(mask, float(geodist_value), np.nan)
        else:
            layers[name] = _read_layer(by_name[name])

    shape = mask.shape
    features = np.column_stack([layers[v].ravel() for v in selected_vars])
    valid = np.isfinite(features).all(axis=1)

    pred = np.full(features.shape[0], np.nan, dtype="float64")
    if valid.any():
        pred[valid] = model.predict(pd.DataFrame(features[valid], columns=list(selected_vars)))
    else:
        log.warning("[MODEL] No cell has valid values for all of %s", list(selected_vars))
    pred = pred.reshape(shape)
    log.info("[MODEL] Predicted %d of %d cells", int(valid.sum()), valid.size)

    if out_path is not None:
        with rasterio.open(by_name[mask_name]) as ref:
            profile = ref.profile.copy()
        profile.update(driver="GTiff", count=1, dtype="float32", nodata=np.nan, compress="deflate")
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(out_path, "w", **profile) as dst:
            dst.write(pred.astype("float32"), 1)
        log.info("[MODEL] Wrote prediction raster -> %s", out_path)

    return pred
