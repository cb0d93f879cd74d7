#!/usr/bin/env python3
"""ale.py

First-order accumulated local effects (ALE) for a fitted model.

For each covariate the range is cut at quantiles; within each interval the
prediction is differenced between the interval's upper and lower edge for
the training rows falling in it, the mean differences are accumulated, and
the curve is centred so its data-weighted mean is zero. The y values read as
"change from mean genetic distance", i.e. landscape resistance.

Output is a table (covariate, x, y); drawing it is left to the reader.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


def accumulated_local_effects(model, X: pd.DataFrame, feature: str, grid_size: int = 100) -> pd.DataFrame:
    x = X[feature].to_numpy(dtype=float)
    edges = np.unique(np.quantile(x, np.linspace(0.0, 1.0, grid_size + 1)))
    if len(edges) < 2:
        raise ValueError(f"{feature} is constant; no ALE curve")

    n_bins = len(edges) - 1
    # Interval k covers (edges[k], edges[k+1]]; the minimum goes in the first one
    bins = np.clip(np.searchsorted(edges, x, side="left") - 1, 0, n_bins - 1)

    lo = X.copy()
    hi = X.copy()
    lo[feature] = edges[bins]
    hi[feature] = edges[bins + 1]
    diff = model.predict(hi) - model.predict(lo)

    counts = np.bincount(bins, minlength=n_bins).astype(float)
    sums = np.bincount(bins, weights=diff, minlength=n_bins)
    mean_diff = np.divide(sums, counts, out=np.zeros(n_bins), where=counts > 0)

    ale = np.concatenate([[0.0], np.cumsum(mean_diff)])
    midpoints = (ale[:-1] + ale[1:]) / 2.0
    ale -= np.sum(midpoints * counts) / counts.sum()

    return pd.DataFrame({"covariate": feature, "x": edges, "y": ale})


def ale_table(model, X: pd.DataFrame, features: Sequence[str], grid_size: int = 100) -> pd.DataFrame:
    """ALE curves for several covariates, stacked long."""
    return pd.concat(
        [accumulated_local_effects(model, X, f, grid_size=grid_size) for f in features],
        ignore_index=True,
    )
