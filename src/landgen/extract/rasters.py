#!/usr/bin/env python3
"""rasters.py

Covariate raster stack helpers.

The covariate stack is a directory of single-band GeoTIFFs on one common
grid (same CRS, transform and size). A layer's name is its file stem and
becomes a column name in the extracted table.

Raster handles are never passed around: callers pass file paths and every
function opens what it needs. This keeps everything here safe to call from
worker processes.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import numpy as np
import rasterio
import shapely
from rasterio.transform import Affine
from rasterio.windows import Window


@dataclass(frozen=True)
class CovariateStack:
    """Paths to co-registered covariate layers, in column order."""

    paths: Tuple[Path, ...]

    @property
    def names(self) -> List[str]:
        return [p.stem for p in self.paths]

    @classmethod
    def from_dir(cls, env_dir: Path) -> "CovariateStack":
        return cls(tuple(list_covariate_rasters(env_dir)))


def list_covariate_rasters(env_dir: Path) -> List[Path]:
    """All *.tif files in env_dir, sorted by name."""
    if not env_dir.is_dir():
        raise SystemExit(f"Covariate directory not found: {env_dir}")
    paths = sorted(env_dir.glob("*.tif"))
    if not paths:
        raise SystemExit(f"No .tif covariate layers in {env_dir}")
    names = [p.stem for p in paths]
    if len(set(names)) != len(names):
        raise ValueError(f"Duplicate covariate layer names in {env_dir}")
    return paths


def check_grid_alignment(paths: Sequence[Path]) -> None:
    """Fail unless every layer shares the first layer's CRS, transform and shape."""
    if not paths:
        raise ValueError("Empty covariate stack")
    with rasterio.open(paths[0]) as ref:
        crs, transform, shape = ref.crs, ref.transform, (ref.height, ref.width)
    if transform.b != 0 or transform.d != 0 or transform.e >= 0:
        raise ValueError(f"{paths[0].name}: only north-up, unrotated grids are supported")

    for p in paths[1:]:
        with rasterio.open(p) as src:
            if src.crs != crs:
                raise ValueError(f"{p.name}: CRS {src.crs} differs from {paths[0].name} ({crs})")
            if not np.allclose(tuple(src.transform)[:6], tuple(transform)[:6]):
                raise ValueError(f"{p.name}: grid transform differs from {paths[0].name}")
            if (src.height, src.width) != shape:
                raise ValueError(
                    f"{p.name}: size {src.height}x{src.width} differs from {paths[0].name} ({shape[0]}x{shape[1]})"
                )


# -----------------------------------------------------------------------------
# Area-weighted zonal means
# -----------------------------------------------------------------------------

def polygon_window(transform: Affine, shape: Tuple[int, int], bounds) -> Window:
    """Smallest whole-cell window covering bounds, clipped to the grid."""
    height, width = shape
    minx, miny, maxx, maxy = bounds
    col0 = max(0, math.floor((minx - transform.c) / transform.a))
    col1 = min(width, math.ceil((maxx - transform.c) / transform.a))
    row0 = max(0, math.floor((maxy - transform.f) / transform.e))
    row1 = min(height, math.ceil((miny - transform.f) / transform.e))
    if col1 <= col0 or row1 <= row0:
        raise ValueError(f"Geometry bounds {tuple(bounds)} fall outside the raster extent")
    return Window(col0, row0, col1 - col0, row1 - row0)


def coverage_weights(transform: Affine, window: Window, polygon) -> np.ndarray:
    """Fraction of each window cell's area covered by polygon (0..1)."""
    rows = np.arange(window.row_off, window.row_off + window.height)
    cols = np.arange(window.col_off, window.col_off + window.width)
    cc, rr = np.meshgrid(cols, rows)

    x0 = transform.c + cc * transform.a
    y0 = transform.f + rr * transform.e
    cells = shapely.box(x0, y0 + transform.e, x0 + transform.a, y0)

    shapely.prepare(polygon)
    cell_area = abs(transform.a * transform.e)
    weights = np.zeros(cells.shape, dtype=float)
    hit = shapely.intersects(polygon, cells)
    weights[hit] = shapely.area(shapely.intersection(cells[hit], polygon)) / cell_area
    return weights


def zonal_means(paths: Sequence[Path], polygon) -> Dict[str, float]:
    """Area-weighted mean of each layer under polygon.

    Nodata and NaN cells are left out of both numerator and denominator.
    Raises if the polygon covers no valid cell of some layer.
    """
    with rasterio.open(paths[0]) as ref:
        transform, shape = ref.transform, (ref.height, ref.width)
    window = polygon_window(transform, shape, polygon.bounds)
    weights = coverage_weights(transform, window, polygon)

    out: Dict[str, float] = {}
    for p in paths:
        with rasterio.open(p) as src:
            band = src.read(1, window=window, masked=True)
        values = np.ma.filled(band.astype(float), np.nan)
        w = np.where(np.isfinite(values), weights, 0.0)
        total = w.sum()
        if total <= 0:
            raise ValueError(f"{p.stem}: geometry covers no valid cells")
        out[p.stem] = float(np.nansum(values * w) / total)
    return out
