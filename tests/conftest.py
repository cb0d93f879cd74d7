#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

CRS = "EPSG:26911"


def write_raster(path: Path, data, *, x0=0.0, y0=None, cell=100.0, nodata=None, crs=CRS) -> Path:
    """Single-band float32 GeoTIFF whose upper-left corner is (x0, y0)."""
    import rasterio
    from rasterio.transform import from_origin

    data = np.asarray(data, dtype="float32")
    if y0 is None:
        y0 = data.shape[0] * cell
    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=data.shape[0],
        width=data.shape[1],
        count=1,
        dtype="float32",
        crs=crs,
        transform=from_origin(x0, y0, cell, cell),
        nodata=nodata,
    ) as dst:
        dst.write(data, 1)
    return path


@pytest.fixture
def env_dir(tmp_path):
    """Two 20x20 covariate layers on a 100 m grid: a constant and an east-west gradient."""
    d = tmp_path / "env"
    cols = np.tile(np.arange(20, dtype=float), (20, 1))
    write_raster(d / "canopy.tif", np.full((20, 20), 5.0))
    write_raster(d / "evi.tif", cols)
    return d
