#!/usr/bin/env python3
"""prepare_raster.py

Turn a prediction raster into a UNICOR resistance grid.

UNICOR reads ESRI ASCII grids with a six-line header whose keys are
lowercase (ncols, nrows, xllcorner, yllcorner, cellsize, nodata_value),
followed by row-major cell values. Values are rescaled to [0, 1] first.

Called by:
  python -m landgen.unicor package
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

import numpy as np
import rasterio

log = logging.getLogger(__name__)

HEADER_LINES = 6
HEADER_KEYS = ("ncols", "nrows", "xllcorner", "yllcorner", "cellsize", "nodata_value")


def normalize_array(values: np.ndarray, nodata=None) -> np.ndarray:
    """(v - min) / (max - min) over finite, non-nodata cells; other cells become NaN."""
    values = np.asarray(values, dtype="float64")
    valid = np.isfinite(values)
    if nodata is not None and np.isfinite(nodata):
        valid &= values != nodata
    if not valid.any():
        raise ValueError("Raster has no valid cells to normalize")

    lo = values[valid].min()
    hi = values[valid].max()
    if hi == lo:
        raise ValueError(f"Raster is constant ({lo}); cannot rescale to [0, 1]")

    out = np.full(values.shape, np.nan)
    out[valid] = (values[valid] - lo) / (hi - lo)
    return out


def lowercase_header(lines: Sequence[str], n_header: int = HEADER_LINES) -> List[str]:
    """Lowercase the key of each header line; values and body stay as written."""
    if len(lines) <= n_header:
        raise ValueError(f"Expected {n_header} header lines followed by data, got {len(lines)} lines")

    header = []
    for line in lines[:n_header]:
        parts = line.split(None, 1)
        if len(parts) != 2:
            raise ValueError(f"Malformed header line: {line!r}")
        key, rest = parts
        header.append(f"{key.lower()} {rest.strip()}")

    keys = tuple(h.split()[0] for h in header)
    if keys != HEADER_KEYS:
        raise ValueError(f"Unexpected ASCII grid header {keys}; UNICOR needs {HEADER_KEYS}")
    return header + list(lines[n_header:])


def write_ascii_grid(values: np.ndarray, profile: dict, out_path: Path, *, nodata: float = -9999.0) -> None:
    """Write values with GDAL's AAIGrid driver (square cells only)."""
    transform = profile["transform"]
    if not np.isclose(abs(transform.a), abs(transform.e)):
        raise ValueError(f"ASCII grids need square cells, got {transform.a} x {abs(transform.e)}")

    data = np.where(np.isfinite(values), values, nodata).astype("float32")
    out_profile = {
        "driver": "AAIGrid",
        "height": data.shape[0],
        "width": data.shape[1],
        "count": 1,
        "dtype": "float32",
        "crs": profile.get("crs"),
        "transform": transform,
        "nodata": nodata,
    }
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(out_path, "w", **out_profile) as dst:
        dst.write(data, 1)


def package_for_unicor(src_path: Path, out_path: Path, *, nodata: float = -9999.0) -> np.ndarray:
    """Normalize a prediction raster and write it as a UNICOR .asc grid.

    Returns the normalized array (NaN where the input had no data).
    """
    if not src_path.exists():
        raise SystemExit(f"Prediction raster not found: {src_path}")
    with rasterio.open(src_path) as src:
        values = src.read(1).astype("float64")
        profile = src.profile.copy()

    norm = normalize_array(values, nodata=profile.get("nodata"))
    write_ascii_grid(norm, profile, out_path, nodata=nodata)

    lines = out_path.read_text().splitlines()
    out_path.write_text("\n".join(lowercase_header(lines)) + "\n")

    log.info("[UNICOR] Wrote %dx%d resistance grid -> %s", norm.shape[1], norm.shape[0], out_path)
    return norm
