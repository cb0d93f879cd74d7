#!/usr/bin/env python3
"""transects.py

Geometries connecting the two animals of a pair.

Two rules:
- straight: the segment between the two locations, buffered.
- lcp: the least-cost path over a resistance surface, buffered. Pairs closer
  than the threshold (about one resistance cell) start and end in the same
  cell, so no path is routed; the union of a buffer around each endpoint is
  used instead.

Least-cost routing uses scikit-image's MCP_Geometric on the resistance grid
with 8-connectivity. Moving between neighbouring cells costs the mean of
their resistances times the centre-to-centre distance, i.e. the reciprocal
of a mean-resistance conductance, corrected for diagonal/cell-size distance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple

import numpy as np
import rasterio
from rasterio.transform import Affine, rowcol, xy
from shapely.geometry import LineString, Point
from shapely.ops import unary_union
from skimage.graph import MCP_Geometric

log = logging.getLogger(__name__)

IMPASSABLE = -1.0


def straight_transect(x1: float, y1: float, x2: float, y2: float, buffer_m: float):
    """Buffered straight line between two points."""
    if (x1, y1) == (x2, y2):
        return Point(x1, y1).buffer(buffer_m)
    return LineString([(x1, y1), (x2, y2)]).buffer(buffer_m)


def endpoint_buffers(x1: float, y1: float, x2: float, y2: float, buffer_m: float):
    """Union of a buffer around each endpoint."""
    return unary_union([Point(x1, y1).buffer(buffer_m), Point(x2, y2).buffer(buffer_m)])


@dataclass
class CostSurface:
    """Resistance grid ready for least-cost routing."""

    costs: np.ndarray
    transform: Affine

    @classmethod
    def from_raster(cls, path: Path) -> "CostSurface":
        """Read band 1 of a resistance raster.

        NaN, nodata and non-positive cells become impassable.
        """
        if not path.exists():
            raise SystemExit(f"Resistance raster not found: {path}")
        with rasterio.open(path) as src:
            band = src.read(1, masked=True)
            transform = src.transform
        costs = np.ma.filled(band.astype("float64"), np.nan)
        costs[~np.isfinite(costs) | (costs <= 0)] = IMPASSABLE
        if not (costs > 0).any():
            raise ValueError(f"{path.name}: resistance raster has no passable cells")
        return cls(costs=costs, transform=transform)

    def cell_of(self, x: float, y: float) -> Tuple[int, int]:
        row, col = rowcol(self.transform, x, y)
        height, width = self.costs.shape
        if not (0 <= row < height and 0 <= col < width):
            raise ValueError(f"Point ({x}, {y}) is outside the resistance raster")
        if self.costs[row, col] <= 0:
            raise ValueError(f"Point ({x}, {y}) falls on an impassable resistance cell")
        return int(row), int(col)

    def least_cost_path(self, x1: float, y1: float, x2: float, y2: float):
        """Least-cost route between two points as a line through cell centres.

        Returns a Point when both locations share a cell. Raises RuntimeError
        if the end cell cannot be reached.
        """
        start = self.cell_of(x1, y1)
        end = self.cell_of(x2, y2)
        if start == end:
            cx, cy = xy(self.transform, *start)
            return Point(cx, cy)

        mcp = MCP_Geometric(
            self.costs,
            fully_connected=True,
            sampling=(abs(self.transform.e), abs(self.transform.a)),
        )
        cumulative, _ = mcp.find_costs(starts=[start], ends=[end])
        if not np.isfinite(cumulative[end]):
            raise RuntimeError(f"No least-cost path from cell {start} to cell {end}")

        rows, cols = zip(*mcp.traceback(end))
        xs, ys = xy(self.transform, list(rows), list(cols))
        return LineString(list(zip(xs, ys)))


def lcp_transect(
    x1: float,
    y1: float,
    x2: float,
    y2: float,
    *,
    euc_geog: float,
    surface: CostSurface,
    buffer_m: float,
    threshold_m: float,
):
    """Buffered least-cost path, or endpoint buffers for pairs under threshold_m apart."""
    if euc_geog < threshold_m:
        return endpoint_buffers(x1, y1, x2, y2, buffer_m)
    return surface.least_cost_path(x1, y1, x2, y2).buffer(buffer_m)
