#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box

from conftest import write_raster
from landgen.extract import rasters as r


def test_covariate_stack_from_dir(env_dir):
    stack = r.CovariateStack.from_dir(env_dir)
    assert stack.names == ["canopy", "evi"]


def test_list_covariate_rasters_errors(tmp_path):
    with pytest.raises(SystemExit):
        r.list_covariate_rasters(tmp_path / "missing")
    (tmp_path / "empty").mkdir()
    with pytest.raises(SystemExit):
        r.list_covariate_rasters(tmp_path / "empty")


def test_check_grid_alignment_rejects_mismatch(env_dir, tmp_path):
    paths = r.list_covariate_rasters(env_dir)
    r.check_grid_alignment(paths)

    coarse = write_raster(tmp_path / "coarse.tif", np.zeros((10, 10)), cell=200.0)
    with pytest.raises(ValueError, match="transform"):
        r.check_grid_alignment(paths + [coarse])

    smaller = write_raster(tmp_path / "small.tif", np.zeros((10, 20)), y0=2000.0)
    with pytest.raises(ValueError, match="size"):
        r.check_grid_alignment(paths + [smaller])

    other_crs = write_raster(tmp_path / "crs.tif", np.zeros((20, 20)), crs="EPSG:26910")
    with pytest.raises(ValueError, match="CRS"):
        r.check_grid_alignment(paths + [other_crs])


def test_coverage_weights_sum_to_covered_area(env_dir):
    import rasterio

    with rasterio.open(env_dir / "evi.tif") as src:
        transform, shape = src.transform, (src.height, src.width)
    poly = box(150, 150, 350, 250)
    window = r.polygon_window(transform, shape, poly.bounds)
    w = r.coverage_weights(transform, window, poly)
    assert w.sum() == pytest.approx(poly.area / 100.0 / 100.0)
    assert w.max() <= 1.0


def test_zonal_means_single_cell(env_dir):
    paths = r.list_covariate_rasters(env_dir)
    out = r.zonal_means(paths, box(500, 500, 600, 600))
    assert out == {"canopy": pytest.approx(5.0), "evi": pytest.approx(5.0)}


def test_zonal_means_area_weighted(env_dir):
    paths = r.list_covariate_rasters(env_dir)
    # half of column 4, all of column 5
    out = r.zonal_means(paths, box(450, 500, 600, 600))
    assert out["evi"] == pytest.approx((4 * 0.5 + 5 * 1.0) / 1.5)


def test_zonal_means_ignores_nodata(tmp_path):
    data = np.array([[1.0, -1.0], [3.0, np.nan]])
    p = write_raster(tmp_path / "layer.tif", data, nodata=-1.0)
    out = r.zonal_means([p], box(0, 0, 200, 200))
    assert out["layer"] == pytest.approx(2.0)


def test_zonal_means_errors(tmp_path, env_dir):
    paths = r.list_covariate_rasters(env_dir)
    with pytest.raises(ValueError, match="outside"):
        r.zonal_means(paths, box(5000, 5000, 6000, 6000))

    p = write_raster(tmp_path / "blank.tif", np.full((2, 2), np.nan))
    with pytest.raises(ValueError, match="no valid cells"):
        r.zonal_means([p], box(0, 0, 200, 200))
