#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest

from conftest import write_raster
from landgen.unicor import prepare_raster as pr


def _read_asc(path):
    lines = path.read_text().splitlines()
    header = [line.split() for line in lines[: pr.HEADER_LINES]]
    body = np.array([float(v) for line in lines[pr.HEADER_LINES:] for v in line.split()])
    return header, body


def test_normalize_array_unit_range():
    out = pr.normalize_array(np.array([[0.0, 50.0, 100.0]]))
    np.testing.assert_allclose(out, [[0.0, 0.5, 1.0]])


def test_normalize_array_nodata_and_constant():
    out = pr.normalize_array(np.array([2.0, -9999.0, 4.0, np.nan]), nodata=-9999.0)
    np.testing.assert_allclose(out[[0, 2]], [0.0, 1.0])
    assert np.isnan(out[1]) and np.isnan(out[3])
    with pytest.raises(ValueError, match="constant"):
        pr.normalize_array(np.full((2, 2), 3.0))
    with pytest.raises(ValueError, match="no valid cells"):
        pr.normalize_array(np.full((2, 2), np.nan))


def test_lowercase_header():
    lines = [
        "NCOLS 3",
        "NROWS 1",
        "XLLCORNER 0.0",
        "YLLCORNER 0.0",
        "CELLSIZE 100",
        "NODATA_value -9999",
        "0 0.5 1",
    ]
    out = pr.lowercase_header(lines)
    assert out[:6] == [
        "ncols 3", "nrows 1", "xllcorner 0.0", "yllcorner 0.0", "cellsize 100", "nodata_value -9999",
    ]
    assert out[6] == "0 0.5 1"


def test_lowercase_header_rejects_bad_input():
    with pytest.raises(ValueError):
        pr.lowercase_header(["ncols 3"] * 6)
    bad = ["ncols 3", "nrows 1", "xllcenter 0", "yllcenter 0", "cellsize 1", "nodata_value -9999", "0 0 0"]
    with pytest.raises(ValueError, match="header"):
        pr.lowercase_header(bad)


def test_package_for_unicor(tmp_path):
    src = write_raster(tmp_path / "pred.tif", np.array([[0.0, 50.0, 100.0], [np.nan, 25.0, 75.0]]))
    out = tmp_path / "unicor" / "resistance.asc"

    norm = pr.package_for_unicor(src, out)
    np.testing.assert_allclose(norm[0], [0.0, 0.5, 1.0])

    header, body = _read_asc(out)
    assert tuple(h[0] for h in header) == pr.HEADER_KEYS
    assert dict((k, float(v)) for k, v in header)["ncols"] == 3
    assert dict((k, float(v)) for k, v in header)["nodata_value"] == -9999
    np.testing.assert_allclose(body, [0.0, 0.5, 1.0, -9999.0, 0.25, 0.75], rtol=1e-6)


def test_package_for_unicor_errors(tmp_path):
    with pytest.raises(SystemExit):
        pr.package_for_unicor(tmp_path / "missing.tif", tmp_path / "out.asc")
    src = write_raster(tmp_path / "flat.tif", np.full((2, 2), 7.0))
    with pytest.raises(ValueError, match="constant"):
        pr.package_for_unicor(src, tmp_path / "out.asc")
