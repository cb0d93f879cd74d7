#!/usr/bin/env python3

from __future__ import annotations

import numpy as np
import pytest
import yaml

from conftest import write_raster
from landgen.extract.__main__ import main as extract_main
from landgen.model.__main__ import main as model_main
from landgen.pairwise.__main__ import main as pairwise_main
from landgen.unicor.__main__ import main as unicor_main


def _config(tmp_path, env_dir):
    cfg = {
        "paths": {
            "samples_csv": str(tmp_path / "samples.csv"),
            "env_dir": str(env_dir),
            "pairs_csv": str(tmp_path / "pairs.csv"),
            "clusters_csv": str(tmp_path / "clusters.csv"),
            "extracted_straight_csv": str(tmp_path / "extracted_straight.csv"),
            "extracted_lcp_csv": str(tmp_path / "extracted_lcp.csv"),
            "resistance_tif": str(tmp_path / "pred.tif"),
            "model_dir": str(tmp_path / "model"),
            "unicor_asc": str(tmp_path / "resistance.asc"),
        },
        "pairwise": {"id_column": "animal_id", "n_clusters": 2, "seed": 1234},
        "extract": {"crs": "EPSG:26911", "buffer_m": 100, "lcp_threshold_m": 510, "workers": 1},
        "model": {"max_geo_m": 40000, "min_vars": 2, "n_jobs": 1},
        "unicor": {"nodata": -9999},
    }
    p = tmp_path / "pipeline.yaml"
    p.write_text(yaml.safe_dump(cfg))
    return p


SAMPLES_CSV = """animal_id,x,y,L1,L2
A,500,500,1:1,1:1
B,600,1500,1:2,1:1
C,1500,500,2:2,1:2
D,1500,1500,2:2,2:2
"""


def test_pairwise_then_extract(tmp_path, env_dir):
    cfg = _config(tmp_path, env_dir)
    (tmp_path / "samples.csv").write_text(SAMPLES_CSV)

    assert pairwise_main(["--config", str(cfg), "--dry-run", "build"]) == 0
    assert not (tmp_path / "pairs.csv").exists()

    assert pairwise_main(["--config", str(cfg), "build"]) == 0
    assert (tmp_path / "pairs.csv").exists()
    assert (tmp_path / "clusters.csv").exists()

    assert extract_main(["--config", str(cfg), "straight"]) == 0
    assert (tmp_path / "extracted_straight.csv").exists()

    # existing output is left alone without --overwrite
    stamp = (tmp_path / "extracted_straight.csv").stat().st_mtime_ns
    assert extract_main(["--config", str(cfg), "straight", "--workers", "2"]) == 0
    assert (tmp_path / "extracted_straight.csv").stat().st_mtime_ns == stamp


def test_pairwise_missing_samples(tmp_path, env_dir):
    cfg = _config(tmp_path, env_dir)
    with pytest.raises(SystemExit):
        pairwise_main(["--config", str(cfg), "build"])


def test_model_and_extract_dry_run(tmp_path, env_dir):
    cfg = _config(tmp_path, env_dir)
    assert model_main(["--config", str(cfg), "--dry-run", "train", "--input", "lcp"]) == 0
    assert model_main(["--config", str(cfg), "--dry-run", "effects"]) == 0
    assert extract_main(["--config", str(cfg), "--dry-run", "lcp", "--threshold-m", "300"]) == 0
    assert not (tmp_path / "model").exists()


def test_unicor_package(tmp_path, env_dir):
    cfg = _config(tmp_path, env_dir)
    write_raster(tmp_path / "pred.tif", np.array([[1.0, 2.0], [3.0, 5.0]]))
    assert unicor_main(["--config", str(cfg), "package"]) == 0
    text = (tmp_path / "resistance.asc").read_text()
    assert text.splitlines()[0].startswith("ncols")
    assert "nodata_value" in text


def test_missing_config(tmp_path):
    with pytest.raises(SystemExit):
        unicor_main(["--config", str(tmp_path / "none.yaml"), "package"])


def test_pairwise_build_keeps_lone_existing_output(tmp_path, env_dir):
    cfg = _config(tmp_path, env_dir)
    (tmp_path / "samples.csv").write_text(SAMPLES_CSV)
    (tmp_path / "pairs.csv").write_text("SENTINEL\n")

    with pytest.raises(SystemExit):
        pairwise_main(["--config", str(cfg), "build"])
    assert (tmp_path / "pairs.csv").read_text() == "SENTINEL\n"
    assert not (tmp_path / "clusters.csv").exists()

    assert pairwise_main(["--config", str(cfg), "--overwrite", "build"]) == 0
    assert (tmp_path / "pairs.csv").read_text().startswith("id_1,id_2")
    assert (tmp_path / "clusters.csv").exists()
