#!/usr/bin/env python3

from __future__ import annotations

from pathlib import Path

import pytest

from landgen import config as lc

ROOT = Path(__file__).resolve().parents[1]


def test_load_yaml_missing_file(tmp_path):
    with pytest.raises(SystemExit):
        lc.load_yaml(tmp_path / "nope.yaml")


def test_load_yaml_rejects_non_mapping(tmp_path):
    p = tmp_path / "list.yaml"
    p.write_text("- a\n- b\n")
    with pytest.raises(SystemExit):
        lc.load_yaml(p)


def test_stage_config_requires_section():
    with pytest.raises(SystemExit):
        lc.stage_config({"paths": {}}, "model")
    assert lc.stage_config({"model": {"seed": 1}}, "model") == {"seed": 1}


def test_config_path_override_wins():
    cfg = {"paths": {"pairs_csv": "data/pairs.csv"}}
    assert lc.config_path(cfg, "pairs_csv") == Path("data/pairs.csv")
    assert lc.config_path(cfg, "pairs_csv", Path("x.csv")) == Path("x.csv")
    with pytest.raises(SystemExit):
        lc.config_path(cfg, "env_dir")


def test_skip_existing(tmp_path):
    p = tmp_path / "out.csv"
    assert not lc.skip_existing(p, overwrite=False)
    p.write_text("x\n")
    assert lc.skip_existing(p, overwrite=False)
    assert not lc.skip_existing(p, overwrite=True)


def test_shipped_pipeline_config_has_every_stage():
    cfg = lc.load_yaml(ROOT / "config" / "pipeline.yaml")
    for section in ("paths", "pairwise", "extract", "model", "unicor"):
        assert isinstance(lc.stage_config(cfg, section), dict)
    assert cfg["extract"]["lcp_threshold_m"] == 510
    assert cfg["model"]["min_vars"] == 2
