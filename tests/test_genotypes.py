#!/usr/bin/env python3

from __future__ import annotations

import logging

import numpy as np
import pandas as pd
import pytest

from landgen.pairwise import genotypes as g


def test_parse_call_separators():
    assert g.parse_call("95:127") == ("95", "127")
    assert g.parse_call("95/127") == ("95", "127")
    assert g.parse_call("95 | 127") == ("95", "127")
    assert g.parse_call("A,B") == ("A", "B")


def test_parse_call_packed_and_leading_zeros():
    assert g.parse_call("095127") == ("95", "127")
    assert g.parse_call("095:095") == ("95", "95")
    assert g.parse_call("12345") is None


def test_parse_call_missing():
    for value in (None, np.nan, "", " ", "NA", "?", "0:0", "0:127", "1:2:3"):
        assert g.parse_call(value) is None, value


def _frame():
    return pd.DataFrame({
        "animal_id": ["A", "B", "C", "D"],
        "x": ["0", "100", "", "300"],
        "y": ["0", "0", "0", "0"],
        "L1": ["1:1", "1:2", "2:2", "NA"],
        "L2": ["1:1", "1:1", "1:2", "2:2"],
    })


def test_samples_from_frame_drops_incomplete(caplog):
    with caplog.at_level(logging.WARNING):
        samples = g.samples_from_frame(_frame())
    assert [s.sample_id for s in samples] == ["A", "B"]
    assert samples[1].genotype == {"L1": ("1", "2"), "L2": ("1", "1")}
    assert "C: missing coordinates" in caplog.text
    assert "D: missing call at L1" in caplog.text


def test_samples_from_frame_explicit_loci():
    samples = g.samples_from_frame(_frame(), loci=["L2"])
    assert [s.sample_id for s in samples] == ["A", "B", "D"]
    assert list(samples[0].genotype) == ["L2"]


def test_samples_from_frame_rejects_duplicates_and_missing_columns():
    df = _frame()
    df.loc[1, "animal_id"] = "A"
    with pytest.raises(ValueError, match="Duplicate"):
        g.samples_from_frame(df)
    with pytest.raises(ValueError, match="missing columns"):
        g.samples_from_frame(_frame().drop(columns=["y"]))
    with pytest.raises(ValueError, match="not in genotype table"):
        g.samples_from_frame(_frame(), loci=["L9"])


def test_samples_from_frame_needs_two_samples():
    with pytest.raises(ValueError, match="at least 2"):
        g.samples_from_frame(_frame().iloc[:1])


def test_load_samples_keeps_calls_as_text(tmp_path):
    p = tmp_path / "samples.csv"
    p.write_text("animal_id,x,y,L1\n1,0,0,095127\n2,10,0,095095\n")
    samples = g.load_samples(p)
    assert samples[0].sample_id == "1"
    assert samples[0].genotype["L1"] == ("95", "127")
    with pytest.raises(SystemExit):
        g.load_samples(tmp_path / "missing.csv")
