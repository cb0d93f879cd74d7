#!/usr/bin/env python3
"""genotypes.py

Load per-individual genotype + coordinate records into Sample objects.

Input is a CSV with one row per animal: an id column, projected x/y
coordinates, and one column per microsatellite locus. Each call holds two
alleles, written like "123:127", "123/127", "123 127" or the separator-free
"123127".

Samples with missing coordinates or any missing call are dropped here, so
every pair built downstream involves two fully genotyped, located animals.
Nothing is zero-filled.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

log = logging.getLogger(__name__)

Call = Tuple[str, str]

_SEPARATORS = re.compile(r"[:/|,\-\s]+")
_MISSING_TOKENS = {"", "na", "nan", "?", "-"}


@dataclass(frozen=True)
class Sample:
    sample_id: str
    x: float
    y: float
    genotype: Mapping[str, Call]


def parse_call(value) -> Optional[Call]:
    """Parse one diploid call into two allele strings.

    Returns None for missing data (NaN, blanks, "NA", zero alleles).
    """
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    s = str(value).strip()
    if s.lower() in _MISSING_TOKENS:
        return None

    parts = [p for p in _SEPARATORS.split(s) if p]
    if len(parts) == 1:
        token = parts[0]
        # "123127" -> ("123", "127")
        if len(token) % 2 != 0:
            return None
        half = len(token) // 2
        parts = [token[:half], token[half:]]
    if len(parts) != 2:
        return None

    alleles = []
    for a in parts:
        # Strip leading zeros so "095" and "95" are the same allele
        a = str(int(a)) if a.isdigit() else a
        if a == "0":
            return None
        alleles.append(a)
    return alleles[0], alleles[1]


def _infer_loci(columns: Sequence[str], reserved: Sequence[str]) -> List[str]:
    loci = [c for c in columns if c not in reserved]
    if not loci:
        raise ValueError("No locus columns found (only id/x/y present).")
    return loci


def samples_from_frame(
    df: pd.DataFrame,
    *,
    id_column: str = "animal_id",
    x_column: str = "x",
    y_column: str = "y",
    loci: Optional[Sequence[str]] = None,
) -> List[Sample]:
    """Turn a genotype table into Samples, dropping incomplete records."""
    required = [id_column, x_column, y_column]
    missing_cols = [c for c in required if c not in df.columns]
    if missing_cols:
        raise ValueError(f"Genotype table is missing columns: {missing_cols}")

    loci = list(loci) if loci else _infer_loci(list(df.columns), required)
    absent = [c for c in loci if c not in df.columns]
    if absent:
        raise ValueError(f"Configured loci not in genotype table: {absent}")

    ids = df[id_column].astype(str).str.strip()
    dupes = sorted(set(ids[ids.duplicated()]))
    if dupes:
        raise ValueError(f"Duplicate sample ids: {dupes[:10]}")

    samples: List[Sample] = []
    dropped: Dict[str, str] = {}
    for sid, (_, row) in zip(ids, df.iterrows()):
        x = pd.to_numeric(row[x_column], errors="coerce")
        y = pd.to_numeric(row[y_column], errors="coerce")
        if pd.isna(x) or pd.isna(y):
            dropped[sid] = "missing coordinates"
            continue

        genotype: Dict[str, Call] = {}
        for locus in loci:
            call = parse_call(row[locus])
            if call is None:
                dropped[sid] = f"missing call at {locus}"
                break
            genotype[locus] = call
        else:
            samples.append(Sample(sid, float(x), float(y), genotype))

    if dropped:
        log.warning("[PAIRWISE] Dropped %d incomplete samples", len(dropped))
        for sid, reason in sorted(dropped.items()):
            log.warning("  - %s: %s", sid, reason)

    if len(samples) < 2:
        raise ValueError(f"Need at least 2 complete samples, found {len(samples)}")
    return samples


def load_samples(
    path: Path,
    *,
    id_column: str = "animal_id",
    x_column: str = "x",
    y_column: str = "y",
    loci: Optional[Sequence[str]] = None,
) -> List[Sample]:
    """Read a genotype CSV from disk (see samples_from_frame)."""
    if not path.exists():
        raise SystemExit(f"Genotype table not found: {path}")
    # Everything as text so "095:127" and "95127" survive; x/y are coerced later
    df = pd.read_csv(path, dtype=str, keep_default_na=True)
    samples = samples_from_frame(
        df, id_column=id_column, x_column=x_column, y_column=y_column, loci=loci
    )
    log.info("[PAIRWISE] Loaded %d samples x %d loci from %s", len(samples), len(samples[0].genotype), path)
    return samples
