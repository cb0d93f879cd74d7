#!/usr/bin/env python3
"""spatial_cv.py

Training data and spatial cross-validation folds for the boosted model.

A fold is built per spatial cluster. Its training rows are the pairs in
which neither animal belongs to the held-out cluster; every other pair
(touching the cluster at either end) is a test row. A pair therefore never
trains a model that is scored on one of its own animals' neighbours.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

log = logging.getLogger(__name__)

TARGET = "GD"
GEODIST = "euc_geog"

# Columns written by landgen.pairwise; anything else in the extracted table is a covariate
PAIR_METADATA = {"index", "id_1", "id_2", "x_1", "y_1", "x_2", "y_2", "euc_gen", "Dps_1", TARGET, GEODIST}

Fold = Tuple[np.ndarray, np.ndarray]


def candidate_covariates(df: pd.DataFrame) -> List[str]:
    """Covariate layer columns plus geographic distance."""
    layers = [c for c in df.columns if c not in PAIR_METADATA]
    if not layers:
        raise ValueError("Extracted table has no covariate columns")
    return layers + [GEODIST]


def load_training_table(
    path: Path,
    *,
    max_geo_m: Optional[float] = 40000.0,
    covariates: Optional[Sequence[str]] = None,
) -> Tuple[pd.DataFrame, List[str]]:
    """Read an extracted table and keep the pairs usable for training.

    Pairs farther apart than max_geo_m are dropped, then pairs with a missing
    covariate or target. Row numbers ('index') are reassigned 1..N afterwards.
    """
    if not path.exists():
        raise SystemExit(f"Extracted table not found: {path}")
    df = pd.read_csv(path, dtype={"id_1": str, "id_2": str})

    covariates = list(covariates) if covariates else candidate_covariates(df)
    missing = [c for c in covariates + [TARGET, "id_1", "id_2"] if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} is missing columns: {missing}")

    n0 = len(df)
    if max_geo_m is not None:
        df = df[df[GEODIST] <= max_geo_m]
        log.info("[MODEL] %d of %d pairs within %.0f", len(df), n0, max_geo_m)

    incomplete = df[covariates + [TARGET]].isna().any(axis=1)
    if incomplete.any():
        log.warning("[MODEL] Dropping %d pairs with missing covariates or target", int(incomplete.sum()))
        df = df[~incomplete]
    if df.empty:
        raise ValueError("No pairs left to train on")

    df = df.reset_index(drop=True)
    df["index"] = np.arange(1, len(df) + 1)
    return df, covariates


def load_clusters(path: Path, id_column: str = "animal_id") -> pd.DataFrame:
    if not path.exists():
        raise SystemExit(f"Cluster table not found: {path}")
    clusters = pd.read_csv(path, dtype={id_column: str})
    if id_column not in clusters.columns or "cluster" not in clusters.columns:
        raise ValueError(f"{path.name} must have '{id_column}' and 'cluster' columns")
    return clusters


def spatial_folds(
    pairs: pd.DataFrame,
    clusters: pd.DataFrame,
    *,
    id_column: str = "animal_id",
) -> List[Fold]:
    """(train, test) positional row indices, one fold per spatial cluster.

    Raises if a pair's animal has no cluster or a training fold is empty.
    Clusters with no pairs to test on are skipped with a warning.
    """
    lookup = clusters.set_index(id_column)["cluster"]
    if lookup.index.duplicated().any():
        raise ValueError("Cluster table assigns some animals more than once")

    c1 = pairs["id_1"].astype(str).map(lookup)
    c2 = pairs["id_2"].astype(str).map(lookup)
    unassigned = sorted(set(pairs.loc[c1.isna(), "id_1"]) | set(pairs.loc[c2.isna(), "id_2"]))
    if unassigned:
        raise ValueError(f"Animals in the pair table have no spatial cluster: {unassigned[:10]}")
    c1 = c1.to_numpy()
    c2 = c2.to_numpy()

    folds: List[Fold] = []
    for cluster in sorted(lookup.unique()):
        held_out = (c1 == cluster) | (c2 == cluster)
        train = np.flatnonzero(~held_out)
        test = np.flatnonzero(held_out)
        if len(test) == 0:
            log.warning("[MODEL] Cluster %s has no pairs in the training table; fold skipped", cluster)
            continue
        if len(train) == 0:
            raise ValueError(f"Holding out cluster {cluster} leaves no training pairs")
        folds.append((train, test))

    if len(folds) < 2:
        raise ValueError(f"Need at least 2 spatial folds, got {len(folds)}")
    return folds
