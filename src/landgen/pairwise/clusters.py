#!/usr/bin/env python3
"""clusters.py

Spatial groups for cross-validation.

Samples are partitioned into k groups by k-means on their raw projected
coordinates. The group table is written once, next to the pair table, and
both model runs (straight-line and least-cost-path) read the same file.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from landgen.pairwise.genotypes import Sample


def assign_spatial_clusters(
    samples: Sequence[Sample],
    *,
    n_clusters: int = 10,
    seed: int = 1234,
    id_column: str = "animal_id",
) -> pd.DataFrame:
    """Return one row per sample with its cluster number (1..n_clusters)."""
    if n_clusters < 2:
        raise ValueError(f"n_clusters must be >= 2, got {n_clusters}")
    if len(samples) < n_clusters:
        raise ValueError(f"Cannot form {n_clusters} spatial clusters from {len(samples)} samples")

    xy = np.array([[s.x, s.y] for s in samples], dtype=float)
    labels = KMeans(n_clusters=n_clusters, n_init=10, random_state=seed).fit_predict(xy)

    out = pd.DataFrame({
        id_column: [s.sample_id for s in samples],
        "cluster": labels.astype(int) + 1,
    })
    return out.sort_values(["cluster", id_column]).reset_index(drop=True)


def validate_partition(clusters: pd.DataFrame, id_column: str = "animal_id", n_clusters: Optional[int] = None) -> None:
    """Every sample in exactly one cluster, clusters numbered 1..k with no gaps.

    With n_clusters given, k must equal it (k-means returns fewer groups when
    samples sit at fewer distinct locations).
    """
    if clusters[id_column].duplicated().any():
        dupes = sorted(set(clusters.loc[clusters[id_column].duplicated(), id_column]))
        raise ValueError(f"Samples assigned to more than one cluster: {dupes[:10]}")
    if clusters["cluster"].isna().any():
        raise ValueError("Samples with no cluster assignment")
    found = sorted(int(c) for c in clusters["cluster"].unique())
    if found != list(range(1, len(found) + 1)):
        raise ValueError(f"Cluster numbers must run 1..k, found {found}")
    if n_clusters is not None and len(found) != n_clusters:
        raise ValueError(f"Expected {n_clusters} spatial clusters, k-means produced {len(found)}")
