#!/usr/bin/env python3
"""distances.py

Pairwise geographic and genetic distances.

Every distance here is symmetric, so only the lower triangle of each n x n
matrix is materialized, one row per unordered pair. Rows are keyed on the
canonical pair (id_1 < id_2, lexicographic) so tables computed separately can
be joined on (id_1, id_2) without misalignment.

Genetic distances:
- euc_gen: Euclidean distance between individual allele-frequency vectors
  (frequencies 0, 0.5, 1 over every allele observed at each locus).
- Dps_1: 1 - proportion of shared alleles, averaged over loci.
- GD: first principal component of (euc_gen, Dps_1), sign-checked and
  rescaled to [0, 1]. This is the regression target.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd
from scipy.spatial.distance import pdist, squareform
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from landgen.pairwise.genotypes import Sample

PAIR_KEY = ["id_1", "id_2"]


# -----------------------------------------------------------------------------
# Pair bookkeeping
# -----------------------------------------------------------------------------

def canonicalize_pairs(df: pd.DataFrame) -> pd.DataFrame:
    """Order each pair so id_1 < id_2 and reject self-pairs / duplicates."""
    a = df["id_1"].astype(str)
    b = df["id_2"].astype(str)
    if (a == b).any():
        raise ValueError(f"Self-pairs present: {sorted(set(a[a == b]))[:10]}")

    out = df.copy()
    swap = a > b
    out["id_1"] = np.where(swap, b, a)
    out["id_2"] = np.where(swap, a, b)

    dupes = out.duplicated(subset=PAIR_KEY)
    if dupes.any():
        raise ValueError(f"Duplicate pairs after canonical ordering: {int(dupes.sum())}")
    return out


def lower_triangle_pairs(matrix: np.ndarray, ids: Sequence[str], name: str) -> pd.DataFrame:
    """Convert a symmetric distance matrix into one row per unordered pair."""
    matrix = np.asarray(matrix, dtype=float)
    n = len(ids)
    if matrix.shape != (n, n):
        raise ValueError(f"Matrix shape {matrix.shape} does not match {n} ids")

    rows, cols = np.tril_indices(n, k=-1)
    ids_arr = np.asarray(ids, dtype=object)
    df = pd.DataFrame({
        "id_1": ids_arr[rows],
        "id_2": ids_arr[cols],
        name: matrix[rows, cols],
    })
    return canonicalize_pairs(df)


# -----------------------------------------------------------------------------
# Geographic distance
# -----------------------------------------------------------------------------

def geographic_distance_matrix(samples: Sequence[Sample]) -> np.ndarray:
    xy = np.array([[s.x, s.y] for s in samples], dtype=float)
    return squareform(pdist(xy, metric="euclidean"))


def geographic_distance_pairs(samples: Sequence[Sample]) -> pd.DataFrame:
    ids = [s.sample_id for s in samples]
    return lower_triangle_pairs(geographic_distance_matrix(samples), ids, "euc_geog")


# -----------------------------------------------------------------------------
# Genetic distance
# -----------------------------------------------------------------------------

def _loci(samples: Sequence[Sample]) -> List[str]:
    loci = list(samples[0].genotype.keys())
    for s in samples[1:]:
        if set(s.genotype.keys()) != set(loci):
            raise ValueError(f"Sample {s.sample_id} is genotyped at a different set of loci")
    return loci


def allele_frequency_blocks(samples: Sequence[Sample]) -> Dict[str, np.ndarray]:
    """Per-locus (n_samples x n_alleles) frequency matrices.

    A homozygote contributes 1.0 to its allele, a heterozygote 0.5 to each.
    Alleles are the union observed at that locus across all samples.
    """
    blocks: Dict[str, np.ndarray] = {}
    for locus in _loci(samples):
        alleles = sorted({a for s in samples for a in s.genotype[locus]})
        col = {a: j for j, a in enumerate(alleles)}
        freq = np.zeros((len(samples), len(alleles)), dtype=float)
        for i, s in enumerate(samples):
            for a in s.genotype[locus]:
                freq[i, col[a]] += 0.5
        blocks[locus] = freq
    return blocks


def allele_frequency_matrix(samples: Sequence[Sample]) -> np.ndarray:
    """All loci side by side: (n_samples x total alleles)."""
    return np.hstack(list(allele_frequency_blocks(samples).values()))


def euclidean_genetic_pairs(samples: Sequence[Sample]) -> pd.DataFrame:
    ids = [s.sample_id for s in samples]
    d = squareform(pdist(allele_frequency_matrix(samples), metric="euclidean"))
    return lower_triangle_pairs(d, ids, "euc_gen")


def shared_allele_matrix(samples: Sequence[Sample]) -> np.ndarray:
    """Mean over loci of the proportion of shared alleles, sum_a min(p_ia, p_ja)."""
    blocks = list(allele_frequency_blocks(samples).values())
    n = len(samples)
    total = np.zeros((n, n), dtype=float)
    for freq in blocks:
        total += np.minimum(freq[:, None, :], freq[None, :, :]).sum(axis=2)
    return total / len(blocks)


def shared_allele_pairs(samples: Sequence[Sample]) -> pd.DataFrame:
    ids = [s.sample_id for s in samples]
    return lower_triangle_pairs(1.0 - shared_allele_matrix(samples), ids, "Dps_1")


# -----------------------------------------------------------------------------
# Composite genetic distance
# -----------------------------------------------------------------------------

def min_max_normalize(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    lo = np.nanmin(values)
    hi = np.nanmax(values)
    if not np.isfinite(lo) or not np.isfinite(hi) or hi == lo:
        raise ValueError(f"Cannot rescale to [0, 1]: min={lo}, max={hi}")
    return (values - lo) / (hi - lo)


def composite_genetic_distance(df: pd.DataFrame, columns: Sequence[str] = ("euc_gen", "Dps_1")) -> np.ndarray:
    """First principal component of the genetic metrics, rescaled to [0, 1].

    Inputs are centered and scaled before PCA. The component's sign is
    arbitrary, so it is oriented to correlate positively with the first
    metric and then checked against every metric; a composite that does not
    correlate positively with all of them is rejected.
    """
    columns = list(columns)
    X = df[columns].to_numpy(dtype=float)
    if len(X) < 3:
        raise ValueError(f"Need at least 3 pairs for a composite distance, got {len(X)}")
    if not np.isfinite(X).all():
        raise ValueError(f"Non-finite values in {columns}")

    Xs = StandardScaler().fit_transform(X)
    # Project through the loadings so identical rows get identical scores
    pc1 = Xs @ PCA(n_components=1).fit(Xs).components_[0]
    if np.corrcoef(pc1, X[:, 0])[0, 1] < 0:
        pc1 = -pc1

    for j, name in enumerate(columns):
        r = np.corrcoef(pc1, X[:, j])[0, 1]
        if not r > 0:
            raise ValueError(
                f"Composite genetic distance is not positively correlated with {name} (r={r:.3f}). "
                "The input metrics disagree; check the genotype data."
            )
    return min_max_normalize(pc1)
