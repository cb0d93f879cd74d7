#!/usr/bin/env python3
"""landgen.pairwise

Pairwise dataset CLI for landgen.

This is one of several landgen stage CLIs:
- landgen.pairwise → genotypes + coordinates to pairwise distances (this file)
- landgen.extract  → covariate means along straight lines / least-cost paths
- landgen.model    → spatial-CV boosted model, prediction raster, ALE tables
- landgen.unicor   → resistance surface for UNICOR

Each stage reads the previous stage's files from the paths in
config/pipeline.yaml and can be run on its own.

Examples:
  # Build pairwise distances and spatial clusters
  python -m landgen.pairwise build

  # Same, with a different input table and 8 clusters
  python -m landgen.pairwise build --samples-csv data/raw/subset.csv --n-clusters 8
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from landgen.config import (
    add_global_args,
    config_path,
    configure_logging,
    load_yaml,
    skip_existing,
    stage_config,
)

log = logging.getLogger("landgen.pairwise")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="landgen.pairwise",
        description="Pairwise genetic/geographic distance dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_global_args(ap)

    sub = ap.add_subparsers(dest="command", required=True)

    build = sub.add_parser(
        "build",
        help="Build the pairwise dataset and spatial clusters",
        description="""
Build the pairwise dataset from a genotype + coordinate table.

This command:
1. Loads samples, dropping any with missing coordinates or calls
2. Computes Euclidean geographic distance for every unordered pair
3. Computes Euclidean allele-frequency distance and 1 - proportion of shared alleles
4. Combines the two genetic metrics into GD (PCA, sign-checked, rescaled to [0, 1])
5. Clusters sample coordinates into spatial groups for cross-validation
6. Writes the pair table and the cluster table
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    build.add_argument("--samples-csv", type=Path, default=None, help="Genotype + coordinate CSV (default: paths.samples_csv)")
    build.add_argument("--out-pairs", type=Path, default=None, help="Output pair table (default: paths.pairs_csv)")
    build.add_argument("--out-clusters", type=Path, default=None, help="Output cluster table (default: paths.clusters_csv)")
    build.add_argument("--n-clusters", type=int, default=None, help="Number of spatial clusters (default: pairwise.n_clusters)")
    build.add_argument("--seed", type=int, default=None, help="k-means seed (default: pairwise.seed)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_build(args: argparse.Namespace, cfg: dict) -> int:
    pcfg = stage_config(cfg, "pairwise")
    samples_csv = config_path(cfg, "samples_csv", args.samples_csv)
    out_pairs = config_path(cfg, "pairs_csv", args.out_pairs)
    out_clusters = config_path(cfg, "clusters_csv", args.out_clusters)
    n_clusters = args.n_clusters if args.n_clusters is not None else int(pcfg.get("n_clusters", 10))
    seed = args.seed if args.seed is not None else int(pcfg.get("seed", 1234))

    if not samples_csv.exists():
        raise SystemExit(f"Genotype table not found: {samples_csv}")

    if args.dry_run:
        log.info("[dry-run] Would build pairwise dataset:")
        log.info("  Input: %s", samples_csv)
        log.info("  Pairs: %s", out_pairs)
        log.info("  Clusters: %s (k=%d, seed=%d)", out_clusters, n_clusters, seed)
        return 0

    existing = [p for p in (out_pairs, out_clusters) if p.exists()]
    if existing and not args.overwrite:
        if len(existing) == 2:
            skip_existing(out_pairs, args.overwrite)
            return 0
        raise SystemExit(f"{existing[0]} exists but its companion output does not; rerun with --overwrite")

    from landgen.pairwise.build_pairwise import build_pairwise_dataset

    build_pairwise_dataset(
        samples_csv,
        out_pairs,
        out_clusters,
        id_column=pcfg.get("id_column", "animal_id"),
        x_column=pcfg.get("x_column", "x"),
        y_column=pcfg.get("y_column", "y"),
        loci=pcfg.get("loci"),
        n_clusters=n_clusters,
        seed=seed,
    )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    configure_logging(args.verbose)

    cfg = load_yaml(args.config)

    handlers = {
        "build": _handle_build,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
