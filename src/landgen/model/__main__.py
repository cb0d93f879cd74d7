#!/usr/bin/env python3
"""landgen.model

Spatial-CV modeling CLI for landgen.

This is one of several landgen stage CLIs:
- landgen.pairwise → pairwise distances
- landgen.extract  → covariate means along transects
- landgen.model    → boosted model, prediction raster, ALE tables (this file)
- landgen.unicor   → resistance surface for UNICOR

Examples:
  # Straight-line model on pairs within 40 km; writes the resistance raster
  python -m landgen.model train

  # Same model on least-cost-path extractions, to its own directory
  python -m landgen.model train --input lcp --model-dir results/model_lcp_40_km --out-raster results/pred_lcp_40_km.tif

  # Accumulated local effects of the selected covariates
  python -m landgen.model effects
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

log = logging.getLogger("landgen.model")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="landgen.model",
        description="Gradient boosting with spatial cross-validation and forward feature selection",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_global_args(ap)

    sub = ap.add_subparsers(dest="command", required=True)

    train = sub.add_parser(
        "train",
        help="Select covariates, fit the model, predict the resistance surface",
        description="""
Fit a gradient boosting model of GD (composite genetic distance).

This command:
1. Reads an extracted table and keeps pairs within --max-geo-m
2. Builds one training fold per spatial cluster (pairs touching the cluster are held out)
3. Runs forward feature selection over the hyperparameter grid
4. Refits the accepted subset and saves it
5. Predicts every raster cell with geographic distance fixed at the training median
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    train.add_argument("--input", choices=["straight", "lcp"], default="straight", help="Which extraction to model (default: straight)")
    train.add_argument("--extracted-csv", type=Path, default=None, help="Extracted table (overrides --input)")
    train.add_argument("--clusters-csv", type=Path, default=None, help="Spatial cluster table (default: paths.clusters_csv)")
    train.add_argument("--env-dir", type=Path, default=None, help="Covariate GeoTIFFs (default: paths.env_dir)")
    train.add_argument("--model-dir", type=Path, default=None, help="Output directory (default: paths.model_dir)")
    train.add_argument("--out-raster", type=Path, default=None, help="Prediction GeoTIFF (default: paths.resistance_tif)")
    train.add_argument("--no-predict", action="store_true", help="Skip the raster prediction")
    train.add_argument("--max-geo-m", type=float, default=None, help="Maximum pair distance (default: model.max_geo_m)")
    train.add_argument("--n-jobs", type=int, default=None, help="Parallel grid-search jobs (default: model.n_jobs)")

    effects = sub.add_parser("effects", help="Accumulated local effects of a saved model")
    effects.add_argument("--model-dir", type=Path, default=None, help="Model directory (default: paths.model_dir)")
    effects.add_argument("--out-csv", type=Path, default=None, help="Output table (default: <model-dir>/ale.csv)")
    effects.add_argument("--grid-size", type=int, default=None, help="Quantile intervals per covariate (default: model.ale_grid_size)")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_train(args: argparse.Namespace, cfg: dict) -> int:
    mcfg = stage_config(cfg, "model")
    pcfg = cfg.get("pairwise") or {}

    extracted = config_path(cfg, f"extracted_{args.input}_csv", args.extracted_csv)
    clusters = config_path(cfg, "clusters_csv", args.clusters_csv)
    env_dir = config_path(cfg, "env_dir", args.env_dir)
    model_dir = config_path(cfg, "model_dir", args.model_dir)
    out_raster = None if args.no_predict else config_path(cfg, "resistance_tif", args.out_raster)
    max_geo_m = args.max_geo_m if args.max_geo_m is not None else mcfg.get("max_geo_m", 40000)
    n_jobs = args.n_jobs if args.n_jobs is not None else int(mcfg.get("n_jobs", -1))

    if args.dry_run:
        log.info("[dry-run] Would train model:")
        log.info("  Extracted table: %s", extracted)
        log.info("  Clusters: %s", clusters)
        log.info("  Max pair distance: %s", max_geo_m)
        log.info("  Grid: %s", mcfg.get("grid"))
        log.info("  Model dir: %s", model_dir)
        log.info("  Prediction: %s", out_raster or "(skipped)")
        return 0

    from landgen.model.train_model import MODEL_FILE, train_ffs_model

    if skip_existing(model_dir / MODEL_FILE, args.overwrite):
        return 0

    train_ffs_model(
        extracted,
        clusters,
        env_dir,
        model_dir,
        out_raster=out_raster,
        max_geo_m=float(max_geo_m) if max_geo_m is not None else None,
        covariates=mcfg.get("covariates"),
        grid=mcfg.get("grid"),
        min_vars=int(mcfg.get("min_vars", 2)),
        subsample=float(mcfg.get("subsample", 0.5)),
        seed=int(mcfg.get("seed", 1234)),
        n_jobs=n_jobs,
        mask_layer=mcfg.get("mask_layer"),
        id_column=pcfg.get("id_column", "animal_id"),
    )
    return 0


def _handle_effects(args: argparse.Namespace, cfg: dict) -> int:
    mcfg = stage_config(cfg, "model")
    model_dir = config_path(cfg, "model_dir", args.model_dir)
    grid_size = args.grid_size if args.grid_size is not None else int(mcfg.get("ale_grid_size", 100))

    if args.dry_run:
        log.info("[dry-run] Would compute ALE curves for %s (grid %d)", model_dir, grid_size)
        return 0

    from landgen.model.train_model import write_effects

    write_effects(model_dir, args.out_csv, grid_size=grid_size)
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
        "train": _handle_train,
        "effects": _handle_effects,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
