#!/usr/bin/env python3
"""landgen.extract

Transect covariate extraction CLI for landgen.

This is one of several landgen stage CLIs:
- landgen.pairwise → pairwise distances
- landgen.extract  → covariate means along transects (this file)
- landgen.model    → spatial-CV boosted model
- landgen.unicor   → resistance surface for UNICOR

Two subcommands, one per transect rule. Both read the pair table from
landgen.pairwise and the covariate GeoTIFFs in paths.env_dir.

Examples:
  # Straight lines buffered by 1 km, 20 worker processes
  python -m landgen.extract straight

  # Least-cost paths over the straight-line model's prediction
  python -m landgen.extract lcp --resistance results/pred_straight_40_km.tif

  # Keep the buffered transects for a look in QGIS
  python -m landgen.extract straight --qa-gpkg results/transects_straight.gpkg
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

log = logging.getLogger("landgen.extract")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--pairs-csv", type=Path, default=None, help="Pair table (default: paths.pairs_csv)")
    p.add_argument("--env-dir", type=Path, default=None, help="Directory of covariate GeoTIFFs (default: paths.env_dir)")
    p.add_argument("--out-csv", type=Path, default=None, help="Output table (default: paths.extracted_<method>_csv)")
    p.add_argument("--workers", type=int, default=None, help="Worker processes (default: extract.workers)")
    p.add_argument("--buffer-m", type=float, default=None, help="Transect buffer radius (default: extract.buffer_m)")
    p.add_argument("--qa-gpkg", type=Path, default=None, help="Optional GeoPackage of buffered transects")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="landgen.extract",
        description="Mean covariates along pairwise transects",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_global_args(ap)

    sub = ap.add_subparsers(dest="command", required=True)

    straight = sub.add_parser(
        "straight",
        help="Buffered straight lines between pair locations",
    )
    _add_common(straight)

    lcp = sub.add_parser(
        "lcp",
        help="Buffered least-cost paths over a resistance raster",
        description="""
Route a least-cost path for each pair over a resistance raster (8-connected,
mean-resistance cost, distance corrected), buffer it and average covariates.
Pairs closer than --threshold-m use the union of two endpoint buffers.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_common(lcp)
    lcp.add_argument("--resistance", type=Path, default=None, help="Resistance raster (default: paths.resistance_tif)")
    lcp.add_argument("--threshold-m", type=float, default=None, help="Endpoint-buffer threshold (default: extract.lcp_threshold_m)")

    return ap


# -----------------------------------------------------------------------------
# Command handler
# -----------------------------------------------------------------------------

def _handle_extract(args: argparse.Namespace, cfg: dict) -> int:
    method = args.command
    ecfg = stage_config(cfg, "extract")

    pairs_csv = config_path(cfg, "pairs_csv", args.pairs_csv)
    env_dir = config_path(cfg, "env_dir", args.env_dir)
    out_csv = config_path(cfg, f"extracted_{method}_csv", args.out_csv)
    workers = args.workers if args.workers is not None else int(ecfg.get("workers", 20))
    buffer_m = args.buffer_m if args.buffer_m is not None else float(ecfg.get("buffer_m", 1000))

    resistance = None
    threshold_m = float(ecfg.get("lcp_threshold_m", 510))
    if method == "lcp":
        resistance = config_path(cfg, "resistance_tif", args.resistance)
        if args.threshold_m is not None:
            threshold_m = args.threshold_m

    if args.dry_run:
        log.info("[dry-run] Would extract %s transects:", method)
        log.info("  Pairs: %s", pairs_csv)
        log.info("  Covariates: %s", env_dir)
        if resistance is not None:
            log.info("  Resistance: %s (threshold %.0f)", resistance, threshold_m)
        log.info("  Buffer: %.0f, workers: %d", buffer_m, workers)
        log.info("  Output: %s", out_csv)
        return 0

    if skip_existing(out_csv, args.overwrite):
        return 0

    from landgen.extract.extract_covariates import run_extraction

    run_extraction(
        pairs_csv,
        env_dir,
        out_csv,
        method=method,
        resistance_path=resistance,
        buffer_m=buffer_m,
        lcp_threshold_m=threshold_m,
        workers=workers,
        crs=str(ecfg.get("crs", "EPSG:26911")),
        qa_gpkg=args.qa_gpkg,
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
        "straight": _handle_extract,
        "lcp": _handle_extract,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
