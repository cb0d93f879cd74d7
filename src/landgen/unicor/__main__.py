#!/usr/bin/env python3
"""landgen.unicor

UNICOR resistance-surface CLI for landgen.

This is one of several landgen stage CLIs:
- landgen.pairwise → pairwise distances
- landgen.extract  → covariate means along transects
- landgen.model    → boosted model and prediction raster
- landgen.unicor   → resistance surface for UNICOR (this file)

UNICOR itself is run separately with its own starting-points table and .rip
configuration; this stage only writes the resistance grid it reads.

Examples:
  python -m landgen.unicor package
  python -m landgen.unicor package --src results/pred_straight_full.tif --out unicor/asc/resistance_full_dataset.asc
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

log = logging.getLogger("landgen.unicor")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="landgen.unicor",
        description="Prepare resistance rasters for UNICOR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    add_global_args(ap)

    sub = ap.add_subparsers(dest="command", required=True)

    pkg = sub.add_parser(
        "package",
        help="Rescale a prediction raster to [0, 1] and write a UNICOR .asc grid",
    )
    pkg.add_argument("--src", type=Path, default=None, help="Prediction raster (default: paths.resistance_tif)")
    pkg.add_argument("--out", type=Path, default=None, help="Output .asc (default: paths.unicor_asc)")

    return ap


def _handle_package(args: argparse.Namespace, cfg: dict) -> int:
    ucfg = stage_config(cfg, "unicor")
    src = config_path(cfg, "resistance_tif", args.src)
    out = config_path(cfg, "unicor_asc", args.out)
    nodata = float(ucfg.get("nodata", -9999))

    if args.dry_run:
        log.info("[dry-run] Would package %s -> %s (nodata %s)", src, out, nodata)
        return 0

    if skip_existing(out, args.overwrite):
        return 0

    from landgen.unicor.prepare_raster import package_for_unicor

    package_for_unicor(src, out, nodata=nodata)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    configure_logging(args.verbose)

    cfg = load_yaml(args.config)

    handlers = {
        "package": _handle_package,
    }
    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")
    return handler(args, cfg)


if __name__ == "__main__":
    raise SystemExit(main())
