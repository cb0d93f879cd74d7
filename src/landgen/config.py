#!/usr/bin/env python3
"""landgen.config

Shared configuration utilities for the landgen stage CLIs.

This module provides common helpers used across landgen.pairwise,
landgen.extract, landgen.model and landgen.unicor. Centralizing these keeps
every stage reading the same YAML the same way.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Each stage owns one top-level section of config/pipeline.yaml.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises SystemExit on missing file or invalid format (non-mapping).
    Config errors should fail fast.
    """
    if not path.exists():
        raise SystemExit(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise SystemExit(f"Expected YAML mapping at {path}")
    return data


def stage_config(cfg: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Return one top-level section (e.g. 'extract') of the pipeline config."""
    section = cfg.get(name)
    if not isinstance(section, dict):
        raise SystemExit(f"Pipeline config is missing a '{name}:' mapping")
    return section


def config_path(cfg: Dict[str, Any], key: str, override: Optional[Path] = None) -> Path:
    """Resolve a path from the 'paths:' section, letting a CLI flag win."""
    if override is not None:
        return override
    paths = stage_config(cfg, "paths")
    value = paths.get(key)
    if not value:
        raise SystemExit(f"Pipeline config has no paths.{key}")
    return Path(value)


# -----------------------------------------------------------------------------
# CLI plumbing
# -----------------------------------------------------------------------------
# Every stage CLI takes the same global flags, so they are added here.

def add_global_args(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_YAML,
        help=f"Path to pipeline YAML (default: {DEFAULT_CONFIG_YAML})",
    )
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    ap.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug messages",
    )


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging once per CLI invocation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def skip_existing(out_path: Path, overwrite: bool) -> bool:
    """True when out_path exists and should be left alone."""
    if out_path.exists() and not overwrite:
        logging.getLogger(__name__).info("[SKIP] %s exists (use --overwrite)", out_path)
        return True
    return False


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_CONFIG_YAML = Path("config/pipeline.yaml")
