#!/usr/bin/env python3
"""extract_covariates.py

Mean covariate values along a buffered transect for every pair.

This module is called by `python -m landgen.extract straight|lcp` via a thin
dispatcher.

Execution model:
- One task per pair, farmed out to a fixed-size process pool.
- Tasks receive file paths only and open the rasters themselves; live raster
  handles never cross a process boundary.
- Results come back in completion order and are gathered by pair index,
  then joined to the pair table on that index. Completion order never
  affects the output.
- The first failing pair aborts the batch; pending tasks are cancelled and
  the pool is shut down.
"""

from __future__ import annotations

import logging
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from functools import lru_cache, partial
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from landgen.extract.rasters import CovariateStack, check_grid_alignment, zonal_means
from landgen.extract.transects import CostSurface, lcp_transect, straight_transect

log = logging.getLogger(__name__)

METHODS = ("straight", "lcp")
PAIR_COLUMNS = ["index", "x_1", "y_1", "x_2", "y_2", "euc_geog"]


@dataclass(frozen=True)
class PairTask:
    index: int
    x_1: float
    y_1: float
    x_2: float
    y_2: float
    euc_geog: float


@lru_cache(maxsize=2)
def _cost_surface(path: str) -> CostSurface:
    # One read per worker process, always from the path
    return CostSurface.from_raster(Path(path))


def _extract_pair(
    task: PairTask,
    *,
    method: str,
    env_paths: Tuple[Path, ...],
    resistance_path: Optional[str],
    buffer_m: float,
    lcp_threshold_m: float,
):
    if method == "straight":
        geom = straight_transect(task.x_1, task.y_1, task.x_2, task.y_2, buffer_m)
    else:
        geom = lcp_transect(
            task.x_1, task.y_1, task.x_2, task.y_2,
            euc_geog=task.euc_geog,
            surface=_cost_surface(resistance_path),
            buffer_m=buffer_m,
            threshold_m=lcp_threshold_m,
        )
    return task.index, zonal_means(env_paths, geom), geom


def _pair_tasks(pairs: pd.DataFrame) -> List[PairTask]:
    missing = [c for c in PAIR_COLUMNS if c not in pairs.columns]
    if missing:
        raise ValueError(f"Pair table is missing columns: {missing}")
    if pairs["index"].duplicated().any():
        raise ValueError("Pair table 'index' column is not unique")
    coords = pairs[PAIR_COLUMNS].to_numpy(dtype=float)
    if not np.isfinite(coords).all():
        bad = pairs.loc[~np.isfinite(coords).all(axis=1), "index"].tolist()
        raise ValueError(f"Non-finite coordinates or distances for pair index {bad[:10]}")
    return [
        PairTask(int(idx), float(x1), float(y1), float(x2), float(y2), float(d))
        for idx, x1, y1, x2, y2, d in pairs[PAIR_COLUMNS].itertuples(index=False, name=None)
    ]


def extract_transects(
    pairs: pd.DataFrame,
    *,
    method: str,
    stack: CovariateStack,
    resistance_path: Optional[Path] = None,
    buffer_m: float = 1000.0,
    lcp_threshold_m: float = 510.0,
    workers: int = 20,
    progress_every: int = 500,
) -> Tuple[pd.DataFrame, Dict[int, object]]:
    """Extract mean covariates along each pair's transect.

    Parameters
    ----------
    pairs : DataFrame
        Pair table from landgen.pairwise (needs index, x_1, y_1, x_2, y_2, euc_geog).
    method : {"straight", "lcp"}
        Transect rule.
    stack : CovariateStack
        Covariate layers to average.
    resistance_path : Path | None
        Resistance raster; required for method="lcp".
    buffer_m : float
        Buffer radius around the transect, in projection units.
    lcp_threshold_m : float
        Pairs closer than this use endpoint buffers instead of a routed path.
    workers : int
        Process pool size; 1 runs in the calling process.

    Returns
    -------
    (table, geometries)
        table: index, one column per covariate, then the pair columns.
        geometries: pair index -> buffered transect polygon.
    """
    if method not in METHODS:
        raise ValueError(f"Unknown transect method {method!r}; expected one of {METHODS}")
    if method == "lcp":
        if resistance_path is None:
            raise ValueError("method='lcp' needs a resistance raster")
        if not resistance_path.exists():
            raise SystemExit(f"Resistance raster not found: {resistance_path}")
    if workers < 1:
        raise ValueError(f"workers must be >= 1, got {workers}")

    clash = sorted(set(stack.names) & set(pairs.columns))
    if clash:
        raise ValueError(f"Covariate names collide with pair table columns: {clash}")

    check_grid_alignment(stack.paths)
    tasks = _pair_tasks(pairs)

    fn = partial(
        _extract_pair,
        method=method,
        env_paths=tuple(stack.paths),
        resistance_path=str(resistance_path) if resistance_path is not None else None,
        buffer_m=float(buffer_m),
        lcp_threshold_m=float(lcp_threshold_m),
    )

    log.info("[EXTRACT] %s: %d pairs x %d layers on %d worker(s)", method, len(tasks), len(stack.paths), workers)

    means: Dict[int, Dict[str, float]] = {}
    geometries: Dict[int, object] = {}

    def _collect(idx: int, values: Dict[str, float], geom) -> None:
        means[idx] = values
        geometries[idx] = geom
        if progress_every and len(means) % progress_every == 0:
            log.info("[EXTRACT] %d/%d pairs done", len(means), len(tasks))

    if workers == 1:
        for task in tasks:
            _collect(*fn(task))
    else:
        with ProcessPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(fn, task): task.index for task in tasks}
            try:
                for fut in as_completed(futures):
                    _collect(*fut.result())
            except Exception:
                failed = [futures[f] for f in futures if f.done() and not f.cancelled() and f.exception() is not None]
                log.error("[EXTRACT] Aborting batch; failed pair index: %s", failed[:10])
                for f in futures:
                    f.cancel()
                raise

    env = pd.DataFrame.from_dict(means, orient="index", columns=stack.names)
    env.index.name = "index"
    env = env.sort_index().reset_index()

    table = env.merge(pairs, on="index", how="inner", validate="one_to_one")
    if len(table) != len(pairs):
        raise ValueError(f"Joined {len(table)} rows back to {len(pairs)} pairs")

    log.info("[EXTRACT] Done: %d pairs", len(table))
    return table, geometries


def transects_frame(geometries: Dict[int, object], crs: str):
    """Buffered transects as a GeoDataFrame (for QA in a GIS)."""
    import geopandas as gpd

    idx = sorted(geometries)
    return gpd.GeoDataFrame({"index": idx}, geometry=[geometries[i] for i in idx], crs=crs)


def run_extraction(
    pairs_csv: Path,
    env_dir: Path,
    out_csv: Path,
    *,
    method: str,
    resistance_path: Optional[Path] = None,
    buffer_m: float = 1000.0,
    lcp_threshold_m: float = 510.0,
    workers: int = 20,
    crs: str = "EPSG:26911",
    qa_gpkg: Optional[Path] = None,
) -> pd.DataFrame:
    """Read the pair table, extract, and write the extracted table (and optional QA GeoPackage)."""
    if not pairs_csv.exists():
        raise SystemExit(f"Pair table not found: {pairs_csv}")
    pairs = pd.read_csv(pairs_csv, dtype={"id_1": str, "id_2": str})
    stack = CovariateStack.from_dir(env_dir)

    table, geometries = extract_transects(
        pairs,
        method=method,
        stack=stack,
        resistance_path=resistance_path,
        buffer_m=buffer_m,
        lcp_threshold_m=lcp_threshold_m,
        workers=workers,
    )

    out_csv.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(out_csv, index=False)
    log.info("[EXTRACT] Wrote %d rows -> %s", len(table), out_csv)

    if qa_gpkg:
        qa_gpkg.parent.mkdir(parents=True, exist_ok=True)
        transects_frame(geometries, crs).to_file(qa_gpkg, layer=f"transects_{method}", driver="GPKG")
        log.info("[EXTRACT] Wrote transect polygons -> %s", qa_gpkg)

    return table
