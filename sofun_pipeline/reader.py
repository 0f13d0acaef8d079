from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from .assemble import UNAVAILABLE, _Unavailable, assemble_site
from .consolidate import CdoMerger, ConsolidationOutcome, Merger, consolidate
from .errors import MalformedTimeCoordinate, NoVariablesRequested, SourceReadFailure
from .nc_reader import ArraySource, NetCDFArraySource
from .settings import ANNUAL, DAILY, RunConfiguration, VariableSpec
from .utils import ensure_dir, get_logger

BatchResult = Dict[str, Dict[str, pd.DataFrame]]


def _read_one(
    site: str,
    resolution: str,
    variables: List[VariableSpec],
    source: ArraySource,
    log_config: Optional[Dict[str, Any]],
) -> Union[pd.DataFrame, _Unavailable]:
    log = get_logger(__name__, log_config)
    try:
        return assemble_site(site, resolution, variables, source, config=log_config)
    except (SourceReadFailure, MalformedTimeCoordinate) as e:
        log.error("%s: reading %s output failed, site dropped: %s", site, resolution, e)
        return UNAVAILABLE


def read_sofun(
    config: RunConfiguration,
    *,
    source: Optional[ArraySource] = None,
    merger: Optional[Merger] = None,
    log_config: Optional[Dict[str, Any]] = None,
) -> BatchResult:
    """
    Consolidate and read the outputs of every site into per-site tables.

    Gridded ('lonlat') runs only read annual output; daily output is too large
    to hold in memory. Sites without usable output are left out, so the keys
    of the returned mapping are the sites that could be read, not all sites.
    """
    log = get_logger(__name__, log_config)
    resolution = ANNUAL if config.gridded else DAILY
    variables = config.variables(resolution)
    if not variables:
        raise NoVariablesRequested(f"No {resolution} output variables are switched on")

    source = source or NetCDFArraySource(config.path_output_nc, config=log_config)
    merger = merger or CdoMerger(config.merge_command)

    log.info("processing NetCDF outputs...")
    outcomes: List[ConsolidationOutcome] = [
        consolidate(site, config.path_output_nc, merger=merger, log_dir=config.log_dir, config=log_config)
        for site in config.sitenames
    ]
    n_failed = sum(1 for o in outcomes if not o.success)
    if n_failed:
        log.warning("Consolidation failed for %s of %s site(s); see %s", n_failed, len(outcomes), config.log_dir)

    log.info("reading from %s NetCDF files...", resolution)
    sites = list(config.sitenames)
    if config.max_workers > 1 and len(sites) > 1:
        with ThreadPoolExecutor(max_workers=config.max_workers) as ex:
            futs = [ex.submit(_read_one, s, resolution, variables, source, log_config) for s in sites]
            tables = [f.result() for f in futs]
    else:
        tables = [_read_one(s, resolution, variables, source, log_config) for s in sites]

    if config.gridded:
        log.warning("read_sofun(): Daily output is not read.")

    by_site = {s: t for s, t in zip(sites, tables) if not isinstance(t, _Unavailable)}
    dropped = [s for s in sites if s not in by_site]
    if dropped:
        log.warning("Dropped %s site(s) without usable %s output: %s", len(dropped), resolution, ", ".join(dropped))
    log.info("Read %s of %s site(s)", len(by_site), len(sites))
    return {resolution: by_site}


def write_batch_csv(result: BatchResult, out_dir: Union[str, Path]) -> List[Path]:
    """Write each table to ``{out_dir}/{resolution}/{site}.csv``."""
    written: List[Path] = []
    for resolution, tables in result.items():
        res_dir = ensure_dir(Path(out_dir) / resolution)
        for site, df in tables.items():
            target = res_dir / f"{site}.csv"
            df.to_csv(target, index=False)
            written.append(target)
    return written
