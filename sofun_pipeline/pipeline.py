from __future__ import annotations

from typing import Any, Dict, Optional

from .consolidate import Merger
from .nc_reader import ArraySource
from .reader import BatchResult, read_sofun
from .runner import run_sofun
from .settings import RunConfiguration
from .utils import get_logger


def runread_sofun(
    config: RunConfiguration,
    *,
    source: Optional[ArraySource] = None,
    merger: Optional[Merger] = None,
    log_config: Optional[Dict[str, Any]] = None,
) -> BatchResult:
    """Run the simulations, then read their outputs into per-site tables.

    Process output is not kept. Gridded ('lonlat') runs are returned with
    annual tables only.
    """
    log = get_logger(__name__, log_config)
    results = run_sofun(config, log_config)
    log.info("Finished %s run(s); reading outputs", len(results))
    return read_sofun(config, source=source, merger=merger, log_config=log_config)
