from __future__ import annotations

from typing import Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .errors import NoVariablesRequested, SourceReadFailure
from .nc_reader import ArrayRecord, ArraySource, _NotFound
from .settings import VariableSpec
from .time_axis import to_dates
from .utils import get_logger


class _Unavailable:
    """Marker for a site whose outputs could not be found."""

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()


def _series(record: ArrayRecord, name: str, log) -> pd.Series:
    values = np.asarray(record.values)
    n_time = np.shape(record.time)[0] if np.ndim(record.time) else 1
    if values.ndim != 1 or values.shape[0] != n_time:
        raise SourceReadFailure(
            record.path, f"'{name}' has shape {values.shape} but the time axis has {n_time} step(s)"
        )
    dates = pd.DatetimeIndex(pd.to_datetime(to_dates(record.time)), name="date")
    s = pd.Series(values, index=dates, name=name, dtype="float64")
    if s.index.has_duplicates:
        n_dup = int(s.index.duplicated().sum())
        log.warning("%s: %s duplicate date(s) in %s; keeping first occurrence", name, n_dup, record.path)
        s = s[~s.index.duplicated(keep="first")]
    return s


def assemble_site(
    site: str,
    resolution: str,
    variables: Sequence[VariableSpec],
    source: ArraySource,
    *,
    config: Optional[Dict] = None,
) -> Union[pd.DataFrame, _Unavailable]:
    """
    Build one date-indexed table of all requested variables for a site.

    The first variable probes for the site's output: if its file is missing
    the whole site is UNAVAILABLE. Other missing variables are left out of the
    table. Every variable read contributes its dates, so the result holds the
    union of dates, sorted, with NaN where a variable has no value.

    Returns
    -------
    pd.DataFrame or UNAVAILABLE
        Columns are 'date' followed by the variables read, in requested order.
    """
    log = get_logger(__name__, config)
    if not variables:
        raise NoVariablesRequested(f"No {resolution} output variables are switched on")

    log.info("Reading NetCDF for %s (%s)", site, resolution)
    probe = source.read(site, variables[0].name, resolution)
    if isinstance(probe, _NotFound):
        log.warning("%s: no %s output for '%s'; site is unavailable", site, resolution, variables[0].name)
        return UNAVAILABLE

    columns: Dict[str, pd.Series] = {}
    for i, var in enumerate(variables):
        if var.name in columns:
            continue
        record = probe if i == 0 else source.read(site, var.name, resolution)
        if isinstance(record, _NotFound):
            log.debug("%s: %s output for '%s' not found; column omitted", site, resolution, var.name)
            continue
        columns[var.name] = _series(record, var.name, log)

    table = pd.concat(list(columns.values()), axis=1, join="outer", sort=True)
    table.index.name = "date"
    table = table.sort_index().reset_index()
    return table[["date", *columns.keys()]]
