from __future__ import annotations

from datetime import date
from typing import Iterable, List

import cftime
import numpy as np

from .errors import MalformedTimeCoordinate

SOFUN_EPOCH = date(2001, 1, 1)
SOFUN_CALENDAR = "noleap"


def to_dates(time_coords: Iterable[float], epoch: date = SOFUN_EPOCH) -> List[date]:
    """
    Convert SOFUN's time coordinate (days since ``epoch``) into calendar dates.

    The model counts every year as 365 days, so the conversion goes through
    cftime's ``noleap`` calendar rather than plain ``timedelta`` arithmetic:
    ``to_dates([365])`` is 2002-01-01 regardless of leap years.

    Raises
    ------
    MalformedTimeCoordinate
        If any coordinate is masked, not finite or not a whole number of days.
    """
    raw = np.ma.asarray(time_coords)
    if raw.ndim == 0:
        raw = raw.reshape(1)
    if np.ma.count_masked(raw):
        raise MalformedTimeCoordinate("time coordinate contains masked values")
    try:
        values = np.asarray(np.ma.getdata(raw), dtype="float64")
    except (TypeError, ValueError) as e:
        raise MalformedTimeCoordinate(f"time coordinate is not numeric: {e}") from e
    if values.size == 0:
        return []
    if not np.all(np.isfinite(values)):
        raise MalformedTimeCoordinate("time coordinate contains non-finite values")
    if not np.all(values == np.floor(values)):
        raise MalformedTimeCoordinate("time coordinate contains fractional days; expected whole days")

    units = f"days since {epoch.isoformat()}"
    stamps = cftime.num2date(values.ravel(), units=units, calendar=SOFUN_CALENDAR)
    return [date(s.year, s.month, s.day) for s in np.atleast_1d(stamps)]
