from __future__ import annotations

import dataclasses
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

import netCDF4
import numpy as np

from .errors import SourceReadFailure
from .settings import RESOLUTION_CODES
from .utils import get_logger


class _NotFound:
    """Sentinel returned when an output file does not exist."""

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()

# netCDF-C and HDF5 are not thread-safe; every open/read goes through this lock
_NC_LOCK = threading.Lock()


@dataclasses.dataclass
class ArrayRecord:
    time: np.ndarray
    values: np.ndarray
    path: Union[str, Path, None] = None


class ArraySource(Protocol):
    def read(self, site: str, variable: str, resolution: str) -> Union[ArrayRecord, _NotFound]:
        ...


def output_filename(site: str, variable: str, resolution: str) -> str:
    return f"{site}.{RESOLUTION_CODES[resolution]}.{variable}.nc"


def _as_1d(arr, path: Path, what: str) -> np.ndarray:
    data = np.ma.masked_invalid(np.ma.asarray(arr, dtype="float64"))
    data = np.ma.filled(data, np.nan)
    data = np.squeeze(data)
    if data.ndim == 0:
        data = data.reshape(1)
    if data.ndim != 1:
        raise SourceReadFailure(path, f"'{what}' is not one-dimensional after squeezing (shape={np.shape(arr)})")
    return data


class NetCDFArraySource:
    """Read single-variable SOFUN NetCDF outputs named ``{site}.{d|a}.{variable}.nc``."""

    def __init__(
        self,
        path_output_nc: Union[str, Path],
        time_name: str = "time",
        *,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.root = Path(path_output_nc)
        self.time_name = time_name
        self.log = get_logger(__name__, config)

    def path_for(self, site: str, variable: str, resolution: str) -> Path:
        return self.root / output_filename(site, variable, resolution)

    def read(self, site: str, variable: str, resolution: str) -> Union[ArrayRecord, _NotFound]:
        path = self.path_for(site, variable, resolution)
        if not path.is_file():
            self.log.debug("Output not found: %s", path)
            return NOT_FOUND

        try:
            with _NC_LOCK, netCDF4.Dataset(str(path), "r") as nc:
                if variable not in nc.variables:
                    raise SourceReadFailure(path, f"variable '{variable}' not present")
                if self.time_name not in nc.variables:
                    raise SourceReadFailure(path, f"time coordinate '{self.time_name}' not present")
                raw_time = nc.variables[self.time_name][:]
                raw_values = nc.variables[variable][:]
        except SourceReadFailure:
            raise
        except (OSError, RuntimeError, ValueError) as e:
            raise SourceReadFailure(path, f"could not open NetCDF file: {e}") from e

        # Masked time steps are kept so the time-axis converter can reject them
        time = np.ma.asarray(raw_time).ravel()
        if not np.ma.count_masked(time):
            time = np.ma.getdata(time)
        values = _as_1d(raw_values, path, variable)
        if values.shape[0] != np.shape(time)[0]:
            raise SourceReadFailure(
                path, f"'{variable}' has {values.shape[0]} values but the time axis has {np.shape(time)[0]}"
            )
        return ArrayRecord(time=time, values=values, path=path)
