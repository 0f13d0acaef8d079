"""
Run SOFUN simulations for a set of sites and read their NetCDF output.

Modules:
- settings: RunConfiguration / VariableSpec and the model's output switches
- runner: build/copy the executable and run it per site
- consolidate: merge yearly NetCDF files into multi-annual ones (cdo mergetime)
- nc_reader: read one variable of one site's output (netCDF4)
- time_axis: no-leap day counts to calendar dates
- assemble: join a site's variables into one date-indexed table
- reader: consolidate and read all sites of a batch
- pipeline: run then read
- errors: exception types
- utils: shared helpers (config, logging, paths)
"""

from .assemble import UNAVAILABLE, assemble_site
from .errors import (
    ExecutableUnavailable,
    MalformedTimeCoordinate,
    NoVariablesRequested,
    SofunPipelineError,
    SourceReadFailure,
    UnsupportedImplementation,
)
from .nc_reader import NOT_FOUND, ArrayRecord, NetCDFArraySource
from .pipeline import runread_sofun
from .reader import read_sofun, write_batch_csv
from .runner import run_sofun
from .settings import RunConfiguration, VariableSpec, from_dict
from .time_axis import to_dates

__all__ = [
    "UNAVAILABLE",
    "NOT_FOUND",
    "ArrayRecord",
    "NetCDFArraySource",
    "RunConfiguration",
    "VariableSpec",
    "from_dict",
    "assemble_site",
    "read_sofun",
    "run_sofun",
    "runread_sofun",
    "to_dates",
    "write_batch_csv",
    "ExecutableUnavailable",
    "MalformedTimeCoordinate",
    "NoVariablesRequested",
    "SofunPipelineError",
    "SourceReadFailure",
    "UnsupportedImplementation",
]

__version__ = "0.1.0"
