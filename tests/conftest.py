from __future__ import annotations

import stat
from pathlib import Path

import netCDF4
import numpy as np
import pytest

from sofun_pipeline.consolidate import MergeResult
from sofun_pipeline.nc_reader import NOT_FOUND, ArrayRecord
from sofun_pipeline.settings import RunConfiguration


class FakeSource:
    """In-memory ArraySource: {(site, variable, resolution): (time, values) or an exception}."""

    def __init__(self, data):
        self.data = data
        self.calls = []

    def read(self, site, variable, resolution):
        self.calls.append((site, variable, resolution))
        entry = self.data.get((site, variable, resolution))
        if entry is None:
            return NOT_FOUND
        if isinstance(entry, Exception):
            raise entry
        time, values = entry
        return ArrayRecord(time=np.asarray(time), values=np.asarray(values, dtype="float64"))


class FakeMerger:
    """Writes the merged file as the concatenation of its inputs' names."""

    def __init__(self, returncode: int = 0):
        self.returncode = returncode
        self.calls = []

    def merge(self, inputs, output):
        self.calls.append((list(inputs), Path(output)))
        if self.returncode == 0:
            Path(output).write_text("\n".join(p.name for p in inputs), encoding="utf-8")
        return MergeResult(self.returncode, ["fake-merge", str(output)], stdout="merged", stderr="")


FAKE_MODEL = """#!/bin/sh
read site
echo "running $site"
echo "$site" >> "$(dirname "$0")/ran.txt"
pwd -P > "$(dirname "$0")/cwd.txt"
if [ "$site" = "bad" ]; then
  echo "boom" 1>&2
  exit 3
fi
if [ "$site" = "slow" ]; then
  exec sleep 5
fi
exit 0
"""


def write_fake_model(path: Path) -> Path:
    path.write_text(FAKE_MODEL, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_source():
    return FakeSource


@pytest.fixture
def make_merger():
    return FakeMerger


@pytest.fixture
def sofun_dir(tmp_path):
    d = tmp_path / "sofun"
    (d / "output_nc").mkdir(parents=True)
    return d


@pytest.fixture
def make_config(sofun_dir):
    def _make(**overrides) -> RunConfiguration:
        kwargs = dict(
            sitenames=("X", "Y", "Z"),
            dir_sofun=sofun_dir,
            path_output_nc=sofun_dir / "output_nc",
            output_flags={"loutdgpp": True, "loutdaet": True, "loutwaterbal": True},
        )
        kwargs.update(overrides)
        return RunConfiguration(**kwargs)

    return _make


@pytest.fixture
def fake_model():
    return write_fake_model


def write_nc_file(path, variable, time, values, *, spatial=False):
    with netCDF4.Dataset(str(path), "w") as nc:
        nc.createDimension("time", len(time))
        t = nc.createVariable("time", "f8", ("time",))
        t.units = "days since 2001-01-01"
        t.calendar = "noleap"
        t[:] = time
        if spatial:
            nc.createDimension("lat", 1)
            nc.createDimension("lon", 1)
            v = nc.createVariable(variable, "f4", ("time", "lat", "lon"), fill_value=-9999.0)
            v[:] = np.asarray(values, dtype="float32").reshape(-1, 1, 1)
        else:
            nc.createDimension("n", len(values))
            dims = ("time",) if len(values) == len(time) else ("n",)
            v = nc.createVariable(variable, "f4", dims, fill_value=-9999.0)
            v[:] = values
    return path


@pytest.fixture
def write_nc():
    return write_nc_file
