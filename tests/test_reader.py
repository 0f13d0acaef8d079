import logging

import pandas as pd
import pytest

from sofun_pipeline.errors import MalformedTimeCoordinate, NoVariablesRequested, SourceReadFailure
from sofun_pipeline.reader import read_sofun, write_batch_csv
from sofun_pipeline.settings import ANNUAL, DAILY


def _site_data(site, resolution=DAILY, variables=("gpp", "aet")):
    return {(site, v, resolution): ([0, 1], [1.0, 2.0]) for v in variables}


def test_unavailable_sites_are_dropped(make_config, make_source, make_merger):
    data = {**_site_data("X"), **_site_data("Z")}
    data[("Y", "aet", DAILY)] = ([0], [1.0])  # probe variable gpp missing for Y
    result = read_sofun(make_config(), source=make_source(data), merger=make_merger())

    assert list(result) == [DAILY]
    assert list(result[DAILY]) == ["X", "Z"]
    assert list(result[DAILY]["X"].columns) == ["date", "gpp", "aet"]


def test_gridded_mode_reads_annual_only(make_config, make_source, make_merger):
    data = _site_data("X", ANNUAL, ("alpha", "aet", "pet"))
    data.update(_site_data("X", DAILY))
    src = make_source(data)
    result = read_sofun(make_config(setup="lonlat", sitenames=("X",)), source=src, merger=make_merger())

    assert list(result) == [ANNUAL]
    assert list(result[ANNUAL]["X"].columns) == ["date", "alpha", "aet", "pet"]
    assert all(res == ANNUAL for _, _, res in src.calls)


def test_read_failure_only_drops_that_site(make_config, make_source, make_merger):
    data = {**_site_data("X"), **_site_data("Z")}
    data[("Y", "gpp", DAILY)] = ([0], [1.0])
    data[("Y", "aet", DAILY)] = SourceReadFailure("Y.d.aet.nc", "corrupt")
    data[("Z", "aet", DAILY)] = MalformedTimeCoordinate("nan in time")
    result = read_sofun(make_config(), source=make_source(data), merger=make_merger())
    assert list(result[DAILY]) == ["X"]


def test_no_variables_switched_on(make_config, make_source, make_merger):
    with pytest.raises(NoVariablesRequested):
        read_sofun(make_config(output_flags={"loutgpp": True}), source=make_source({}), merger=make_merger())


def test_consolidation_runs_before_reading(make_config, make_source, make_merger, sofun_dir):
    out = sofun_dir / "output_nc"
    (out / "X.2001.d.gpp.nc").write_text("x", encoding="utf-8")
    merger = make_merger()
    read_sofun(make_config(), source=make_source(_site_data("X")), merger=merger)
    assert [target.name for _, target in merger.calls] == ["X.d.gpp.nc"]
    assert (sofun_dir / "tmp" / "ncproc_X.out").exists()


def test_parallel_read_keeps_site_order(make_config, make_source, make_merger):
    sites = tuple(f"S{i}" for i in range(8))
    data = {}
    for s in sites[::2]:
        data.update(_site_data(s))
    result = read_sofun(make_config(sitenames=sites, max_workers=4), source=make_source(data), merger=make_merger())
    assert list(result[DAILY]) == list(sites[::2])


def test_write_batch_csv(tmp_path, make_config, make_source, make_merger):
    result = read_sofun(make_config(sitenames=("X",)), source=make_source(_site_data("X")), merger=make_merger())
    written = write_batch_csv(result, tmp_path / "tables")
    assert written == [tmp_path / "tables" / DAILY / "X.csv"]
    df = pd.read_csv(written[0], parse_dates=["date"])
    assert df["gpp"].tolist() == [1.0, 2.0]
    assert df["date"].iloc[0] == pd.Timestamp("2001-01-01")


def test_length_mismatch_only_drops_that_site(make_config, make_source, make_merger):
    data = {**_site_data("X"), **_site_data("Z")}
    data[("Y", "gpp", DAILY)] = ([0, 1, 2], [1.0, 2.0])
    result = read_sofun(make_config(), source=make_source(data), merger=make_merger())
    assert list(result[DAILY]) == ["X", "Z"]


def test_parallel_read_of_netcdf_files_keeps_every_site(make_config, make_merger, sofun_dir, write_nc):
    out = sofun_dir / "output_nc"
    sites = tuple(f"S{i:02d}" for i in range(24))
    for s in sites:
        write_nc(out / f"{s}.d.gpp.nc", "gpp", [0, 1, 2], [1.0, 2.0, 3.0])
        write_nc(out / f"{s}.d.aet.nc", "aet", [0, 1, 2], [0.1, 0.2, 0.3])

    for _ in range(3):
        result = read_sofun(make_config(sitenames=sites, max_workers=8), merger=make_merger())
        assert list(result[DAILY]) == list(sites)
        assert all(df["gpp"].tolist() == [1.0, 2.0, 3.0] for df in result[DAILY].values())


def test_default_source_gets_logging_config(make_config, make_merger, monkeypatch):
    import sofun_pipeline.nc_reader as nc_reader

    seen = []

    def _get_logger(name=None, config=None):
        seen.append((name, config))
        return logging.getLogger(name)

    monkeypatch.setattr(nc_reader, "get_logger", _get_logger)
    log_config = {"logging": {"level": "DEBUG"}}
    read_sofun(make_config(sitenames=("X",)), merger=make_merger(), log_config=log_config)
    assert seen == [("sofun_pipeline.nc_reader", log_config)]
