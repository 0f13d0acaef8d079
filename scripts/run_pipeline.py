#!/usr/bin/env python
from __future__ import annotations

import argparse
from pathlib import Path
import sys


def _add_project_to_sys_path(config_path: Path) -> None:
    base = config_path.resolve().parent
    project_root = (base / '..').resolve()
    sys.path.insert(0, str(project_root))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run SOFUN for all configured sites and read the outputs")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(__file__).resolve().parent.parent / "config" / "config.yaml",
        help="Path to YAML config",
    )
    parser.add_argument(
        "--skip-run",
        action="store_true",
        help="Only consolidate and read existing outputs",
    )
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=None,
        help="Write one CSV per site and resolution into this folder",
    )
    args = parser.parse_args(argv)

    _add_project_to_sys_path(args.config)

    from sofun_pipeline import errors, reader, runner, settings, utils

    raw = utils.load_config(args.config)
    log = utils.get_logger(__name__, raw)
    log.info("Loaded config from %s", args.config)

    try:
        config = settings.from_dict(raw)
        if not args.skip_run:
            runner.run_sofun(config, log_config=raw)
        result = reader.read_sofun(config, log_config=raw)
    except (errors.ExecutableUnavailable, errors.NoVariablesRequested, errors.UnsupportedImplementation) as e:
        log.error("Pipeline aborted: %s", e)
        return 1

    for resolution, tables in result.items():
        log.info("%s: %s site(s) read", resolution, len(tables))

    if args.out_dir is not None:
        written = reader.write_batch_csv(result, args.out_dir)
        log.info("Wrote %s table(s) under %s", len(written), args.out_dir)

    log.info("Pipeline finished")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
