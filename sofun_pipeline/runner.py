from __future__ import annotations

import contextlib
import dataclasses
import os
import shutil
import stat
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from .errors import ExecutableUnavailable
from .settings import RunConfiguration
from .utils import as_text, get_logger


@dataclasses.dataclass
class RunnerResult:
    site: str
    success: bool
    returncode: int
    exe: Union[str, Path]
    stdout: str = ""
    stderr: str = ""
    message: str = ""
    elapsed_seconds: float = 0.0

    @property
    def stdout_lines(self) -> List[str]:
        return self.stdout.splitlines()


@contextlib.contextmanager
def working_directory(path: Union[str, Path]) -> Iterator[Path]:
    """Change the process working directory, restoring the previous one on exit."""
    here = Path.cwd()
    target = Path(path).resolve()
    os.chdir(target)
    try:
        yield target
    finally:
        os.chdir(here)


def _is_executable(p: Path) -> bool:
    return p.is_file() and os.access(p, os.X_OK)


def ensure_executable(config: RunConfiguration, log_config: Optional[Dict[str, Any]] = None) -> Path:
    """
    Make sure ``run{model}`` exists in the model directory.

    - do_compile: build it with ``make {model}``
    - otherwise, if absent, copy a prebuilt executable from ``exe_source_dir``

    Raises ExecutableUnavailable when neither yields an executable.
    """
    log = get_logger(__name__, log_config)
    exe = Path(config.dir_sofun).resolve() / config.executable_name

    if config.do_compile:
        cmd = ["make", config.model]
        log.info("Compiling model: %s | cwd=%s", " ".join(cmd), exe.parent)
        try:
            completed = subprocess.run(cmd, cwd=str(exe.parent), capture_output=True, text=True, check=False)
        except FileNotFoundError as e:
            raise ExecutableUnavailable(f"Build tool not found for {exe.name}: {e}") from e
        if completed.returncode != 0:
            log.error("Build failed | returncode=%s\n%s", completed.returncode, completed.stderr)
            raise ExecutableUnavailable(f"Executable could not be built: {exe} (make returncode={completed.returncode})")
        if not _is_executable(exe):
            raise ExecutableUnavailable(f"Executable could not be built: {exe}")
        return exe

    if not exe.exists():
        packaged = Path(config.exe_source_dir) / config.executable_name
        log.info("Copying executable %s into model directory %s ...", packaged, exe.parent)
        if packaged.is_file():
            shutil.copy2(packaged, exe)
            exe.chmod(exe.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        if not exe.exists():
            raise ExecutableUnavailable(f"Executable could not be copied: {exe.name} (looked in {packaged.parent})")

    if not _is_executable(exe):
        raise ExecutableUnavailable(f"Executable is not runnable: {exe}")
    return exe


def run_sofun_bysite(
    site: str,
    exe: Union[str, Path],
    *,
    cwd: Optional[Union[str, Path]] = None,
    timeout: Optional[float] = None,
    log_config: Optional[Dict[str, Any]] = None,
) -> RunnerResult:
    """Run the model once, feeding the run name on stdin and capturing its output.

    A non-zero exit, a timeout or an OS error is reported on the result, never raised.
    """
    log = get_logger(__name__, log_config)
    exe = Path(exe).resolve()
    log.info("Running SOFUN: site=%s | exe=%s", site, exe.name)

    t0 = time.perf_counter()
    try:
        completed = subprocess.run(
            [str(exe)],
            cwd=str(cwd) if cwd is not None else None,
            input=f"{site}\n",
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        elapsed = time.perf_counter() - t0
        msg = f"SOFUN timed out after {timeout}s"
        log.error("%s: %s", site, msg)
        return RunnerResult(site, False, 124, exe, as_text(e.stdout), as_text(e.stderr), msg, elapsed)
    except OSError as e:
        elapsed = time.perf_counter() - t0
        msg = f"Executable not found or not runnable: {exe} ({e})"
        log.error("%s: %s", site, msg)
        return RunnerResult(site, False, 127, exe, "", "", msg, elapsed)

    elapsed = time.perf_counter() - t0
    if completed.returncode != 0:
        msg = f"SOFUN exited with returncode={completed.returncode}"
        log.warning("%s: %s; continuing with remaining sites", site, msg)
        return RunnerResult(site, False, completed.returncode, exe, completed.stdout or "", completed.stderr or "",
                            msg, elapsed)

    log.info("%s: SOFUN completed in %.2fs", site, elapsed)
    return RunnerResult(site, True, 0, exe, completed.stdout or "", completed.stderr or "", "OK", elapsed)


def run_sofun(config: RunConfiguration, log_config: Optional[Dict[str, Any]] = None) -> List[RunnerResult]:
    """
    Run the model for every site of an ensemble, or once for a single named run.

    The working directory is switched to ``dir_sofun`` for the duration and is
    restored on every exit path. Each child process also gets an explicit cwd
    and absolute executable path, so parallel dispatch (max_workers > 1) does
    not depend on the shared process cwd.

    Only a missing executable aborts (ExecutableUnavailable); failed site runs
    are logged and returned.
    """
    log = get_logger(__name__, log_config)
    with working_directory(config.dir_sofun) as cwd:
        exe = ensure_executable(config, log_config)
        names = config.run_names
        if not config.ensemble:
            log.info("Running single simulation '%s'", names[0])

        if config.max_workers > 1 and len(names) > 1:
            with ThreadPoolExecutor(max_workers=config.max_workers) as ex:
                futs = [
                    ex.submit(run_sofun_bysite, n, exe, cwd=cwd, timeout=config.timeout, log_config=log_config)
                    for n in names
                ]
                results = [f.result() for f in futs]
        else:
            results = [
                run_sofun_bysite(n, exe, cwd=cwd, timeout=config.timeout, log_config=log_config) for n in names
            ]

    n_failed = sum(1 for r in results if not r.success)
    if n_failed:
        log.warning("%s of %s run(s) did not complete successfully", n_failed, len(results))
    return results
