from __future__ import annotations

import dataclasses
import glob
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from cdo import CDOException, Cdo

from .utils import as_text, ensure_dir, get_logger


# {site}.{YYYY}.{d|a}.{variable}.nc, one file per simulation year
_YEARLY_TAIL = r"\.(?P<year>\d{4})\.(?P<suffix>.+)\.nc$"


@dataclasses.dataclass
class MergeResult:
    returncode: int
    command: List[str]
    stdout: str = ""
    stderr: str = ""
    elapsed_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.returncode == 0


class Merger(Protocol):
    def merge(self, inputs: Sequence[Path], output: Path) -> MergeResult:
        ...


class CdoMerger:
    """Concatenate yearly NetCDF files along time with CDO's ``mergetime``.

    The ``cdo`` binding is created on first use, so building a merger does not
    require the CDO binary to be installed.
    """

    def __init__(self, command: str = "cdo") -> None:
        self.command = command
        self._cdo: Optional[Cdo] = None

    def _binding(self) -> Cdo:
        if self._cdo is None:
            self._cdo = Cdo(cdo=self.command)
        return self._cdo

    def merge(self, inputs: Sequence[Path], output: Path) -> MergeResult:
        files = [str(p) for p in inputs]
        cmd = [self.command, "-O", "mergetime", *files, str(output)]
        t0 = time.perf_counter()
        try:
            self._binding().mergetime(input=files, output=str(output), options="-O")
        except CDOException as e:
            return MergeResult(getattr(e, "returncode", None) or 1, cmd, as_text(getattr(e, "stdout", "")),
                               as_text(getattr(e, "stderr", "")) or str(e), time.perf_counter() - t0)
        except OSError as e:
            return MergeResult(127, cmd, "", f"merge command not available: {self.command} ({e})",
                               time.perf_counter() - t0)
        return MergeResult(0, cmd, f"merged {len(files)} file(s) into {output}", "", time.perf_counter() - t0)


@dataclasses.dataclass
class ConsolidationOutcome:
    site: str
    skipped: bool = False
    merged: List[Path] = dataclasses.field(default_factory=list)
    failed_groups: List[str] = dataclasses.field(default_factory=list)
    stdout_path: Optional[Path] = None
    stderr_path: Optional[Path] = None

    @property
    def success(self) -> bool:
        return not self.failed_groups


def find_yearly_files(site: str, output_path: Union[str, Path]) -> Dict[str, List[Path]]:
    """Group a site's single-year files by what follows the year token (e.g. 'd.gpp')."""
    root = Path(output_path)
    groups: Dict[str, List[tuple[int, Path]]] = {}
    pattern = re.compile("^" + re.escape(site) + _YEARLY_TAIL)
    for p in root.glob(f"{glob.escape(site)}.????.*.nc"):
        m = pattern.match(p.name)
        if not m or not p.is_file():
            continue
        groups.setdefault(m.group("suffix"), []).append((int(m.group("year")), p))
    return {suffix: [p for _, p in sorted(items)] for suffix, items in sorted(groups.items())}


def consolidate(
    site: str,
    output_path: Union[str, Path],
    *,
    merger: Optional[Merger] = None,
    log_dir: Optional[Union[str, Path]] = None,
    config: Optional[Dict[str, Any]] = None,
) -> ConsolidationOutcome:
    """
    Merge a site's yearly output files into multi-annual ones.

    When no yearly files are left the site is taken as already consolidated and
    nothing is invoked. Merge failures are logged and reported on the outcome;
    they never raise, the missing file surfaces later when the site is read.
    """
    log = get_logger(__name__, config)
    output_path = Path(output_path)
    log.info("processing %s...", site)

    groups = find_yearly_files(site, output_path)
    if not groups:
        log.warning("%s: assuming that annual files have already been combined to multi-annual.", site)
        return ConsolidationOutcome(site=site, skipped=True)

    merger = merger or CdoMerger()
    outcome = ConsolidationOutcome(site=site)
    out_chunks: List[str] = []
    err_chunks: List[str] = []

    for suffix, inputs in groups.items():
        target = output_path / f"{site}.{suffix}.nc"
        res = merger.merge(inputs, target)
        out_chunks.append(f"$ {' '.join(res.command)}\n{res.stdout}")
        err_chunks.append(res.stderr)
        if not res.success:
            log.error("%s: merging %s yearly file(s) into %s failed | returncode=%s",
                      site, len(inputs), target.name, res.returncode)
            outcome.failed_groups.append(suffix)
            continue
        outcome.merged.append(target)
        try:
            for p in inputs:
                if p != target and p.exists():
                    p.unlink()
        except OSError as e:
            log.error("%s: merged %s but could not remove its yearly inputs: %s", site, target.name, e)
            err_chunks.append(f"cleanup of {suffix} failed: {e}")
            outcome.failed_groups.append(suffix)
            continue
        log.debug("%s: merged %s file(s) into %s", site, len(inputs), target.name)

    if log_dir is not None:
        stdout_path = Path(log_dir) / f"ncproc_{site}.out"
        stderr_path = Path(log_dir) / f"ncproc_{site}.err"
        try:
            ensure_dir(Path(log_dir))
            stdout_path.write_text("\n".join(out_chunks), encoding="utf-8", errors="ignore")
            stderr_path.write_text("\n".join(c for c in err_chunks if c), encoding="utf-8", errors="ignore")
        except OSError as e:
            log.error("%s: could not write merge logs to %s: %s", site, log_dir, e)
        else:
            outcome.stdout_path = stdout_path
            outcome.stderr_path = stderr_path

    log.info("%s: consolidated %s group(s), %s failed", site, len(outcome.merged), len(outcome.failed_groups))
    return outcome
