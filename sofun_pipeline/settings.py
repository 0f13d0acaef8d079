from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import UnsupportedImplementation
from .utils import get_paths

DAILY = "daily"
ANNUAL = "annual"
RESOLUTION_CODES = {DAILY: "d", ANNUAL: "a"}

SUPPORTED_IMPLEMENTATIONS = ("fortran",)

# Output switches in the order the model writes them; one flag can enable several variables.
DAILY_OUTPUT_FLAGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("loutdgpp", ("gpp",)),
    ("loutdrd", ("rd",)),
    ("loutdtransp", ("transp",)),
    ("loutdalpha", ("alpha",)),
    ("loutdaet", ("aet",)),
    ("loutdpet", ("pet",)),
    ("loutdwcont", ("wcont",)),
    ("loutdtemp", ("temp",)),
    ("loutdfapar", ("fapar",)),
    ("loutdtemp_soil", ("temp_soil",)),
)

ANNUAL_OUTPUT_FLAGS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("loutwaterbal", ("alpha", "aet", "pet")),
    ("loutgpp", ("gpp",)),
)

OUTPUT_FLAGS = {DAILY: DAILY_OUTPUT_FLAGS, ANNUAL: ANNUAL_OUTPUT_FLAGS}


@dataclass(frozen=True)
class VariableSpec:
    name: str
    resolution: str  # 'daily' or 'annual'

    @property
    def code(self) -> str:
        return RESOLUTION_CODES[self.resolution]


@dataclass(frozen=True)
class RunConfiguration:
    """Settings for one run-and-read invocation.

    - sitenames: site (experiment) names, duplicates removed, order kept
    - ensemble: run each site as its own simulation; otherwise run ``name`` once
    - setup: 'lonlat' selects gridded mode (annual output only)
    - output_flags: the model's ``lout*`` switches
    - timeout / max_workers: per-invocation time limit and site-level parallelism
    """

    sitenames: Tuple[str, ...]
    dir_sofun: Path
    path_output_nc: Path
    ensemble: bool = True
    name: Optional[str] = None
    implementation: str = "fortran"
    setup: str = "site"
    do_compile: bool = False
    model: str = "pmodel"
    output_flags: Dict[str, bool] = field(default_factory=dict)
    log_dir: Optional[Path] = None
    exe_source_dir: Optional[Path] = None
    merge_command: str = "cdo"
    timeout: Optional[float] = None
    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.implementation not in SUPPORTED_IMPLEMENTATIONS:
            raise UnsupportedImplementation(
                f"Unsupported implementation '{self.implementation}'; expected one of {SUPPORTED_IMPLEMENTATIONS}"
            )
        # Frozen: normalise through object.__setattr__
        object.__setattr__(self, "sitenames", tuple(dict.fromkeys(str(s) for s in self.sitenames)))
        object.__setattr__(self, "dir_sofun", Path(self.dir_sofun))
        object.__setattr__(self, "path_output_nc", Path(self.path_output_nc))
        object.__setattr__(self, "output_flags", {k: bool(v) for k, v in self.output_flags.items()})
        object.__setattr__(self, "log_dir", Path(self.log_dir) if self.log_dir else self.dir_sofun / "tmp")
        object.__setattr__(
            self, "exe_source_dir", Path(self.exe_source_dir) if self.exe_source_dir else self.dir_sofun / "extdata"
        )
        object.__setattr__(self, "max_workers", max(1, int(self.max_workers)))

    @property
    def gridded(self) -> bool:
        return self.setup == "lonlat"

    @property
    def executable_name(self) -> str:
        return f"run{self.model}"

    @property
    def run_names(self) -> List[str]:
        """Names fed to the executable: every site in an ensemble, else the single run name."""
        if self.ensemble:
            return list(self.sitenames)
        return [self.name or (self.sitenames[0] if self.sitenames else "")]

    def variables(self, resolution: str) -> List[VariableSpec]:
        if resolution not in OUTPUT_FLAGS:
            raise ValueError(f"Unknown resolution '{resolution}'; expected one of {sorted(OUTPUT_FLAGS)}")
        out: List[VariableSpec] = []
        for flag, names in OUTPUT_FLAGS[resolution]:
            if self.output_flags.get(flag, False):
                out.extend(VariableSpec(n, resolution) for n in names)
        return out


_KNOWN_FLAGS = {flag for table in OUTPUT_FLAGS.values() for flag, _ in table}


def _flatten(d: Mapping[str, Any]) -> Dict[str, Any]:
    flat = {k: v for k, v in d.items() if k not in ("settings", "setup") or not isinstance(v, Mapping)}
    if isinstance(d.get("settings"), Mapping):
        flat.update(d["settings"])
    if isinstance(d.get("setup"), Mapping):
        flat.update(d["setup"])
    return flat


def from_dict(d: Mapping[str, Any]) -> RunConfiguration:
    """Build a RunConfiguration from a loaded YAML config.

    Accepts the split ``settings:``/``setup:`` layout or a flat mapping. Paths
    are resolved against ``_base_dir`` (set by ``utils.load_config``).
    """
    flat = _flatten(d)
    if "_base_dir" in d:
        flat.setdefault("_base_dir", d["_base_dir"])
    paths = get_paths(flat)

    flags = dict(flat.get("output_flags", {}) or {})
    flags.update({k: v for k, v in flat.items() if k in _KNOWN_FLAGS})

    sitenames = flat.get("sitenames", []) or []
    if isinstance(sitenames, str):
        sitenames = [sitenames]

    timeout = flat.get("timeout")
    return RunConfiguration(
        sitenames=tuple(sitenames),
        dir_sofun=paths["dir_sofun"],
        path_output_nc=paths["path_output_nc"],
        ensemble=bool(flat.get("ensemble", True)),
        name=flat.get("name"),
        implementation=str(flat.get("implementation", "fortran")),
        setup=str(flat.get("setup", "site")),
        do_compile=bool(flat.get("do_compile", False)),
        model=str(flat.get("model", "pmodel")),
        output_flags=flags,
        log_dir=paths["log_dir"],
        exe_source_dir=paths["exe_source_dir"],
        merge_command=str(flat.get("merge_command", "cdo")),
        timeout=float(timeout) if timeout is not None else None,
        max_workers=int(flat.get("max_workers", 1)),
    )
