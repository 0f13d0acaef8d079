from __future__ import annotations

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


_LOGGER_CACHE: Dict[str, logging.Logger] = {}
_LOGGER_LOCK = threading.Lock()

DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def load_config(path: str | Path) -> Dict[str, Any]:
    """Read a YAML run configuration.

    The directory of the file is stored under ``_base_dir`` so that relative
    SOFUN paths in it can be resolved later.
    """
    path = Path(path).resolve()
    with path.open("r", encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"Config {path} must hold a mapping, got {type(cfg).__name__}")
    cfg.setdefault("_base_dir", str(path.parent))
    return cfg


def resolve_path(config: Dict[str, Any], relative: str | Path) -> Path:
    base = Path(config.get("_base_dir", ".")).resolve()
    return (base / relative).resolve()


def ensure_dir(p: str | Path) -> Path:
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def _log_handlers(cfg_log: Dict[str, Any], config: Optional[Dict[str, Any]]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    log_file = cfg_log.get("file")
    if not log_file:
        return handlers
    log_dir = cfg_log.get("log_dir", ".")
    target_dir = resolve_path(config, log_dir) if config is not None else Path(log_dir)
    handlers.append(
        RotatingFileHandler(
            ensure_dir(target_dir) / str(log_file),
            maxBytes=int(cfg_log.get("max_bytes", 2_000_000)),
            backupCount=int(cfg_log.get("backup_count", 3)),
            encoding="utf-8",
        )
    )
    return handlers


def get_logger(name: Optional[str] = None, config: Optional[Dict[str, Any]] = None) -> logging.Logger:
    """Per-module logger, configured once from the ``logging`` section of a config.

    Later calls with the same name return the cached logger and ignore
    ``config``.
    """
    key = name or "sofun_pipeline"
    with _LOGGER_LOCK:
        cached = _LOGGER_CACHE.get(key)
        if cached is None:
            cached = _LOGGER_CACHE[key] = _configure_logger(key, config)
    return cached


def _configure_logger(key: str, config: Optional[Dict[str, Any]]) -> logging.Logger:
    cfg_log = (config or {}).get("logging") or {}
    level = getattr(logging, str(cfg_log.get("level", "INFO")).upper(), logging.INFO)
    formatter = logging.Formatter(cfg_log.get("format", DEFAULT_LOG_FORMAT))

    logger = logging.getLogger(key)
    logger.propagate = False
    logger.setLevel(level)
    for handler in _log_handlers(cfg_log, config):
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def get_paths(config: Dict[str, Any]) -> Dict[str, Path]:
    """Resolve the SOFUN directories of a flat settings mapping.

    Output, merge logs and the packaged executable default to
    ``output_nc``, ``tmp`` and ``extdata`` below ``dir_sofun``.
    """
    dir_sofun = resolve_path(config, config.get("dir_sofun", "."))
    defaults = {"path_output_nc": "output_nc", "log_dir": "tmp", "exe_source_dir": "extdata"}
    paths = {"dir_sofun": dir_sofun}
    for key, sub in defaults.items():
        value = config.get(key)
        paths[key] = resolve_path(config, value) if value else dir_sofun / sub
    return paths


def as_text(value: str | bytes | None) -> str:
    """Captured process output as text; TimeoutExpired may carry bytes."""
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    return value
