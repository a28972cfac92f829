from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

_HERE = Path(__file__).resolve()
_CANDIDATE_CONFIG_PATHS = [parent / "config/config.yaml" for parent in _HERE.parents[:3]]

CONFIG_PATH = next((path for path in _CANDIDATE_CONFIG_PATHS if path.exists()), None)
if CONFIG_PATH is None:  # pragma: no cover - fail fast in broken installs
    raise FileNotFoundError("Default config.yaml could not be located next to the print_web_backend package.")


def _millis_to_seconds(raw: str) -> float:
    return int(raw) / 1000.0


# Environment variable -> (dotted config key, converter)
ENV_OVERRIDES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "HOST": ("server.host", str),
    "PORT": ("server.port", int),
    "FRONTEND_DIR": ("server.frontend_dir", str),
    "UPLOAD_DIR": ("uploads.directory", str),
    "TEMP_DIR": ("artifacts.directory", str),
    # Kept in milliseconds for compatibility with existing deployments.
    "TEMP_FILE_CLEANUP": ("artifacts.max_age_seconds", _millis_to_seconds),
    "CUPS_URL": ("spooler.url", str),
    "CUPS_PRINTER_NAME": ("spooler.default_printer", str),
    "LOG_LEVEL": ("logging.level", str),
}

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s - %(message)s"


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def environment_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Collect config overrides from environment variables.

    Values that fail conversion are ignored with a warning so a typo in the
    deployment environment falls back to the packaged default.
    """
    if environ is None:
        load_dotenv()
        environ = dict(os.environ)

    overrides: Dict[str, Any] = {}
    for variable, (key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(variable)
        if raw is None or raw == "":
            continue
        try:
            overrides[key] = convert(raw)
        except ValueError:
            logging.getLogger(__name__).warning(f"Ignoring {variable}={raw!r}: cannot convert for {key}")
    return overrides


def make_runtime_config(
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> DictConfig:
    """
    Build the effective configuration.

    Precedence, lowest first: packaged ``config.yaml``, environment variables,
    then ``overrides`` (a nested mapping, as tests and embedders pass it).
    Unknown keys raise because the merged config is in struct mode.
    """
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    for key, value in environment_overrides(environ).items():
        OmegaConf.update(base, key, value, merge=True)

    if overrides:
        base = DictConfig(OmegaConf.merge(base, OmegaConf.create(overrides)))
    return base


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(handler, "_print_web_backend", False) for handler in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._print_web_backend = True  # type: ignore[attr-defined]
        root.addHandler(handler)
