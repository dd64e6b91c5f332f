"""
Scan configuration: defaults, optional YAML file, CLI overrides.
Jump thresholds are fixed policy constants in anomaly.py and not configurable here.
"""

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError


@dataclass
class ScanConfig:
    evt_suffix: str = "evt"
    evtx_suffix: str = "evtx"
    workers: int = 1
    flag_files: bool = False
    xml: bool = False
    session_db: str | None = None
    follow_symlinks: bool = False

    def with_overrides(self, **overrides: Any) -> "ScanConfig":
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_FIELD_TYPES = {
    "evt_suffix": str,
    "evtx_suffix": str,
    "workers": int,
    "flag_files": bool,
    "xml": bool,
    "session_db": (str, type(None)),
    "follow_symlinks": bool,
}


def config_from_dict(data: dict[str, Any]) -> ScanConfig:
    known = {f.name for f in fields(ScanConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    for key, value in data.items():
        expected = _FIELD_TYPES[key]
        # bool is an int subclass; reject it where a count is expected
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ConfigError(f"Config key {key!r} has invalid value {value!r}")
    config = ScanConfig(**data)
    if config.workers < 1:
        raise ConfigError("workers must be >= 1")
    if not config.evt_suffix or not config.evtx_suffix:
        raise ConfigError("log suffixes must not be empty")
    return config


def load_config(path: Path | str | None) -> ScanConfig:
    """Load a YAML config file; None or an empty document yields the defaults."""
    if path is None:
        return ScanConfig()
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return ScanConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping")
    return config_from_dict(data)
