"""YAML configuration for the dashboard report tools."""
from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or is incomplete."""


PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_LOCATIONS = (
    PACKAGE_ROOT / "config" / "config.yaml",
    PACKAGE_ROOT / "config" / "config.yml",
    Path("./config/config.yaml"),
    Path("./config/config.yml"),
    Path.home() / ".itsm_dashboard" / "config.yaml",
)

DEFAULTS: Dict[str, Any] = {
    "dataset": {
        "source": "data/incident_data.json",
        "cache_directory": ".cache/itsm_dashboard",
        "cache_key": "incident-data:v1",
        "use_cache": True,
        "timeout": 30,
        "verify_ssl": True,
        "timezone": None,
    },
    "dashboard": {
        "top_assignees": 10,
        "top_resolvers": 5,
        "top_groups": 10,
    },
    "reporting": {
        "output_directory": "reports",
        "formats": ["html", "json", "csv"],
    },
    "logging": {
        "console": {"enabled": True, "level": "INFO", "rich_format": False},
        "file": {"enabled": True, "level": "DEBUG", "path": "logs/itsm_dashboard.log"},
    },
}


def resolve_path(path_str: str | None, *, base: Path | None = None) -> Path:
    """Resolve ``path_str`` against ``base`` (the working directory by default)."""
    base_path = base or Path.cwd()
    if not path_str:
        return base_path
    path = Path(path_str).expanduser()
    if not path.is_absolute():
        path = base_path / path
    return path


def _merge(defaults: Mapping[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(dict(defaults))
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | os.PathLike[str] | None = None) -> Dict[str, Any]:
    """Load configuration from YAML and layer it over :data:`DEFAULTS`.

    Parameters
    ----------
    path: Optional path to a configuration file. When omitted the
        :data:`DEFAULT_CONFIG_LOCATIONS` are searched in order.
    """
    if path:
        candidate_paths = [Path(path)]
    else:
        candidate_paths = list(DEFAULT_CONFIG_LOCATIONS)

    for candidate in candidate_paths:
        if candidate.exists():
            with candidate.open("r", encoding="utf-8") as handle:
                try:
                    data = yaml.safe_load(handle) or {}
                except yaml.YAMLError as exc:
                    raise ConfigError(f"Unable to parse configuration file {candidate}") from exc
            if not isinstance(data, Mapping):
                raise ConfigError(f"Configuration file {candidate} must contain a mapping")
            return _merge(DEFAULTS, data)
    raise ConfigError(
        "No configuration file could be located. Provide --config or copy "
        "config/config.example.yaml to config/config.yaml."
    )
