"""Gateway configuration from YAML with environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from hearthgate.core.errors import ConfigError, PluginLoadError, PluginValidationError
from hearthgate.core.plugin_loader import read_yaml, validate_document

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
BUILTIN_DRIVERS = PACKAGE_ROOT / "plugins" / "drivers"
BUILTIN_INTERFACES = PACKAGE_ROOT / "plugins" / "interfaces"
CONFIG_ENV = "HEARTHGATE_CONFIG"


@dataclass(frozen=True)
class GatewayConfig:
    driver_directory: Path = BUILTIN_DRIVERS
    interface_directory: Path = BUILTIN_INTERFACES
    scan_interval: float = 60.0
    plugin_load_timeout: float = 10.0
    device_discover_timeout: float = 5.0
    settle_limit: float = 120.0
    poll_interval: float = 0.06
    state_file: Path | None = None
    log_level: str = "INFO"


def _config_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "hearthgate", xdg_data / "hearthgate"


def default_config_path() -> Path | None:
    from_env = os.environ.get(CONFIG_ENV)
    if from_env:
        return Path(from_env)
    candidate = _config_dirs()[0] / "config.yaml"
    return candidate if candidate.exists() else None


def _resolve(base: Path, value: str) -> Path:
    path = Path(value).expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def config_from_mapping(doc: dict[str, Any], base: Path, source: Path | None = None) -> GatewayConfig:
    validate_document(doc, "config", source or base)
    known = {f.name for f in fields(GatewayConfig)}
    values: dict[str, Any] = {}
    for key, value in doc.items():
        if key not in known:
            continue
        if key in {"driver_directory", "interface_directory"}:
            values[key] = _resolve(base, value)
        elif key == "state_file":
            values[key] = _resolve(base, value) if value else None
        elif key == "log_level":
            values[key] = value
        else:
            values[key] = float(value)
    return replace(GatewayConfig(), **values)


def load_config(path: Path | None = None) -> GatewayConfig:
    """Load the gateway configuration.

    Without an explicit path, ``$HEARTHGATE_CONFIG`` is used, then
    ``$XDG_CONFIG_HOME/hearthgate/config.yaml``. With neither present the
    built-in plugin directories and defaults apply, and device state is
    kept under ``$XDG_DATA_HOME/hearthgate``.
    """
    path = path or default_config_path()
    if path is None:
        return replace(GatewayConfig(), state_file=_config_dirs()[1] / "state.json")
    if not path.exists():
        raise ConfigError(f"Configuration file {path} does not exist")
    try:
        doc = read_yaml(path)
        return config_from_mapping(doc, path.parent, path)
    except (PluginLoadError, PluginValidationError) as exc:
        raise ConfigError(str(exc)) from exc
