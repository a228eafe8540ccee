from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .constants import DEFAULT_ENCODING, DEFAULT_HOST, DEFAULT_PORT

DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"

# [logging] keys and the config fields they set.
_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
    "levels": "log_levels",
}

_INT_FIELDS = ("port", "backlog")
_BLANK_IS_NONE = ("log_file", "log_datefmt")


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    encoding: str = DEFAULT_ENCODING
    write_bom: bool = True
    backlog: int = 16
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = DEFAULT_LOG_FORMAT
    log_datefmt: str | None = None
    # Logger name -> level name, e.g. {"linechat.router": "WARNING"}.
    log_levels: dict[str, str] = field(default_factory=dict)


def default_config_path() -> Path:
    """linechatd.toml under $LINECHAT_HOME, or ~/.linechat when unset."""
    home = os.environ.get("LINECHAT_HOME")
    base = Path(home) if home else Path.home() / ".linechat"
    return base / "linechatd.toml"


def load_toml(path: str) -> dict:
    import tomllib

    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def _settings(data: dict) -> dict[str, Any]:
    """Flatten [server] and [logging] into field names; tables win over top-level keys."""
    flat: dict[str, Any] = {}
    tables: dict[str, Any] = {}
    for key, value in data.items():
        if key == "server" and isinstance(value, dict):
            tables.update(value)
        elif key == "logging" and isinstance(value, dict):
            tables.update(
                {_LOGGING_KEYS[k]: v for k, v in value.items() if k in _LOGGING_KEYS}
            )
        else:
            flat[key] = value
    flat.update(tables)
    return flat


def apply_config_data(base: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """
    Overlay parsed TOML onto `base`. Unknown keys are ignored and the file
    cannot change `config_path`.
    """
    known = {f.name for f in fields(base)} - {"config_path"}

    updates: dict[str, Any] = {}
    for name, value in _settings(data).items():
        if name not in known:
            continue
        if name in _INT_FIELDS:
            value = int(value)
        elif name in _BLANK_IS_NONE and value == "":
            value = None
        elif name == "log_levels":
            value = {str(k): str(v) for k, v in dict(value).items()}
        updates[name] = value

    return replace(base, **updates) if updates else base
