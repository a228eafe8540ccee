from __future__ import annotations

import logging
import os
from pathlib import Path

from .config import DEFAULT_LOG_FORMAT, ServerRuntimeConfig
from .util import expand_path

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def parse_level(name: str | None, default: int = logging.INFO) -> int:
    """Map a level name such as "debug" to its value; unknown names give `default`."""
    return _LEVELS.get(str(name or "").strip().upper(), default)


def _file_handler(log_file: str) -> logging.Handler:
    path = Path(expand_path(log_file))
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(
    cfg: ServerRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """
    Route linechatd logging to stderr and/or a file.

    The command line overrides win over the config; an empty
    `override_file` turns file logging off. `cfg.log_levels` sets levels for
    individual loggers, e.g. quieting the chat transcript that
    `linechat.router` writes at INFO. Root handlers from an earlier call are
    replaced.
    """
    log_file = cfg.log_file if override_file is None else override_file
    log_file = (log_file or "").strip()

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file))

    formatter = logging.Formatter(
        fmt=cfg.log_format.strip() or DEFAULT_LOG_FORMAT,
        datefmt=cfg.log_datefmt or None,
    )

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)
    root.setLevel(parse_level(override_level or cfg.log_level))

    # Unknown names fall back to NOTSET, so the logger follows its parent.
    for name, level in cfg.log_levels.items():
        logging.getLogger(name).setLevel(parse_level(level, logging.NOTSET))

    logging.captureWarnings(True)
