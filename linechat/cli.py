from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import (
    ServerRuntimeConfig,
    apply_config_data,
    default_config_path,
    load_toml,
)
from .constants import DEFAULT_ENCODING, DEFAULT_HOST, DEFAULT_PORT
from .errors import ListenerFailure
from .logging_config import configure_logging
from .service import ChatService


def _write_default_config(config_path: str) -> None:
    Path(config_path).parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    content = f"""# linechatd configuration (TOML)
#
# This file was created on first run. Command line flags override it.

[server]

# Address and TCP port to accept chat clients on.
host = {DEFAULT_HOST!r}
port = {DEFAULT_PORT}

# Text encoding of the line protocol. The stock console clients speak
# little-endian UTF-16.
encoding = {DEFAULT_ENCODING!r}

# Write a byte order mark at the start of every outbound stream.
write_bom = true

# Listen backlog.
backlog = 16

[logging]

# Log level for linechatd itself.
level = "INFO"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""

# Per-logger levels. linechat.router logs every broadcast line at INFO;
# uncomment to keep chat text out of the log.
#
# [logging.levels]
# "linechat.router" = "WARNING"
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="linechatd", description="Run a linechat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help=f"Listen address (default: {DEFAULT_HOST})")
    p.add_argument(
        "--port", type=int, default=None, help=f"Listen port (default: {DEFAULT_PORT})"
    )
    p.add_argument(
        "--encoding",
        default=None,
        help=f"Line encoding (default: {DEFAULT_ENCODING})",
    )
    p.add_argument(
        "--no-bom",
        action="store_true",
        help="Do not write a byte order mark at the start of outbound streams",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    if config_path and not os.path.exists(config_path):
        _write_default_config(config_path)
        print(f"Created default linechatd config: {config_path}", file=sys.stderr)

    cfg = ServerRuntimeConfig(config_path=config_path)
    if config_path:
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.encoding is not None:
        cfg = replace(cfg, encoding=str(args.encoding))
    if args.no_bom:
        cfg = replace(cfg, write_bom=False)

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = ChatService(cfg)
    try:
        svc.start()
    except ListenerFailure as e:
        print(f"linechatd: {e}", file=sys.stderr)
        raise SystemExit(1) from e
    svc.run_forever()


if __name__ == "__main__":
    main()
