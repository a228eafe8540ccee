import logging

from linechat.cli import _build_arg_parser, _write_default_config
from linechat.config import ServerRuntimeConfig, apply_config_data, load_toml
from linechat.logging_config import configure_logging, parse_level
from linechat.stats import StatsManager


def test_default_config_file_matches_defaults(tmp_path) -> None:
    path = tmp_path / "conf" / "linechatd.toml"

    _write_default_config(str(path))

    base = ServerRuntimeConfig(config_path=str(path))
    assert apply_config_data(base, load_toml(str(path))) == base


def test_arg_parser_overrides() -> None:
    args = _build_arg_parser().parse_args(
        ["--port", "12000", "--no-bom", "--log-level", "DEBUG"]
    )
    assert args.port == 12000
    assert args.no_bom
    assert args.host is None
    assert args.log_level == "DEBUG"


def test_configure_logging_writes_file(tmp_path) -> None:
    log_file = tmp_path / "logs" / "linechatd.log"
    cfg = ServerRuntimeConfig(log_console=False, log_file=str(log_file))

    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level

    configure_logging(cfg, override_level="DEBUG")
    try:
        logging.getLogger("linechat.test").debug("hello from test")
        for h in logging.getLogger().handlers:
            h.flush()
        assert "hello from test" in log_file.read_text(encoding="utf-8")
        assert logging.getLogger().level == logging.DEBUG
    finally:
        for h in list(root.handlers):
            root.removeHandler(h)
            h.close()
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_configure_logging_sets_logger_levels(tmp_path) -> None:
    log_file = tmp_path / "linechatd.log"
    cfg = ServerRuntimeConfig(
        log_console=False,
        log_file=str(log_file),
        log_levels={"linechat.test.quiet": "warning", "linechat.test.odd": "loud"},
    )

    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    quiet = logging.getLogger("linechat.test.quiet")
    odd = logging.getLogger("linechat.test.odd")

    # An empty file override turns file logging off.
    configure_logging(cfg, override_file="")
    try:
        assert root.handlers == []
        assert root.level == logging.INFO
        assert quiet.level == logging.WARNING
        assert odd.level == logging.NOTSET
        assert not log_file.exists()
    finally:
        quiet.setLevel(logging.NOTSET)
        for h in saved_handlers:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_parse_level() -> None:
    assert parse_level("debug") == logging.DEBUG
    assert parse_level(" Warn ") == logging.WARNING
    assert parse_level(None) == logging.INFO
    assert parse_level("10", logging.ERROR) == logging.ERROR


def test_stats_summary() -> None:
    stats = StatsManager()
    stats.set_start_time()
    stats.inc("joins")
    stats.inc("lines_in", 3)

    text = stats.format_stats()

    assert "joins=1" in text
    assert "lines_in=3" in text
