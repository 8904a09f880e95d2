import logging
from datetime import datetime, timedelta

import pytest

from chainvault.logger import (
    FileLoggerConfig,
    LoggerConfig,
    LogLevel,
    default_dir,
    default_file_log_name,
    init,
)


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in saved_handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(saved_level)


def test_level_names_are_case_insensitive():
    assert LogLevel("WARN") is LogLevel.WARN
    assert LogLevel("Debug") is LogLevel.DEBUG
    assert LogLevel("warning") is LogLevel.WARN


def test_unknown_level_name_is_rejected():
    with pytest.raises(ValueError):
        LogLevel("loud")


def test_levels_are_ordered():
    names = ["trace", "debug", "info", "warn", "error", "off"]
    levels = [LogLevel(name).python_level for name in names]
    assert levels == sorted(levels)
    assert len(set(levels)) == len(levels)
    assert LogLevel("off").python_level > logging.CRITICAL


def test_default_configs():
    config = LoggerConfig()
    assert config.std is LogLevel.DEBUG
    assert config.file is None
    file_config = FileLoggerConfig()
    assert file_config.level is LogLevel.DEBUG
    assert file_config.dir is None


def test_default_file_log_name_is_a_utc_timestamp():
    name = default_file_log_name()
    assert name.endswith(".log")
    stamp = datetime.fromisoformat(name[: -len(".log")])
    assert stamp.utcoffset() == timedelta(0)


def test_default_dir():
    path = default_dir()
    assert path.is_absolute()
    assert path.name == "chainvault"


def test_console_respects_level(restore_logging, capsys):
    init(LoggerConfig(std=LogLevel.WARN))
    log = logging.getLogger("chainvault.sample")
    log.info("hidden-info-line")
    log.warning("shown-warning-line")
    out = capsys.readouterr().out
    assert "hidden-info-line" not in out
    assert "shown-warning-line" in out
    assert "WARN" in out


def test_console_applies_target_overrides(restore_logging, capsys):
    init(LoggerConfig(std=LogLevel.DEBUG))
    logging.getLogger("sqlx").warning("sqlx-warning-line")
    logging.getLogger("sqlx.pool").error("sqlx-error-line")
    logging.getLogger("chainvault.sample").debug("debug-line")
    out = capsys.readouterr().out
    assert "sqlx-warning-line" not in out
    assert "sqlx-error-line" in out
    assert "debug-line" in out


def test_file_logging_writes_records(restore_logging, tmp_path):
    log_dir = tmp_path / "nested" / "logs"
    handlers = init(
        LoggerConfig(
            std=LogLevel.ERROR,
            file=FileLoggerConfig(level=LogLevel.INFO, dir=log_dir, name="archive.log"),
        )
    )
    assert len(handlers) == 2
    log = logging.getLogger("chainvault.sample")
    log.info("file-info-line")
    log.debug("file-debug-line")
    logging.getLogger("trie").info("trie-info-line")
    for handler in handlers:
        handler.flush()
    content = (log_dir / "archive.log").read_text(encoding="utf-8")
    assert "file-info-line" in content
    assert "[chainvault.sample][INFO]" in content
    assert "file-debug-line" not in content
    assert "trie-info-line" not in content


def test_init_replaces_previous_handlers(restore_logging):
    root = logging.getLogger()
    before = len(root.handlers)
    first = init(LoggerConfig())
    after_first = len(root.handlers)
    second = init(LoggerConfig())
    assert after_first == before + len(first)
    assert len(root.handlers) == after_first
    assert all(handler in root.handlers for handler in second)
    assert not any(handler in root.handlers for handler in first)