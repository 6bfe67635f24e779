from __future__ import annotations

import json
import logging
import logging.handlers
from pathlib import Path

import pytest

from gcsbench.logging_config import (
    HumanReadableFormatter,
    JSONFormatter,
    get_log_level_from_env,
    log_performance,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_writes_json_file(tmp_path: Path) -> None:
    """JSON console output plus a rotating JSON file handler."""
    log_path = tmp_path / "logs" / "bench.log"
    setup_logging(level=logging.DEBUG, format_type="json", log_file=log_path)

    handlers = logging.getLogger().handlers
    file_handler = next(h for h in handlers if isinstance(h, logging.handlers.RotatingFileHandler))
    assert isinstance(file_handler.formatter, JSONFormatter)

    log_performance(logging.getLogger("gcsbench.test"), "upload", 1.25, bytes=42, api="http1")
    file_handler.flush()

    records = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines()]
    record = next(r for r in records if r["logger"] == "gcsbench.test")
    assert record["message"] == "Performance: upload completed in 1.25s"
    assert record["operation"] == "upload"
    assert record["duration_seconds"] == 1.25
    assert record["bytes"] == 42
    assert record["timestamp"].endswith("Z")


def test_human_format_is_default(monkeypatch) -> None:
    monkeypatch.delenv("GCSBENCH_LOG_FORMAT", raising=False)
    setup_logging(level=logging.INFO)
    (handler,) = logging.getLogger().handlers
    assert isinstance(handler.formatter, HumanReadableFormatter)


def test_noisy_loggers_quieted() -> None:
    setup_logging(level=logging.DEBUG, format_type="simple")
    assert logging.getLogger("urllib3").level == logging.WARNING


@pytest.mark.parametrize("env,expected", [
    ({"GCSBENCH_LOG_LEVEL": "debug"}, logging.DEBUG),
    ({"LOG_LEVEL": "warn"}, logging.WARNING),
    ({"GCSBENCH_LOG_LEVEL": "error", "LOG_LEVEL": "debug"}, logging.ERROR),
    ({"GCSBENCH_LOG_LEVEL": "nonsense"}, logging.INFO),
    ({}, logging.INFO),
])
def test_log_level_from_env(monkeypatch, env, expected) -> None:
    monkeypatch.delenv("GCSBENCH_LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    assert get_log_level_from_env() == expected


def test_human_formatter_context_fields() -> None:
    record = logging.LogRecord("gcsbench.stores", logging.INFO, "/src/stores.py", 42, "opened", (), None)
    record.funcName = "open_range_reader"

    plain = HumanReadableFormatter(include_context=False).format(record)
    with_context = HumanReadableFormatter(include_context=True).format(record)

    assert plain.endswith("- gcsbench.stores - opened")
    assert "stores.open_range_reader:42 - opened" in with_context
