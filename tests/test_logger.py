import pytest

from tabular.logger import logger
from tabular.logger.logger import LOG_LEVEL, log_info, log_warning, parse_log_level


class _CapturingLogger:
    def __init__(self) -> None:
        self.records: list[tuple[int, str]] = []

    def log(self, level: int, message: str) -> None:
        self.records.append((level, message))


@pytest.fixture
def captured(monkeypatch) -> _CapturingLogger:
    capturing = _CapturingLogger()
    monkeypatch.setattr(logger, "get_logger", lambda: capturing)
    return capturing


def test_messages_are_prefixed_with_caller(captured: _CapturingLogger) -> None:
    log_warning("3 patient(s) share the top priority")
    log_info()
    assert captured.records == [
        (LOG_LEVEL.WARN, "tests/test_logger.py:test_messages_are_prefixed_with_caller - 3 patient(s) share the top priority"),
        (LOG_LEVEL.INFO, "tests/test_logger.py:test_messages_are_prefixed_with_caller"),
    ]


def test_parse_log_level() -> None:
    assert parse_log_level("warn") == LOG_LEVEL.WARN
    assert parse_log_level("nonsense", default=LOG_LEVEL.INFO) == LOG_LEVEL.INFO
