from __future__ import annotations

import logging

import pytest

from circle_measure.logging_setup import configure_logging, get_logger, parse_log_level


def test_configure_logging_is_idempotent() -> None:
    first = configure_logging("DEBUG")
    handlers = list(first.handlers)
    second = configure_logging(logging.WARNING)

    assert first is second
    assert second.handlers == handlers
    assert second.level == logging.WARNING


def test_get_logger_nests_under_package() -> None:
    assert get_logger().name == "circle_measure"
    assert get_logger("bench").name == "circle_measure.bench"
    assert get_logger("circle_measure.scheduler").name == "circle_measure.scheduler"


def test_parse_log_level_rejects_unknown_name() -> None:
    assert parse_log_level("info") == logging.INFO
    with pytest.raises(ValueError, match="unknown log level"):
        parse_log_level("chatty")
