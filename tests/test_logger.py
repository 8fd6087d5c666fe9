"""Tests for logger naming and formatters."""

from __future__ import annotations

import logging

from edgewatch.core.logger import ColoredFormatter, StructuredFormatter, get_connector_logger, get_logger


def _record(level=logging.INFO, msg="hello"):
    return logging.LogRecord("edgewatch.test", level, __file__, 1, msg, None, None)


def test_logger_names():
    assert get_logger("engine.decision").name == "edgewatch.engine.decision"
    assert get_connector_logger("manifold_ws").name == "edgewatch.connectors.manifold_ws"


def test_colored_formatter_leaves_record_untouched():
    record = _record(logging.WARNING)
    line = ColoredFormatter("%(levelname)s %(message)s").format(record)

    assert "WARNING" in line
    assert "\x1b[" in line
    assert record.levelname == "WARNING"


def test_structured_formatter_adds_uptime():
    record = _record()
    line = StructuredFormatter("[%(uptime)s] %(levelname)s %(message)s").format(record)
    assert line.endswith("INFO hello")
    assert line.startswith("[")
