"""Tests for JSON logging setup."""

from __future__ import annotations

import io
import json
import logging
import sys
from collections.abc import Generator

import pytest

from clusterscope.log import JsonFormatter, setup_logging


@pytest.fixture
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def test_includes_extra_fields(self) -> None:
        """Test that extra fields appear as top-level JSON keys."""
        record = logging.LogRecord("clusterscope.scope", logging.INFO, __file__, 1, "hello %s", ("c1",), None)
        record.cluster = "c1"

        data = json.loads(JsonFormatter().format(record))

        assert data["message"] == "hello c1"
        assert data["level"] == "INFO"
        assert data["logger"] == "clusterscope.scope"
        assert data["cluster"] == "c1"
        assert data["timestamp"].endswith("Z")

    def test_includes_exception(self) -> None:
        """Test that exception info is formatted into the record."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        data = json.loads(JsonFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.mark.usefixtures("restore_root_logger")
    def test_installs_json_handler(self) -> None:
        """Test that root records are written as JSON and SDK loggers are quieted."""
        stream = io.StringIO()
        handler = setup_logging(logging.DEBUG, stream=stream)

        logging.getLogger("clusterscope.test").info("ready", extra={"subscription_id": "s"})

        assert handler in logging.getLogger().handlers
        line = json.loads(stream.getvalue().splitlines()[-1])
        assert line["subscription_id"] == "s"
        assert logging.getLogger("azure").level == logging.WARNING
        assert logging.getLogger("kubernetes").level == logging.WARNING
