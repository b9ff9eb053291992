"""
Unit tests for structured logging.

Usage:
    pytest tests/unit/monitoring/test_logger.py
"""

import json
import logging

from brale_core.monitoring import (
    JSONFormatter,
    SecretMaskingFilter,
    get_correlation_id,
    set_correlation_id,
    setup_logging,
)


def _record(msg, args=(), **extra):
    record = logging.LogRecord(
        "brale_core.test", logging.WARNING, __file__, 10, msg, args, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSON log line schema."""

    def test_core_fields(self):
        data = json.loads(JSONFormatter().format(_record("token %s", ("refreshed",))))

        assert data["level"] == "WARNING"
        assert data["logger"] == "brale_core.test"
        assert data["message"] == "token refreshed"
        assert data["line"] == 10

    def test_extra_fields_included(self):
        data = json.loads(
            JSONFormatter().format(_record("event", credential_id="clie****3a2c"))
        )

        assert data["credential_id"] == "clie****3a2c"

    def test_correlation_id_included(self):
        correlation_id = set_correlation_id("corr-123")

        data = json.loads(JSONFormatter().format(_record("event")))

        assert correlation_id == "corr-123"
        assert get_correlation_id() == "corr-123"
        assert data["correlation_id"] == "corr-123"

    def test_generated_correlation_id(self):
        assert len(set_correlation_id()) == 36


class TestSecretMaskingFilter:
    """Test Authorization value redaction."""

    def test_bearer_value_masked(self):
        record = _record("sending Authorization: Bearer abc.def-123")

        assert SecretMaskingFilter().filter(record) is True
        assert record.getMessage() == "sending Authorization: Bearer ***"

    def test_basic_value_masked_in_args(self):
        record = _record("header %s", ("Basic Y2xpZW50OnNlY3JldA==",))

        SecretMaskingFilter().filter(record)

        assert "Y2xpZW50" not in record.getMessage()

    def test_plain_message_untouched(self):
        record = _record("nothing secret")

        SecretMaskingFilter().filter(record)

        assert record.getMessage() == "nothing secret"


class TestSetupLogging:
    """Test root logger configuration."""

    def test_installs_json_handler(self, restore_root_logging):
        setup_logging("DEBUG", json_logs=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_installs_plain_handler(self, restore_root_logging):
        setup_logging("INFO", json_logs=False)

        handler = logging.getLogger().handlers[0]
        assert not isinstance(handler.formatter, JSONFormatter)
        assert any(isinstance(f, SecretMaskingFilter) for f in handler.filters)
