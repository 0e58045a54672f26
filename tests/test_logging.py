"""
Logging tests - structured messages and privacy of record contents.
"""

import logging
from datetime import timedelta

import pytest

from recordvault.util.logging import StructuredLogger, sanitize_payload


@pytest.fixture
def capture(caplog):
    caplog.set_level(logging.DEBUG, logger="recordvault.test")
    return caplog


class TestSanitizePayload:
    """Test payload redaction for audit logging."""

    def test_sensitive_fields_redacted(self):
        payload = {"record_id": "abc", "notes": "diary", "location": "home", "tags": ["x"]}
        assert sanitize_payload(payload) == {
            "record_id": "abc", "notes": "[REDACTED]", "location": "[REDACTED]", "tags": "[REDACTED]",
        }

    def test_reveal_sensitive(self):
        assert sanitize_payload({"notes": "diary"}, reveal_sensitive=True) == {"notes": "diary"}

    def test_nested_structures(self):
        payload = {"items": [{"notes": "a", "count": 1}]}
        assert sanitize_payload(payload) == {"items": [{"notes": "[REDACTED]", "count": 1}]}

    def test_long_strings_truncated(self):
        assert sanitize_payload("x" * 150) == "x" * 100 + "..."

    def test_custom_sensitive_fields(self):
        assert sanitize_payload({"a": 1, "b": 2}, sensitive_fields=["b"]) == {"a": 1, "b": "[REDACTED]"}


class TestStructuredLogger:
    """Test the structured message format."""

    def test_operation_format(self, test_logger, capture):
        test_logger.log_operation("store.save", "success", {"record_id": "abc"})
        assert "Operation: store.save, Status: success, Details: {'record_id': 'abc'}" in capture.text

    def test_handler_attached_once(self):
        StructuredLogger("recordvault.handlers")
        logger = StructuredLogger("recordvault.handlers")
        assert len(logger.logger.handlers) == 1

    def test_failed_record_operation_is_warning(self, test_logger, capture):
        test_logger.log_record_operation("save", "abc", status="duplicate")
        assert capture.records[-1].levelno == logging.WARNING

    def test_record_details_are_sanitized(self, test_logger, capture):
        test_logger.log_record_operation("update", "abc", details={"notes": "secret diary"})
        assert "secret diary" not in capture.text

    def test_validation_rejection_drops_values(self, test_logger, capture):
        errors = [{"field": "notes", "message": "notes must be a string", "input": "my diary"}]
        test_logger.log_validation_rejected("import", errors, source_index=4)
        assert "my diary" not in capture.text
        assert "'index': 4" in capture.text
        assert "validation.import" in capture.text

    def test_audit_event(self, test_logger, capture):
        test_logger.audit_event("store.export", {"record_count": 3}, {"passphrase_protected": True})
        assert "Operation: store_export, Status: audit" in capture.text


def test_store_never_logs_record_contents(store, make_raw, capture):
    """Test that notes and location stay out of store logs, even on rejection."""
    record = store.save(make_raw(notes="confidential note", location="secret place"))
    store.update(record.id, {"notes": "another confidential note"})
    with pytest.raises(Exception):
        store.save(make_raw(ago=timedelta(hours=2), notes=12345678))
    store.get_all()
    assert "confidential" not in capture.text
    assert "secret place" not in capture.text
    assert "12345678" not in capture.text
