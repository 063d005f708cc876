"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from app.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_context() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "payload", 0), "msg": "Value error, bad payload.", "input": {"content": "AAAA"}, "ctx": {"error": ValueError("bad payload.")}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert "ctx" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "payload", "0"]


def test_error_payload_attaches_request_id_only_when_known() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload({"error": "QUEUE_FULL"}, request_id="abc") == {"detail": {"error": "QUEUE_FULL"}, "requestId": "abc"}
