"""
Tests for logging context, metrics helpers and tracing spans.
"""

import pytest
import structlog
from prometheus_client import REGISTRY

from app.observability import log_context, metrics
from app.observability.tracing import trace_operation


class TestLogContext:
    """Tests for log_context."""

    def test_binds_and_unbinds(self):
        """Context variables exist only inside the block."""
        with log_context(request_id="req-1"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-1"
        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestMetrics:
    """Tests for metric helpers."""

    def test_membership_check_counted(self):
        """Membership checks are counted by status."""
        labels = {"membership_status": "active"}
        before = REGISTRY.get_sample_value("membership_gate_membership_checks_total", labels) or 0

        metrics.record_membership_check("active", 0.01)

        after = REGISTRY.get_sample_value("membership_gate_membership_checks_total", labels)
        assert after == before + 1

    def test_signed_url_counted(self):
        """Signed URL attempts are counted by outcome."""
        labels = {"success": "False"}
        before = REGISTRY.get_sample_value("membership_gate_signed_urls_total", labels) or 0

        metrics.record_signed_url(success=False)

        assert REGISTRY.get_sample_value("membership_gate_signed_urls_total", labels) == before + 1


class TestTraceOperation:
    """Tests for trace_operation."""

    def test_yields_span(self):
        """A span is available inside the block."""
        with trace_operation("unit_test", attempt=1) as span:
            assert span is not None

    def test_exceptions_propagate(self):
        """Errors are recorded on the span and re-raised."""
        with pytest.raises(RuntimeError):
            with trace_operation("unit_test"):
                raise RuntimeError("boom")


class TestRedaction:
    """Tests for the redact_secrets processor."""

    def test_masks_signing_material(self):
        """Secret-bearing keys are masked, others left alone."""
        from app.observability.logging import redact_secrets

        event = {"event": "x", "private_key": "-----BEGIN", "signature": "abc", "resource": "r"}

        result = redact_secrets(None, "info", event)

        assert result["private_key"] == "***"
        assert result["signature"] == "***"
        assert result["resource"] == "r"


class TestTransactionMetrics:
    """Tests for record_transaction."""

    def test_counted_by_action_and_outcome(self):
        """Each outcome has its own series."""
        labels = {"action": "renew", "outcome": "reverted"}
        before = REGISTRY.get_sample_value("membership_gate_transactions_total", labels) or 0

        metrics.record_transaction("renew", "reverted")

        assert REGISTRY.get_sample_value("membership_gate_transactions_total", labels) == before + 1
