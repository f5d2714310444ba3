"""
Unit tests for the audit webhook sink.
"""

import asyncio
import json
import time
from datetime import datetime, timezone

import pytest
import httpx

from service_verifier.app.audit.sink import AuditEvent, AuditKind, AuditSink
from shared.metrics import MetricsCollector

WEBHOOK_URL = "http://hooks.test/audit"


class TestAuditSink:
    """Test cases for AuditSink."""

    @pytest.fixture
    def deliveries(self):
        """Webhook bodies received by the mock transport."""
        return []

    @pytest.fixture
    def client(self, deliveries):
        """HTTP client whose webhook accepts every delivery."""
        def handler(request: httpx.Request) -> httpx.Response:
            deliveries.append(json.loads(request.content))
            return httpx.Response(204)

        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @pytest.fixture
    def sink(self, client):
        """Sink forwarding the default kinds."""
        return AuditSink(webhook_url=WEBHOOK_URL, client=client, metrics=MetricsCollector("verifier"))

    @pytest.mark.asyncio
    async def test_forwarded_kind_is_sent_sanitized(self, sink, deliveries):
        """Test that a request event is posted with the token masked."""
        token = "ABCDE0123456789VWXYZ"

        await sink.emit(AuditEvent(kind=AuditKind.REQUEST, message="Single token check requested", data={"token": token}))
        await sink.drain()

        assert len(deliveries) == 1
        embed = deliveries[0]["embeds"][0]
        assert embed["title"].endswith("REQUEST")
        assert embed["description"] == "Single token check requested"
        assert embed["color"] == 0x2ECC71
        assert "ABCDE[...]VWXYZ" in embed["fields"][0]["value"]
        assert token not in json.dumps(deliveries[0])
        assert deliveries[0]["username"] == "Token Verifier"

    @pytest.mark.asyncio
    async def test_local_only_kind_is_not_sent(self, sink, deliveries):
        """Test that token_check events stay in the local log by default."""
        await sink.emit(AuditEvent(kind=AuditKind.TOKEN_CHECK, message="Token checked", data={"valid": True}))
        await sink.emit(AuditEvent(kind=AuditKind.INFO, message="hello"))

        assert deliveries == []
        assert sink.metrics.registry.get_sample_value(
            "audit_events_total", {"kind": "token_check", "outcome": "local"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_forward_policy_is_configurable(self, client, deliveries):
        """Test a custom kind -> forward mapping."""
        sink = AuditSink(webhook_url=WEBHOOK_URL, client=client, forward_kinds=["token_check"])

        await sink.emit(AuditEvent(kind=AuditKind.TOKEN_CHECK, message="Token checked"))
        await sink.emit(AuditEvent(kind=AuditKind.ERROR, message="boom"))
        await sink.drain()

        assert len(deliveries) == 1
        assert sink.forward_policy[AuditKind.TOKEN_CHECK] is True
        assert sink.forward_policy[AuditKind.ERROR] is False

    @pytest.mark.asyncio
    async def test_no_webhook_means_local_only(self, deliveries):
        """Test that without a URL nothing is forwarded."""
        sink = AuditSink(webhook_url=None)

        await sink.emit(AuditEvent(kind=AuditKind.ERROR, message="boom"))

        assert sink.enabled is False
        assert deliveries == []

    @pytest.mark.asyncio
    async def test_transport_failure_is_swallowed(self):
        """Test that a network error never escapes emit()."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        metrics = MetricsCollector("verifier")
        sink = AuditSink(
            webhook_url=WEBHOOK_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            metrics=metrics
        )

        await sink.emit(AuditEvent(kind=AuditKind.ERROR, message="boom", data={"token": "x" * 40}))
        await sink.drain()

        assert metrics.registry.get_sample_value(
            "audit_events_total", {"kind": "error", "outcome": "failed"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_non_2xx_is_swallowed(self):
        """Test that a rejected delivery is logged and ignored."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"message": "Invalid Form Body"})

        metrics = MetricsCollector("verifier")
        sink = AuditSink(
            webhook_url=WEBHOOK_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            metrics=metrics
        )

        await sink.emit(AuditEvent(kind=AuditKind.LOGIN, message="login"))
        await sink.drain()

        assert metrics.registry.get_sample_value(
            "audit_events_total", {"kind": "login", "outcome": "rejected"}
        ) == 1.0

    @pytest.mark.asyncio
    async def test_emit_does_not_wait_for_slow_webhook(self):
        """Test that emit() returns while the delivery is still in flight."""
        delivered = []

        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.5)
            delivered.append(request)
            return httpx.Response(204)

        metrics = MetricsCollector("verifier")
        sink = AuditSink(
            webhook_url=WEBHOOK_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            metrics=metrics
        )

        started = time.perf_counter()
        await sink.emit(AuditEvent(kind=AuditKind.REQUEST, message="slow"))
        elapsed = time.perf_counter() - started

        assert elapsed < 0.25
        assert sink.pending == 1
        assert delivered == []

        await sink.drain()

        assert sink.pending == 0
        assert len(delivered) == 1
        assert metrics.registry.get_sample_value(
            "audit_events_total", {"kind": "request", "outcome": "sent"}
        ) == 1.0

    def test_build_payload_shape(self):
        """Test title, color, timestamp, footer and avatar."""
        sink = AuditSink(webhook_url=WEBHOOK_URL, avatar_url="http://cdn.test/icon.png")
        now = datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc)

        payload = sink.build_payload(AuditKind.ERROR, "Something failed", {"error": "boom"}, now=now)

        embed = payload["embeds"][0]
        assert payload["avatar_url"] == "http://cdn.test/icon.png"
        assert embed["title"].endswith(" ERROR")
        assert embed["color"] == 0xE74C3C
        assert embed["timestamp"] == "2024-05-01T12:30:00+00:00"
        assert embed["footer"]["text"].startswith("Timestamp: 2024-05-01 12:30:00 UTC")
        assert embed["fields"][0]["name"] == "Details"
        assert embed["fields"][0]["value"].startswith("```json\n")

    def test_build_payload_without_data(self):
        """Test that events without data carry no fields."""
        payload = AuditSink().build_payload(AuditKind.INFO, "hello")

        assert payload["embeds"][0]["fields"] == []
        assert "avatar_url" not in payload

    def test_format_details_truncates(self):
        """Test that long data is cut to the cap with an ellipsis."""
        sink = AuditSink()

        value = sink.format_details({"blob": "y" * 5000})

        body = value[len("```json\n"):-len("\n```")]
        assert len(body) == 1000
        assert body.endswith("...")

    def test_format_details_short_data_untouched(self):
        """Test that small data is serialized in full."""
        value = AuditSink().format_details({"a": 1})

        assert value == '```json\n{\n  "a": 1\n}\n```'
