"""
Audit webhook sink.

Every event is written to the local structured log. Kinds enabled in the
forward policy are also POSTed to the configured webhook as a single
embed from a background task. Delivery problems are logged and dropped;
``emit`` never raises and never waits on the webhook.
"""

import asyncio
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Set

import httpx
from pydantic import BaseModel

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .sanitizer import sanitize


class AuditKind(str, Enum):
    INFO = "info"
    REQUEST = "request"
    TOKEN_CHECK = "token_check"
    LOGIN = "login"
    ERROR = "error"


# kind -> (title marker, embed color)
KIND_STYLES: Dict[AuditKind, tuple] = {
    AuditKind.INFO: ("\U0001F4D8", 0x3498DB),
    AuditKind.REQUEST: ("\U0001F504", 0x2ECC71),
    AuditKind.TOKEN_CHECK: ("\U0001F50D", 0x9B59B6),
    AuditKind.LOGIN: ("\U0001F511", 0xF1C40F),
    AuditKind.ERROR: ("⚠️", 0xE74C3C),
}
DEFAULT_STYLE = ("\U0001F4DD", 0x95A5A6)

DEFAULT_FORWARD_KINDS = ("request", "login", "error")


class AuditEvent(BaseModel):
    """One audit trail entry. ``data`` is sanitized before it leaves the process."""

    kind: AuditKind
    message: str
    data: Optional[Any] = None


class AuditSink:
    """Best-effort audit channel backed by an outbound webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        forward_kinds: Iterable[str] = DEFAULT_FORWARD_KINDS,
        username: str = "Token Verifier",
        avatar_url: Optional[str] = None,
        timeout: float = 5.0,
        max_data_chars: int = 1000,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.webhook_url = webhook_url
        self.username = username
        self.avatar_url = avatar_url
        self.timeout = timeout
        self.max_data_chars = max_data_chars
        self.metrics = metrics
        self._client = client
        self._pending: Set[asyncio.Task] = set()
        self.logger = get_logger("verifier.audit")

        enabled = {kind.lower() for kind in forward_kinds}
        self.forward_policy: Dict[AuditKind, bool] = {
            kind: kind.value in enabled for kind in AuditKind
        }

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def should_forward(self, kind: AuditKind) -> bool:
        return self.enabled and self.forward_policy.get(kind, False)

    async def emit(self, event: AuditEvent) -> None:
        """Log the event locally and schedule forwarding when the policy allows.

        Only the local log line happens inline. The webhook POST runs in a
        background task so a slow sink never holds up the caller; ``drain``
        waits for whatever is still in flight.
        """
        try:
            data = sanitize(event.data) if event.data is not None else None
            self.logger.info(
                "Audit event",
                kind=event.kind.value,
                audit_message=event.message,
                data=data
            )

            if not self.should_forward(event.kind):
                self._count(event.kind, "local")
                return

            payload = self.build_payload(event.kind, event.message, data)
            task = asyncio.create_task(self._deliver(event.kind, payload))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        except Exception as e:
            self.logger.error(
                "Audit event dropped",
                kind=event.kind.value,
                error=str(e)
            )
            self._count(event.kind, "failed")

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for in-flight webhook deliveries to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, kind: AuditKind, payload: Dict[str, Any]) -> None:
        try:
            response = await self._post(payload)

            if response.is_success:
                self._count(kind, "sent")
            else:
                self.logger.warning(
                    "Audit webhook rejected event",
                    kind=kind.value,
                    status_code=response.status_code,
                    body=response.text[:200]
                )
                self._count(kind, "rejected")
        except Exception as e:
            self.logger.error(
                "Audit webhook delivery failed",
                kind=kind.value,
                error=str(e)
            )
            self._count(kind, "failed")

    def build_payload(
        self,
        kind: AuditKind,
        message: str,
        data: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Build the webhook body for an already-sanitized event."""
        now = now or datetime.now(timezone.utc)
        marker, color = KIND_STYLES.get(kind, DEFAULT_STYLE)

        embed: Dict[str, Any] = {
            "title": f"{marker} {kind.value.upper()}",
            "description": message,
            "color": color,
            "timestamp": now.isoformat(),
            "footer": {"text": f"Timestamp: {now.strftime('%Y-%m-%d %H:%M:%S')} UTC • {self.username}"},
            "fields": [],
        }
        if data is not None:
            embed["fields"].append({"name": "Details", "value": self.format_details(data)})

        payload: Dict[str, Any] = {"username": self.username, "embeds": [embed]}
        if self.avatar_url:
            payload["avatar_url"] = self.avatar_url
        return payload

    def format_details(self, data: Any) -> str:
        """Serialize data as a fenced JSON block, capped at ``max_data_chars``."""
        serialized = json.dumps(data, indent=2, default=str, ensure_ascii=False)
        if len(serialized) > self.max_data_chars:
            serialized = serialized[: self.max_data_chars - 3] + "..."
        return f"```json\n{serialized}\n```"

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self.webhook_url, json=payload, timeout=self.timeout)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.webhook_url, json=payload)

    def _count(self, kind: AuditKind, outcome: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("audit_events_total", kind=kind.value, outcome=outcome)
