"""
Sequential batch verification.
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Optional

from shared.errors import ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..audit.sanitizer import mask_secret
from ..audit.sink import AuditEvent, AuditKind, AuditSink
from ..store.base import VerifiedRecordStore
from ..verification.models import BatchCounts, BatchResult, VerificationOutcome
from ..verification.verifier import UpstreamVerifier

DEFAULT_MAX_ITEMS = 100
DEFAULT_ITEM_DELAY_MS = 200
EMPTY_BATCH_MESSAGE = "No valid tokens provided. Please enter at least one token."

logger = get_logger("verifier.batch")


def describe_outcome(outcome: VerificationOutcome) -> dict:
    """Audit data for one outcome. The token is masked by the sink."""
    data = {"token": outcome.token, "valid": outcome.valid}
    if outcome.user is not None:
        data["account_id"] = outcome.user.id
    if outcome.error is not None:
        data["error"] = outcome.error
    return data


def parse_token_lines(raw_input: str) -> List[str]:
    """Split on newlines, trim, and drop blank lines."""
    return [line.strip() for line in raw_input.split("\n") if line.strip()]


async def persist_outcomes(
    store: VerifiedRecordStore,
    audit: AuditSink,
    outcomes: Iterable[VerificationOutcome],
    metrics: Optional[MetricsCollector] = None,
) -> int:
    """Save every valid outcome in order; returns how many were saved.

    A store failure is reported through the log and the audit channel and
    does not change the outcome already handed to the caller.
    """
    saved = 0
    for outcome in outcomes:
        if not outcome.valid:
            continue
        try:
            await store.save(outcome)
            saved += 1
        except Exception as e:
            logger.error(
                "Failed to persist verified token",
                token=mask_secret(outcome.token),
                error=str(e)
            )
            if metrics is not None:
                metrics.record_error("STORE_ERROR")
            await audit.emit(AuditEvent(
                kind=AuditKind.ERROR,
                message="Failed to persist a verified token",
                data={"token": outcome.token, "error": str(e)}
            ))
    return saved


class BatchOrchestrator:
    """Runs verifications one at a time with a fixed pause after each.

    Calls are never overlapped: pacing is what keeps bulk checks under the
    identity API's rate limits. Outcomes keep input order and a failing
    token never stops the batch.
    """

    def __init__(
        self,
        verifier: UpstreamVerifier,
        store: VerifiedRecordStore,
        audit: AuditSink,
        max_items: int = DEFAULT_MAX_ITEMS,
        item_delay_ms: int = DEFAULT_ITEM_DELAY_MS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.verifier = verifier
        self.store = store
        self.audit = audit
        self.max_items = max_items
        self.item_delay_ms = item_delay_ms
        self.metrics = metrics
        self._sleep = sleep

    async def run_batch(
        self,
        raw_input: str,
        max_items: Optional[int] = None,
        item_delay_ms: Optional[int] = None,
    ) -> BatchResult:
        limit = self.max_items if max_items is None else max_items
        delay_ms = self.item_delay_ms if item_delay_ms is None else item_delay_ms

        tokens = parse_token_lines(raw_input)
        if not tokens:
            raise ValidationError(EMPTY_BATCH_MESSAGE)

        truncated = len(tokens) > limit
        selected = tokens[:limit]

        logger.info(
            "Starting batch",
            submitted=len(tokens),
            processing=len(selected),
            truncated=truncated,
            item_delay_ms=delay_ms
        )

        outcomes: List[VerificationOutcome] = []
        for token in selected:
            outcome = await self.verifier.verify(token)
            outcomes.append(outcome)
            await self.audit.emit(AuditEvent(
                kind=AuditKind.TOKEN_CHECK,
                message="Token checked",
                data=describe_outcome(outcome)
            ))
            await self._sleep(delay_ms / 1000)

        saved = await persist_outcomes(self.store, self.audit, outcomes, self.metrics)
        counts = BatchCounts.from_outcomes(outcomes)

        if self.metrics is not None:
            self.metrics.observe_histogram("batch_size", counts.total)

        logger.info(
            "Batch complete",
            total=counts.total,
            valid=counts.valid,
            invalid=counts.invalid,
            saved=saved
        )
        return BatchResult(outcomes=outcomes, counts=counts, truncated=truncated)
