"""
Verification pipeline facade.

Single entry point for the HTTP layer: format-checks single tokens, hands
bulk input to the batch orchestrator, and persists what verified.
"""

from typing import List, Optional

from shared.errors import ValidationError
from shared.logging import get_logger, set_account_context
from shared.metrics import MetricsCollector
from .audit.sink import AuditEvent, AuditKind, AuditSink
from .batch.orchestrator import BatchOrchestrator, describe_outcome, parse_token_lines, persist_outcomes
from .store.base import VerifiedRecordStore
from .verification.models import BatchResult, VerificationOutcome, VerifiedRecord
from .verification.verifier import UpstreamVerifier


class VerificationPipeline:
    """Ties verifier, orchestrator, store and audit sink together."""

    def __init__(
        self,
        verifier: UpstreamVerifier,
        store: VerifiedRecordStore,
        audit: AuditSink,
        orchestrator: BatchOrchestrator,
        min_token_length: int = 50,
        token_separator: str = ".",
        metrics: Optional[MetricsCollector] = None,
    ):
        self.verifier = verifier
        self.store = store
        self.audit = audit
        self.orchestrator = orchestrator
        self.min_token_length = min_token_length
        self.token_separator = token_separator
        self.metrics = metrics
        self.logger = get_logger("verifier.pipeline")

    def validate_token_format(self, token: str) -> None:
        """Reject tokens that cannot be well-formed without calling upstream."""
        if len(token) < self.min_token_length or self.token_separator not in token:
            raise ValidationError(
                f"Invalid token format. Token must be at least {self.min_token_length} "
                f"characters and contain a period ({self.token_separator})",
                details={"min_length": self.min_token_length, "separator": self.token_separator}
            )

    async def check_one(self, token: str) -> VerificationOutcome:
        self.validate_token_format(token)

        await self.audit.emit(AuditEvent(
            kind=AuditKind.REQUEST,
            message="Single token check requested",
            data={"token": token}
        ))

        outcome = await self.verifier.verify(token)
        await self.audit.emit(AuditEvent(
            kind=AuditKind.TOKEN_CHECK,
            message="Token checked",
            data=describe_outcome(outcome)
        ))

        if outcome.valid:
            set_account_context(outcome.user.id)
            await persist_outcomes(self.store, self.audit, [outcome], self.metrics)

        return outcome

    async def check_many(self, raw_input: str) -> BatchResult:
        submitted = len(parse_token_lines(raw_input))
        if submitted:
            await self.audit.emit(AuditEvent(
                kind=AuditKind.REQUEST,
                message="Bulk token check requested",
                data={"submitted": submitted}
            ))
        return await self.orchestrator.run_batch(raw_input)

    async def list_records(self, account_id: Optional[str] = None) -> List[VerifiedRecord]:
        """Saved records, newest first, optionally for one account."""
        if account_id is None:
            records = await self.store.get_all()
        else:
            records = await self.store.get_by_account_id(account_id)
        return sorted(records, key=lambda record: record.created_at_ms, reverse=True)
