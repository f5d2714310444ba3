"""In-memory verified-record store."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, Dict, List, Optional, Set

from shared.errors import ValidationError
from shared.logging import get_logger
from ..audit.sanitizer import mask_secret
from ..verification.models import VerificationOutcome, VerifiedRecord


def _epoch_millis() -> int:
    return int(time.time() * 1000)


class MemoryRecordStore:
    """Token-keyed records with a secondary index by account id.

    Both maps are only touched together under one lock, so every record
    reachable through the index is reachable by token and vice versa.
    Records are immutable, so readers never observe a partial write.
    """

    def __init__(self, clock: Callable[[], int] = _epoch_millis) -> None:
        self._lock = asyncio.Lock()
        self._by_token: Dict[str, VerifiedRecord] = {}
        self._by_account: Dict[str, Set[str]] = {}
        self._clock = clock
        self.logger = get_logger("verifier.store")

    async def save(self, outcome: VerificationOutcome) -> VerifiedRecord:
        if not outcome.valid or outcome.user is None:
            raise ValidationError("Only valid outcomes can be stored")

        record = VerifiedRecord(
            token=outcome.token,
            account_id=outcome.user.id,
            display_name=outcome.user.username,
            created_at_ms=self._clock(),
        )

        async with self._lock:
            previous = self._by_token.get(record.token)
            if previous is not None and previous.account_id != record.account_id:
                self._unindex(previous)
            self._by_token[record.token] = record
            self._by_account.setdefault(record.account_id, set()).add(record.token)

        self.logger.info(
            "Saved verified token",
            token=mask_secret(record.token),
            account_id=record.account_id,
            display_name=record.display_name,
            replaced=previous is not None
        )
        return record

    async def get(self, token: str) -> Optional[VerifiedRecord]:
        async with self._lock:
            return self._by_token.get(token)

    async def get_all(self) -> List[VerifiedRecord]:
        async with self._lock:
            return list(self._by_token.values())

    async def get_by_account_id(self, account_id: str) -> List[VerifiedRecord]:
        async with self._lock:
            tokens = self._by_account.get(account_id, set())
            return [self._by_token[token] for token in tokens]

    async def count(self) -> int:
        async with self._lock:
            return len(self._by_token)

    async def close(self) -> None:
        async with self._lock:
            self._by_token.clear()
            self._by_account.clear()

    def _unindex(self, record: VerifiedRecord) -> None:
        tokens = self._by_account.get(record.account_id)
        if tokens is None:
            return
        tokens.discard(record.token)
        if not tokens:
            del self._by_account[record.account_id]
