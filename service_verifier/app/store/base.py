"""Verified-record store interface."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..verification.models import VerificationOutcome, VerifiedRecord


class VerifiedRecordStore(Protocol):
    async def save(self, outcome: VerificationOutcome) -> VerifiedRecord:
        ...

    async def get(self, token: str) -> Optional[VerifiedRecord]:
        ...

    async def get_all(self) -> List[VerifiedRecord]:
        ...

    async def get_by_account_id(self, account_id: str) -> List[VerifiedRecord]:
        ...

    async def count(self) -> int:
        ...

    async def close(self) -> None:
        ...
