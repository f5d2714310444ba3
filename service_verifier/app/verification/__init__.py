"""
Token verification package.

Holds the upstream identity client and the models it produces. The client
never raises for per-token problems: rejections, malformed upstream bodies
and transport faults all become an invalid ``VerificationOutcome``.
"""

from .models import (
    AccountProfile,
    BatchCounts,
    BatchResult,
    ProfileParseResult,
    VerificationOutcome,
    VerifiedRecord,
    parse_profile,
)
from .verifier import UpstreamVerifier

__all__ = [
    "AccountProfile",
    "BatchCounts",
    "BatchResult",
    "ProfileParseResult",
    "VerificationOutcome",
    "VerifiedRecord",
    "parse_profile",
    "UpstreamVerifier",
]
