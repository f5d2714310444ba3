"""
Models for token verification results.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError


class AccountProfile(BaseModel):
    """Account fields returned by the identity API for a valid token.

    ``avatar``, ``email`` and ``phone`` must be present in the upstream
    document but may be null. Unknown upstream fields are dropped.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    username: str
    discriminator: str
    avatar: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    mfa_enabled: Optional[bool] = None
    verified: Optional[bool] = None
    flags: Optional[int] = None
    premium_type: Optional[int] = None
    public_flags: Optional[int] = None
    banner: Optional[str] = None
    accent_color: Optional[int] = None
    locale: Optional[str] = None


class ProfileParseResult(BaseModel):
    """Tagged result of checking an upstream body against ``AccountProfile``."""

    model_config = ConfigDict(frozen=True)

    ok: bool
    profile: Optional[AccountProfile] = None
    error: Optional[str] = None


def parse_profile(payload: Any) -> ProfileParseResult:
    """Check an upstream response body and return a tagged result."""
    if not isinstance(payload, dict):
        return ProfileParseResult(
            ok=False,
            error=f"unexpected upstream response: expected an object, got {type(payload).__name__}"
        )

    try:
        profile = AccountProfile.model_validate(payload)
    except PydanticValidationError as e:
        fields = sorted({".".join(str(part) for part in err["loc"]) for err in e.errors()})
        return ProfileParseResult(
            ok=False,
            error=f"unexpected upstream response: invalid fields {', '.join(fields)}"
        )

    return ProfileParseResult(ok=True, profile=profile)


class VerificationOutcome(BaseModel):
    """Result of checking one token. Exactly one of ``user``/``error`` is set."""

    model_config = ConfigDict(frozen=True)

    token: str
    valid: bool
    user: Optional[AccountProfile] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _check_consistency(self) -> "VerificationOutcome":
        if self.valid and (self.user is None or self.error is not None):
            raise ValueError("valid outcome requires a profile and no error")
        if not self.valid and (self.error is None or self.user is not None):
            raise ValueError("invalid outcome requires an error and no profile")
        return self

    @classmethod
    def success(cls, token: str, profile: AccountProfile) -> "VerificationOutcome":
        return cls(token=token, valid=True, user=profile)

    @classmethod
    def failure(cls, token: str, error: str) -> "VerificationOutcome":
        return cls(token=token, valid=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form; the absent one of ``user``/``error`` is omitted."""
        data: Dict[str, Any] = {"token": self.token, "valid": self.valid}
        if self.user is not None:
            data["user"] = self.user.model_dump()
        if self.error is not None:
            data["error"] = self.error
        return data


class BatchCounts(BaseModel):
    """Partition of a batch by validity."""

    total: int
    valid: int
    invalid: int

    @classmethod
    def from_outcomes(cls, outcomes: List[VerificationOutcome]) -> "BatchCounts":
        valid = sum(1 for outcome in outcomes if outcome.valid)
        return cls(total=len(outcomes), valid=valid, invalid=len(outcomes) - valid)


class BatchResult(BaseModel):
    """Ordered outcomes of a bulk check."""

    outcomes: List[VerificationOutcome]
    counts: BatchCounts
    truncated: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [outcome.to_dict() for outcome in self.outcomes],
            "count": self.counts.model_dump(),
            "truncated": self.truncated,
        }


class VerifiedRecord(BaseModel):
    """Last-seen record of a token that verified successfully."""

    model_config = ConfigDict(frozen=True)

    token: str
    account_id: str
    display_name: str
    created_at_ms: int
    valid: bool = True


class TokenCheckRequest(BaseModel):
    """Request model for a single token check."""
    token: str


class BulkTokenCheckRequest(BaseModel):
    """Request model for a bulk check: newline-delimited tokens."""
    tokens: str
