"""
Redaction of credential values in structured payloads.
"""

import copy
from typing import Any, FrozenSet

from pydantic import BaseModel

SENSITIVE_KEYS: FrozenSet[str] = frozenset({"token", "tokens", "authorization"})
REDACTION_MARKER = "[...]"
REDACTED = "[REDACTED]"


def mask_secret(value: str) -> str:
    """Keep the first and last five characters of a long secret."""
    if len(value) > 10:
        return f"{value[:5]}{REDACTION_MARKER}{value[-5:]}"
    return REDACTED


def sanitize(payload: Any, sensitive_keys: FrozenSet[str] = SENSITIVE_KEYS) -> Any:
    """Return a redacted deep copy of ``payload``.

    Dict keys are compared case-insensitively against ``sensitive_keys``.
    String values under a sensitive key are masked, lists under one have
    every string element masked, and nested mappings are walked. Pydantic
    models are dumped to plain data first. The input is never modified.
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    if isinstance(payload, dict):
        return {
            key: _redact(value, sensitive_keys)
            if isinstance(key, str) and key.lower() in sensitive_keys
            else sanitize(value, sensitive_keys)
            for key, value in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [sanitize(item, sensitive_keys) for item in payload]
    return copy.deepcopy(payload)


def _redact(value: Any, sensitive_keys: FrozenSet[str]) -> Any:
    if isinstance(value, str):
        return mask_secret(value)
    if isinstance(value, (list, tuple)):
        return [_redact(item, sensitive_keys) for item in value]
    return sanitize(value, sensitive_keys)
