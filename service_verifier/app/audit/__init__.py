"""
Audit package.

``sanitize`` strips credential material from structured payloads and
``AuditSink`` ships sanitized events to an optional webhook. The sink is
advisory: it logs its own failures and never raises into callers.
"""

from .sanitizer import sanitize, mask_secret
from .sink import AuditEvent, AuditKind, AuditSink

__all__ = ["sanitize", "mask_secret", "AuditEvent", "AuditKind", "AuditSink"]
