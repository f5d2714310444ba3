"""
Batch processing package.

Turns a newline-delimited blob of tokens into an ordered, paced sequence
of verifications and persists the successful ones.
"""

from .orchestrator import BatchOrchestrator, describe_outcome, parse_token_lines, persist_outcomes

__all__ = ["BatchOrchestrator", "describe_outcome", "parse_token_lines", "persist_outcomes"]
