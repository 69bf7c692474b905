"""Error taxonomy for the deduplication core.

Only input validation and configuration problems are raised by the core
itself. Record store failures are propagated unchanged and never wrapped.
"""

from typing import List, Optional


class DedupeError(Exception):
    """Base class for errors raised by the deduplication core."""


class CandidateValidationError(DedupeError, ValueError):
    """A candidate record does not meet minimum content requirements."""

    def __init__(self, message: str, fields: Optional[List[str]] = None):
        super().__init__(message)
        self.fields = fields or []


class UncomparableRecordError(DedupeError):
    """A stored record cannot be compared (e.g. missing title, unparseable deadline)."""

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.record_id = record_id


class ConfigError(DedupeError, ValueError):
    """Deduplication configuration is invalid."""
