"""Content fingerprints for exact-duplicate detection."""

import hashlib
from typing import Union

from oppdedupe.dedupe.models import CandidateRecord, StoredOpportunity
from oppdedupe.parsing.normalizer import ABSENT, NormalizedFields, normalize

# Identity fields in hash order. Description and URL are excluded: both vary
# between sources that re-post the same opportunity.
FINGERPRINT_FIELDS = ("title", "organization", "deadline")
FIELD_SEPARATOR = "|"
ABSENT_TOKEN = ""


def _field_token(value) -> str:
    if value is ABSENT:
        return ABSENT_TOKEN
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def fingerprint(normalized: NormalizedFields) -> str:
    """
    Compute the SHA-256 fingerprint of normalized identity fields.

    Two records with equal normalized title, organization and date-only
    deadline always fingerprint identically, whatever their description,
    URL, casing or punctuation.

    Returns:
        64-character lowercase hex digest
    """
    canonical = FIELD_SEPARATOR.join(
        _field_token(getattr(normalized, field)) for field in FINGERPRINT_FIELDS
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def fingerprint_record(record: Union[CandidateRecord, StoredOpportunity]) -> str:
    """Normalize and fingerprint a record in one step."""
    return fingerprint(normalize(record))
