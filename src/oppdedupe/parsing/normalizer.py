"""Canonicalize candidate and stored records before comparison."""

import re
import unicodedata
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from oppdedupe.dedupe.models import CandidateRecord, StoredOpportunity
from oppdedupe.utils.time import to_date


class _Absent:
    """Marker for an optional field the record does not carry."""

    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()

# Punctuation is replaced by a space (not deleted) so "grant-program" and
# "grant program" tokenize the same way. Apostrophes join ("artist's" -> "artists").
_APOSTROPHES = re.compile(r"['’‘`]")
_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class NormalizedFields:
    title: str
    organization: Union[str, _Absent]
    deadline: Union[date, _Absent]
    description: Union[str, _Absent]
    url: str


def normalize_text(text: Optional[str]) -> str:
    """
    Lowercase, strip punctuation and collapse whitespace.

    >>> normalize_text('  "ART  Grant" 2024!!! ')
    'art grant 2024'
    """
    if not text:
        return ""
    text = unicodedata.normalize("NFKC", text).lower()
    text = _APOSTROPHES.sub("", text)
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def _optional_text(text: Optional[str]) -> Union[str, _Absent]:
    normalized = normalize_text(text)
    return normalized if normalized else ABSENT


def normalize_deadline(value) -> Union[date, _Absent]:
    """
    Coerce a deadline to a date-only value, or ABSENT.

    Raises:
        ValueError: If the value is present but not a recognizable date
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return ABSENT
    return to_date(value)


def normalize(record: Union[CandidateRecord, StoredOpportunity]) -> NormalizedFields:
    """
    Normalize the comparison fields of a candidate or stored record.

    Pure function of its input. Missing organization, deadline or description
    become ABSENT, which is distinct from an empty string.
    """
    return NormalizedFields(
        title=normalize_text(record.title),
        organization=_optional_text(record.organization),
        deadline=normalize_deadline(record.deadline),
        description=_optional_text(record.description),
        url=(record.url or "").strip(),
    )
