"""
Similarity scoring between two opportunity records.

Each factor is a float in [0, 1]:

- title: mean of rapidfuzz token-set and token-sort ratios, so an inserted
  phrase ("... - Applications Open") still scores high while word-order
  differences are tolerated.
- organization: 1.0 on exact normalized match, otherwise token-sort ratio.
- deadline: 1.0 on equal dates, decaying linearly to 0 at
  `deadline_window_days`.
- description: same token similarity as the title, over the full normalized
  text (never truncated).

When both sides lack an optional field the factor is `absent_similarity`
(default 0.5); when only one side has it the factor is 0.0.
"""

from typing import List, Optional, Union

from rapidfuzz import fuzz

from oppdedupe.config.loader import DedupeConfig
from oppdedupe.dedupe.errors import UncomparableRecordError
from oppdedupe.dedupe.models import CandidateRecord, SimilarityFactors, StoredOpportunity
from oppdedupe.parsing.normalizer import ABSENT, NormalizedFields, normalize

DEFAULT_CONFIG = DedupeConfig()

Comparable = Union[NormalizedFields, CandidateRecord, StoredOpportunity]


def _as_normalized(record: Comparable) -> NormalizedFields:
    if isinstance(record, NormalizedFields):
        normalized = record
    else:
        record_id = getattr(record, "id", None)
        try:
            normalized = normalize(record)
        except (ValueError, TypeError) as e:
            raise UncomparableRecordError(f"Cannot normalize record: {e}", record_id=record_id) from e
    if not normalized.title:
        raise UncomparableRecordError("Record has no title", record_id=getattr(record, "id", None))
    return normalized


def _token_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    score = (fuzz.token_set_ratio(a, b) + fuzz.token_sort_ratio(a, b)) / 200.0
    return min(max(score, 0.0), 1.0)


def title_similarity(a: str, b: str) -> float:
    return _token_similarity(a, b)


def organization_similarity(a, b, absent_similarity: float = 0.5) -> float:
    if a is ABSENT and b is ABSENT:
        return absent_similarity
    if a is ABSENT or b is ABSENT:
        return 0.0
    if a == b:
        return 1.0
    return fuzz.token_sort_ratio(a, b) / 100.0


def deadline_similarity(a, b, window_days: int = 14, absent_similarity: float = 0.5) -> float:
    if a is ABSENT and b is ABSENT:
        return absent_similarity
    if a is ABSENT or b is ABSENT:
        return 0.0
    days_apart = abs((a - b).days)
    if days_apart == 0:
        return 1.0
    return max(0.0, 1.0 - days_apart / window_days)


def description_similarity(a, b, absent_similarity: float = 0.5) -> float:
    if a is ABSENT and b is ABSENT:
        return absent_similarity
    if a is ABSENT or b is ABSENT:
        return 0.0
    return _token_similarity(a, b)


def similarity_factors(
    candidate: Comparable,
    existing: Comparable,
    config: Optional[DedupeConfig] = None,
) -> SimilarityFactors:
    """
    Compute per-field similarity between two records.

    Accepts raw records or already-normalized fields. Symmetric in its
    two record arguments.

    Raises:
        UncomparableRecordError: If either record has no usable title or an
            unparseable deadline
    """
    config = config or DEFAULT_CONFIG
    a = _as_normalized(candidate)
    b = _as_normalized(existing)

    return SimilarityFactors(
        title_similarity=title_similarity(a.title, b.title),
        organization_similarity=organization_similarity(
            a.organization, b.organization, config.absent_similarity
        ),
        deadline_similarity=deadline_similarity(
            a.deadline, b.deadline, config.deadline_window_days, config.absent_similarity
        ),
        description_similarity=description_similarity(
            a.description, b.description, config.absent_similarity
        ),
    )


def overall_similarity(factors: SimilarityFactors, config: Optional[DedupeConfig] = None) -> float:
    """
    Combine factors into one weighted score in [0, 1].

    With `organization_match_required`, any organization similarity below
    `organization_match_min` returns 0.0 regardless of the other factors.
    """
    config = config or DEFAULT_CONFIG
    if config.organization_match_required and factors.organization_similarity < config.organization_match_min:
        return 0.0

    score = (
        factors.title_similarity * config.title_weight
        + factors.organization_similarity * config.organization_weight
        + factors.deadline_similarity * config.deadline_weight
        + factors.description_similarity * config.description_weight
    )
    return min(max(score, 0.0), 1.0)


def meets_thresholds(factors: SimilarityFactors, score: float, config: Optional[DedupeConfig] = None) -> bool:
    """True if a scored pair qualifies as a fuzzy duplicate under `config`."""
    config = config or DEFAULT_CONFIG
    return (
        score >= config.similarity_threshold
        and factors.title_similarity >= config.title_similarity_threshold
        and factors.description_similarity >= config.description_similarity_threshold
    )


def matched_fields(factors: SimilarityFactors, config: Optional[DedupeConfig] = None) -> List[str]:
    """Names of the factors that reached `field_match_min`, in fixed order."""
    config = config or DEFAULT_CONFIG
    values = (
        ("title", factors.title_similarity),
        ("organization", factors.organization_similarity),
        ("deadline", factors.deadline_similarity),
        ("description", factors.description_similarity),
    )
    return [name for name, value in values if value >= config.field_match_min]
