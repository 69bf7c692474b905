"""In-run grouping of a discovery batch before anything is stored."""

import time
import uuid
from typing import Dict, List, Optional, Tuple

from oppdedupe.config.loader import DedupeConfig
from oppdedupe.dedupe.errors import UncomparableRecordError
from oppdedupe.dedupe.models import CandidateRecord, DuplicateGroup, GroupingResult
from oppdedupe.dedupe.similarity import meets_thresholds, overall_similarity, similarity_factors
from oppdedupe.parsing.normalizer import NormalizedFields, normalize
from oppdedupe.utils.logging import get_logger

logger = get_logger(__name__)


def information_score(record: CandidateRecord) -> float:
    """How much usable detail a record carries; the richest record leads its group."""
    score = float(len(record.title or ""))
    score += len(record.description or "") * 0.5
    score += 50 if record.organization else 0
    score += 30 if record.deadline else 0
    score += 5 * len(record.tags)
    return score


def select_primary(records: List[CandidateRecord]) -> CandidateRecord:
    """Highest information score wins; ties go to the earliest discovery."""
    return min(records, key=lambda r: (-information_score(r), r.discovered_at))


def _pair_score(a: NormalizedFields, b: NormalizedFields, config: DedupeConfig) -> Tuple[float, bool]:
    factors = similarity_factors(a, b, config)
    score = overall_similarity(factors, config)
    return score, meets_thresholds(factors, score, config)


def _group_confidence(members: List[NormalizedFields], config: DedupeConfig) -> float:
    scores = []
    for i in range(len(members)):
        for j in range(i + 1, len(members)):
            scores.append(_pair_score(members[i], members[j], config)[0])
    return sum(scores) / len(scores) if scores else 0.0


def _group_reason(records: List[CandidateRecord]) -> str:
    titles = [r.title for r in records[:2]]
    reason = f'Similar titles: "{titles[0]}" and "{titles[1]}"'
    orgs = {r.organization for r in records if r.organization}
    if len(orgs) == 1:
        reason += f" from {next(iter(orgs))}"
    elif len(orgs) > 1:
        reason += " from multiple organizations"
    return reason


def group_duplicates(
    records: List[CandidateRecord],
    config: Optional[DedupeConfig] = None,
) -> GroupingResult:
    """
    Collapse a batch of candidates into duplicate groups.

    Each record seeds a group with every later, ungrouped record it matches
    (same scorer and thresholds as the decision engine). Records with
    identical URLs always group. Records that cannot be normalized are kept
    as unique.
    """
    config = config or DedupeConfig()
    start = time.perf_counter()

    normalized: Dict[int, NormalizedFields] = {}
    for index, record in enumerate(records):
        try:
            fields = normalize(record)
        except (ValueError, TypeError) as e:
            logger.warning(f"Record {record.url!r} kept ungrouped: {e}")
            continue
        if fields.title:
            normalized[index] = fields

    grouped = set()
    result = GroupingResult(original_count=len(records), unique_count=0)

    for i, record in enumerate(records):
        if i in grouped:
            continue
        grouped.add(i)

        members = [i]
        if i in normalized:
            for j in range(i + 1, len(records)):
                if j in grouped or j not in normalized:
                    continue
                if normalized[i].url and normalized[i].url == normalized[j].url:
                    members.append(j)
                    grouped.add(j)
                    continue
                try:
                    _, is_match = _pair_score(normalized[i], normalized[j], config)
                except UncomparableRecordError as e:
                    logger.warning(f"Skipping comparison: {e}")
                    continue
                if is_match:
                    members.append(j)
                    grouped.add(j)

        if len(members) == 1:
            result.unique_records.append(record)
            continue

        group_records = [records[m] for m in members]
        primary = select_primary(group_records)
        group = DuplicateGroup(
            id=f"GRP-{uuid.uuid4().hex[:8]}",
            records=group_records,
            primary=primary,
            duplicate_count=len(group_records) - 1,
            confidence=_group_confidence([normalized[m] for m in members], config),
            reason=_group_reason(group_records),
        )
        result.duplicate_groups.append(group)
        result.unique_records.append(primary)
        result.removed_duplicates.extend(r for r in group_records if r is not primary)
        logger.debug(f"Grouped {len(group_records)} records under {primary.title!r}")

    result.unique_count = len(result.unique_records)
    result.duplicate_detection_rate = (
        len(result.removed_duplicates) / len(records) * 100.0 if records else 0.0
    )
    result.processing_time_ms = (time.perf_counter() - start) * 1000.0
    logger.info(
        f"Grouping complete: {result.original_count} -> {result.unique_count} unique "
        f"({result.duplicate_detection_rate:.0f}% duplicates)"
    )
    return result
