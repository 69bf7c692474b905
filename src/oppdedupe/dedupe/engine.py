"""Duplicate decision engine: exact match first, then fuzzy match, else new."""

from datetime import timedelta
from typing import List, Optional, Tuple

from oppdedupe.config.loader import DedupeConfig
from oppdedupe.dedupe.errors import CandidateValidationError, UncomparableRecordError
from oppdedupe.dedupe.fingerprint import FINGERPRINT_FIELDS, fingerprint
from oppdedupe.dedupe.models import (
    CandidateRecord,
    DecisionAction,
    DecisionResult,
    OpportunityStatus,
    SimilarityFactors,
    StoredOpportunity,
)
from oppdedupe.dedupe.similarity import (
    matched_fields,
    meets_thresholds,
    overall_similarity,
    similarity_factors,
)
from oppdedupe.dedupe.store import RecordStore
from oppdedupe.parsing.normalizer import NormalizedFields, normalize, normalize_deadline, normalize_text
from oppdedupe.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LINK_HOPS = 5


def validate_candidate(candidate: CandidateRecord, config: DedupeConfig) -> None:
    """
    Reject candidates below minimum content requirements.

    Lengths are measured after normalization, so a title of "!!!" is empty.

    Raises:
        CandidateValidationError: Listing every failing field
    """
    failed: List[str] = []
    if len(normalize_text(candidate.title)) < config.min_title_length:
        failed.append("title")
    if len(normalize_text(candidate.description)) < config.min_description_length:
        failed.append("description")
    if not (candidate.url or "").strip():
        failed.append("url")
    try:
        normalize_deadline(candidate.deadline)
    except (ValueError, TypeError):
        failed.append("deadline")
    if failed:
        raise CandidateValidationError(
            f"Candidate failed validation: {', '.join(failed)}", fields=failed
        )


class DuplicateDecisionEngine:
    """
    Decide whether a candidate duplicates a stored opportunity.

    Stateless between calls apart from its store and config; the decision is
    returned to the caller, which applies any writes. Store errors propagate.
    """

    def __init__(self, store: RecordStore, config: Optional[DedupeConfig] = None):
        self.store = store
        self.config = config or DedupeConfig()

    def check_duplicate(self, candidate: CandidateRecord) -> DecisionResult:
        validate_candidate(candidate, self.config)

        normalized = normalize(candidate)
        source_hash = fingerprint(normalized)

        # Exact match always runs first and short-circuits the fuzzy scan.
        existing = self.store.find_by_url_or_fingerprint(normalized.url, source_hash)
        if existing is not None:
            fields = ["url"] if (existing.url or "").strip() == normalized.url else list(FINGERPRINT_FIELDS)
            existing = self.resolve_canonical(existing)
            logger.info(f"Exact duplicate of {existing.id} ({'/'.join(fields)}): {candidate.title!r}")
            return DecisionResult(
                is_duplicate=True,
                action=DecisionAction.SOURCE_ADDED,
                hash=source_hash,
                existing_id=existing.id,
                similarity_score=1.0,
                matched_fields=fields,
            )

        best = self._best_fuzzy_match(candidate, normalized)
        if best is not None:
            match, score, factors = best
            logger.info(f"Fuzzy duplicate of {match.id} (score {score:.3f}): {candidate.title!r}")
            return DecisionResult(
                is_duplicate=True,
                action=DecisionAction.DUPLICATE_LINKED,
                hash=source_hash,
                existing_id=match.id,
                similarity_score=score,
                matched_fields=matched_fields(factors, self.config),
                factors=factors,
            )

        logger.info(f"New opportunity {source_hash[:12]}: {candidate.title!r}")
        return DecisionResult(
            is_duplicate=False,
            action=DecisionAction.NEW_OPPORTUNITY,
            hash=source_hash,
        )

    def resolve_canonical(self, record: StoredOpportunity) -> StoredOpportunity:
        """
        Follow duplicate links from an archived occurrence to its live master.

        Returns the record itself when it is live, has no master, or the
        links loop.
        """
        seen = {record.id}
        while record.status == OpportunityStatus.ARCHIVED.value and len(seen) <= MAX_LINK_HOPS:
            master = self.store.find_master(record.id)
            if master is None or master.id in seen:
                break
            seen.add(master.id)
            record = master
        return record

    def candidate_pool(self, candidate: CandidateRecord) -> List[StoredOpportunity]:
        """Stored records inside the recency window around the candidate's discovery time."""
        window = timedelta(days=self.config.fuzzy_window_days)
        pool = self.store.find_recent(window, self.config.candidate_pool_limit, as_of=candidate.discovered_at)
        in_window = [
            record for record in pool
            if record.status != OpportunityStatus.ARCHIVED.value
            and abs(record.discovered_at - candidate.discovered_at) <= window
        ]
        if len(in_window) != len(pool):
            logger.debug(f"Dropped {len(pool) - len(in_window)} archived or out-of-window pool records ({window.days}-day window)")
        return in_window

    def _best_fuzzy_match(
        self,
        candidate: CandidateRecord,
        normalized: NormalizedFields,
    ) -> Optional[Tuple[StoredOpportunity, float, SimilarityFactors]]:
        pool = self.candidate_pool(candidate)
        logger.debug(f"Fuzzy scan over {len(pool)} recent records")

        best: Optional[Tuple[StoredOpportunity, float, SimilarityFactors]] = None
        for record in pool:
            try:
                factors = similarity_factors(normalized, record, self.config)
            except UncomparableRecordError as e:
                logger.warning(f"Skipping uncomparable record {record.id}: {e}")
                continue

            score = overall_similarity(factors, self.config)
            if not meets_thresholds(factors, score, self.config):
                continue
            if best is None or score > best[1]:
                best = (record, score, factors)
        return best
