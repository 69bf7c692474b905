from collections import Counter
from typing import Dict, Iterable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config.loader import DedupeConfig
from ..database.opportunity_repo import SqlRecordStore
from ..dedupe.engine import DuplicateDecisionEngine
from ..dedupe.errors import CandidateValidationError
from ..dedupe.models import CandidateRecord, DecisionAction, DecisionResult, OpportunityStatus
from ..utils.logging import get_logger

logger = get_logger(__name__)

KEEP_MASTER = "keep_master"
MAX_CONFLICT_RETRIES = 1


class DiscoveryIngestor:
    """
    Apply dedup decisions for newly discovered candidates.

    Each candidate is committed on its own. The lookup and the write are not
    atomic, so a concurrent ingest can insert the same URL in between; that
    surfaces as an IntegrityError on create, after which the candidate is
    re-checked against the now-stored winner.
    """

    def __init__(self, session: Session, config: Optional[DedupeConfig] = None):
        self.session = session
        self.store = SqlRecordStore(session)
        self.engine = DuplicateDecisionEngine(self.store, config)

    def ingest(self, candidate: CandidateRecord) -> DecisionResult:
        attempts = 0
        while True:
            decision = self.engine.check_duplicate(candidate)
            try:
                self._apply(candidate, decision)
                self.session.commit()
                return decision
            except IntegrityError as e:
                self.session.rollback()
                if attempts >= MAX_CONFLICT_RETRIES:
                    raise
                attempts += 1
                logger.warning(f"Write conflict for {candidate.url}, re-checking: {e.orig}")

    def _apply(self, candidate: CandidateRecord, decision: DecisionResult) -> None:
        if decision.action == DecisionAction.SOURCE_ADDED:
            self.store.add_source_link(decision.existing_id, candidate)
        elif decision.action == DecisionAction.DUPLICATE_LINKED:
            occurrence = self.store.create(
                candidate, decision.hash, status=OpportunityStatus.ARCHIVED.value
            )
            self.store.create_duplicate_link(
                occurrence.id,
                decision.existing_id,
                decision.similarity_score,
                decision.matched_fields,
                merge_strategy=KEEP_MASTER,
            )
        else:
            created = self.store.create(candidate, decision.hash)
            self.store.add_source_link(created.id, candidate)

    def ingest_many(self, candidates: Iterable[CandidateRecord]) -> Dict[str, int]:
        """
        Ingest candidates in order; later candidates see earlier ones.

        Candidates failing validation are counted as `invalid` and skipped.
        Store errors propagate.

        Returns:
            Counts keyed by decision action, plus `invalid`
        """
        counts: Counter = Counter({action.value: 0 for action in DecisionAction})
        counts["invalid"] = 0
        for candidate in candidates:
            try:
                decision = self.ingest(candidate)
            except CandidateValidationError as e:
                logger.warning(f"Skipping invalid candidate {candidate.url!r}: {e}")
                counts["invalid"] += 1
                continue
            counts[decision.action.value] += 1

        logger.info(
            f"Ingested {sum(counts.values())} candidates: "
            + ", ".join(f"{k}={v}" for k, v in counts.items())
        )
        return dict(counts)
