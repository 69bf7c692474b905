"""Batch reconciliation of already-stored opportunities."""

import time
from datetime import timedelta
from typing import Callable, List, Optional, Set

from oppdedupe.config.loader import DedupeConfig
from oppdedupe.dedupe.errors import UncomparableRecordError
from oppdedupe.dedupe.fingerprint import FINGERPRINT_FIELDS, fingerprint
from oppdedupe.dedupe.models import (
    DeduplicationRunResult,
    DeduplicationStats,
    DuplicatePair,
    OpportunityStatus,
    StoredOpportunity,
)
from oppdedupe.dedupe.similarity import (
    matched_fields,
    meets_thresholds,
    overall_similarity,
    similarity_factors,
)
from oppdedupe.dedupe.store import RecordStore
from oppdedupe.parsing.normalizer import NormalizedFields, normalize
from oppdedupe.utils.logging import get_logger

logger = get_logger(__name__)

MERGE_STRATEGY = "archive_duplicate"


def _elapsed_ms(start: float) -> float:
    # Clock granularity can report zero for an empty batch.
    return max((time.perf_counter() - start) * 1000.0, 0.001)


def _discovery_order(record: StoredOpportunity):
    return (record.discovered_at, record.id)


def _exact_match_fields(
    primary: StoredOpportunity,
    secondary: StoredOpportunity,
    a: NormalizedFields,
    b: NormalizedFields,
) -> List[str]:
    """Fields of an exact URL or fingerprint match, as the decision engine reports them; else []."""
    if a.url and a.url == b.url:
        return ["url"]
    if fingerprint(a) == fingerprint(b):
        return list(FINGERPRINT_FIELDS)
    if primary.source_hash and primary.source_hash == secondary.source_hash:
        return list(FINGERPRINT_FIELDS)
    return []


class BatchReconciler:
    """
    Pairwise duplicate scan over a window of stored opportunities.

    Exact URL or fingerprint matches pair up at score 1.0 before any fuzzy
    scoring, mirroring the decision engine.

    Comparison is O(n^2) in the batch size, which is capped at
    `config.max_batch_size`. Within a pair the earlier-discovered record
    (then the lower id) is primary. A record already claimed as a secondary
    takes no further part in the scan, and records already archived are
    left out of the batch.
    """

    def __init__(self, store: RecordStore, config: Optional[DedupeConfig] = None):
        self.store = store
        self.config = config or DedupeConfig()

    def run_deduplication(
        self,
        batch_size: int = 100,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> DeduplicationRunResult:
        """
        Find and link duplicate pairs among the most recently discovered records.

        Args:
            batch_size: Maximum number of records to scan (1..max_batch_size)
            should_cancel: Polled between comparisons; returning True stops the
                scan and returns the partial result with `cancelled=True`

        Returns:
            DeduplicationRunResult with counts, pairs and timing
        """
        if batch_size <= 0 or batch_size > self.config.max_batch_size:
            raise ValueError(f"batch_size must be between 1 and {self.config.max_batch_size} (got {batch_size})")

        start = time.perf_counter()
        window = (
            timedelta(days=self.config.reconcile_window_days)
            if self.config.reconcile_window_days
            else None
        )
        batch = self.store.find_recent(window, batch_size)
        result = DeduplicationRunResult(records_scanned=len(batch))
        if not batch:
            logger.info("Reconciliation batch is empty")
            result.processing_time_ms = _elapsed_ms(start)
            return result

        records = sorted(
            (record for record in batch if record.status != OpportunityStatus.ARCHIVED.value),
            key=_discovery_order,
        )
        normalized = self._normalize_batch(records)
        result.skipped_records = len(records) - len(normalized)
        claimed: Set[str] = set()

        for i, primary in enumerate(records):
            if primary.id in claimed or primary.id not in normalized:
                continue
            for secondary in records[i + 1:]:
                if should_cancel is not None and should_cancel():
                    logger.info(f"Reconciliation cancelled after {result.comparisons} comparisons")
                    result.cancelled = True
                    return self._finish(result, start)
                if secondary.id in claimed or secondary.id not in normalized:
                    continue

                result.comparisons += 1
                pair = self._compare(primary, secondary, normalized)
                if pair is None:
                    continue
                claimed.add(secondary.id)
                result.duplicate_pairs.append(pair)

        return self._finish(result, start)

    def _normalize_batch(self, records: List[StoredOpportunity]) -> dict:
        normalized = {}
        for record in records:
            try:
                fields = normalize(record)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping uncomparable record {record.id}: {e}")
                continue
            if not fields.title:
                logger.warning(f"Skipping record {record.id} with no title")
                continue
            normalized[record.id] = fields
        return normalized

    def _compare(
        self,
        primary: StoredOpportunity,
        secondary: StoredOpportunity,
        normalized: dict,
    ) -> Optional[DuplicatePair]:
        a: NormalizedFields = normalized[primary.id]
        b: NormalizedFields = normalized[secondary.id]
        exact = _exact_match_fields(primary, secondary, a, b)
        if exact:
            logger.debug(f"Exact duplicate pair {primary.id} <- {secondary.id} ({'/'.join(exact)})")
            return DuplicatePair(
                primary_id=primary.id,
                secondary_id=secondary.id,
                similarity_score=1.0,
                matched_fields=exact,
            )

        try:
            factors = similarity_factors(a, b, self.config)
        except UncomparableRecordError as e:
            logger.warning(f"Skipping comparison {primary.id} / {secondary.id}: {e}")
            return None

        score = overall_similarity(factors, self.config)
        if not meets_thresholds(factors, score, self.config):
            return None

        logger.debug(f"Duplicate pair {primary.id} <- {secondary.id} (score {score:.3f})")
        return DuplicatePair(
            primary_id=primary.id,
            secondary_id=secondary.id,
            similarity_score=score,
            matched_fields=matched_fields(factors, self.config),
            factors=factors,
        )

    def _finish(self, result: DeduplicationRunResult, start: float) -> DeduplicationRunResult:
        for pair in result.duplicate_pairs:
            self.store.create_duplicate_link(
                pair.secondary_id,
                pair.primary_id,
                pair.similarity_score,
                pair.matched_fields,
                merge_strategy=MERGE_STRATEGY,
            )
            if self.config.archive_secondaries:
                self.store.mark_archived(pair.secondary_id)
                result.duplicates_removed += 1

        result.duplicates_found = len(result.duplicate_pairs)
        result.processing_time_ms = _elapsed_ms(start)
        logger.info(
            f"Reconciliation scanned {result.records_scanned} records: "
            f"{result.duplicates_found} duplicate pairs, {result.duplicates_removed} archived"
        )
        return result

    def get_deduplication_stats(self) -> DeduplicationStats:
        return get_deduplication_stats(self.store)


def get_deduplication_stats(store: RecordStore) -> DeduplicationStats:
    """Aggregate dedup counts; the rate is 0 when nothing is stored."""
    duplicates = store.count_duplicate_links()
    total = store.count_all()
    return DeduplicationStats(
        total_opportunities=total,
        duplicates_identified=duplicates,
        deduplication_rate=duplicates / total if total > 0 else 0.0,
    )
