"""Record store interface the dedup core depends on."""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional

from oppdedupe.dedupe.models import CandidateRecord, DuplicateLink, StoredOpportunity


class RecordStore(ABC):
    """
    Persistence collaborator for the dedup core.

    Implementations may block or raise; the core never catches their
    exceptions. The core only reads through `find_*`/`count_*`; the write
    methods are invoked by whoever applies a decision (see
    `oppdedupe.ingestion.ingestor`) and by batch reconciliation.

    No mutual exclusion is provided between a lookup and a later create.
    Implementations should back `create` with a uniqueness constraint on URL
    so concurrent ingests of the same opportunity surface as a conflict.
    """

    @abstractmethod
    def find_by_url_or_fingerprint(self, url: str, fingerprint: str) -> Optional[StoredOpportunity]:
        """Return a record whose URL or source hash matches exactly, else None."""

    @abstractmethod
    def find_master(self, duplicate_id: str) -> Optional[StoredOpportunity]:
        """Return the opportunity `duplicate_id` was linked to as a duplicate, else None."""

    @abstractmethod
    def find_recent(
        self,
        window: Optional[timedelta],
        limit: int,
        as_of: Optional[datetime] = None,
    ) -> List[StoredOpportunity]:
        """
        Return up to `limit` live (non-archived) records discovered within
        `window` of `as_of` (default now), most recently discovered first.
        `window=None` is unbounded.
        """

    @abstractmethod
    def create(
        self,
        candidate: CandidateRecord,
        source_hash: str,
        status: str = "new",
    ) -> StoredOpportunity:
        """Persist a candidate as a new opportunity."""

    @abstractmethod
    def create_duplicate_link(
        self,
        source_id: str,
        existing_id: str,
        score: float,
        matched_fields: List[str],
        merge_strategy: Optional[str] = None,
    ) -> DuplicateLink:
        """Link duplicate `source_id` to canonical `existing_id`; idempotent per pair."""

    @abstractmethod
    def add_source_link(self, opportunity_id: str, candidate: CandidateRecord) -> None:
        """Record that `candidate`'s discovery source also points at `opportunity_id`."""

    @abstractmethod
    def mark_archived(self, opportunity_id: str) -> None:
        """Flag an opportunity as archived (non-destructive)."""

    @abstractmethod
    def count_all(self) -> int:
        """Total number of stored opportunities."""

    @abstractmethod
    def count_duplicate_links(self) -> int:
        """Total number of duplicate links."""
