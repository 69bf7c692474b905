"""SQLAlchemy-backed record store for opportunities and duplicate links."""

import json
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from oppdedupe.database.schema import (
    Opportunity,
    OpportunityDuplicate,
    OpportunitySource,
    OpportunitySourceLink,
)
from oppdedupe.dedupe.models import (
    CandidateRecord,
    DuplicateLink,
    OpportunityStatus,
    StoredOpportunity,
)
from oppdedupe.dedupe.store import RecordStore
from oppdedupe.utils.id_generator import new_link_id, new_opportunity_id, new_source_id
from oppdedupe.utils.logging import get_logger
from oppdedupe.utils.time import parse_utc, to_date, to_utc_z, utc_now, utc_now_z

logger = get_logger(__name__)


def _deadline_to_column(value) -> Optional[str]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return to_date(value).isoformat()


def row_to_stored(row: Opportunity) -> StoredOpportunity:
    """Convert an Opportunity row to the model the dedup core reads."""
    tags = json.loads(row.tags_json) if row.tags_json else []
    return StoredOpportunity(
        id=row.opportunity_id,
        title=row.title,
        description=row.description,
        url=row.url,
        organization=row.organization,
        # Passed through as stored; the scorer rejects unparseable values per comparison.
        deadline=row.deadline,
        tags=tags,
        source_type=row.source_type,
        source_hash=row.source_hash,
        status=row.status or OpportunityStatus.NEW.value,
        discovered_at=parse_utc(row.discovered_at_utc),
    )


def row_to_link(row: OpportunityDuplicate) -> DuplicateLink:
    matched = json.loads(row.matched_fields_json) if row.matched_fields_json else []
    return DuplicateLink(
        id=row.link_id,
        duplicate_id=row.duplicate_opportunity_id,
        master_id=row.master_opportunity_id,
        similarity_score=row.similarity_score,
        matched_fields=matched,
        merge_strategy=row.merge_strategy,
        detected_at=parse_utc(row.created_at_utc),
    )


class SqlRecordStore(RecordStore):
    """
    RecordStore over the SQLite tables in `oppdedupe.database.schema`.

    Writes are added and flushed, never committed; the caller owns the
    transaction. Flushing on create surfaces the URL uniqueness conflict
    (IntegrityError) at the point of the write.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, opportunity_id: str) -> Optional[StoredOpportunity]:
        row = self._get_row(opportunity_id)
        return row_to_stored(row) if row else None

    def _get_row(self, opportunity_id: str) -> Optional[Opportunity]:
        return self.session.query(Opportunity).filter(
            Opportunity.opportunity_id == opportunity_id
        ).first()

    def find_by_url_or_fingerprint(self, url: str, fingerprint: str) -> Optional[StoredOpportunity]:
        # URL match wins over a fingerprint match when both exist.
        row = None
        if url:
            row = self.session.query(Opportunity).filter(Opportunity.url == url).first()
        if row is None and fingerprint:
            # Prefer a live row over an archived occurrence sharing the hash.
            row = (
                self.session.query(Opportunity)
                .filter(Opportunity.source_hash == fingerprint)
                .order_by(
                    (Opportunity.status == OpportunityStatus.ARCHIVED.value).asc(),
                    Opportunity.discovered_at_utc.asc(),
                )
                .first()
            )
        return row_to_stored(row) if row else None

    def find_master(self, duplicate_id: str) -> Optional[StoredOpportunity]:
        link = (
            self.session.query(OpportunityDuplicate)
            .filter(OpportunityDuplicate.duplicate_opportunity_id == duplicate_id)
            .order_by(OpportunityDuplicate.created_at_utc.asc())
            .first()
        )
        if link is None:
            return None
        return self.get(link.master_opportunity_id)

    def find_recent(
        self,
        window: Optional[timedelta],
        limit: int,
        as_of: Optional[datetime] = None,
    ) -> List[StoredOpportunity]:
        query = self.session.query(Opportunity).filter(
            Opportunity.status != OpportunityStatus.ARCHIVED.value
        )
        if window is not None:
            center = as_of or utc_now()
            # Fixed-precision Z strings compare lexicographically in time order.
            query = query.filter(
                Opportunity.discovered_at_utc >= to_utc_z(center - window),
                Opportunity.discovered_at_utc <= to_utc_z(center + window),
            )
        query = query.order_by(
            Opportunity.discovered_at_utc.desc(),
            Opportunity.opportunity_id.asc(),
        )
        if limit:
            query = query.limit(limit)
        return [row_to_stored(row) for row in query.all()]

    def create(
        self,
        candidate: CandidateRecord,
        source_hash: str,
        status: str = OpportunityStatus.NEW.value,
    ) -> StoredOpportunity:
        now = utc_now_z()
        row = Opportunity(
            opportunity_id=new_opportunity_id(),
            title=candidate.title,
            organization=candidate.organization,
            description=candidate.description or "",
            url=candidate.url.strip(),
            deadline=_deadline_to_column(candidate.deadline),
            tags_json=json.dumps(sorted(set(candidate.tags))),
            source_type=candidate.source_type.value,
            source_url=candidate.source_url,
            source_metadata_json=json.dumps(candidate.metadata, default=str) if candidate.metadata else None,
            source_hash=source_hash,
            status=status,
            discovered_at_utc=to_utc_z(candidate.discovered_at),
            last_updated_utc=now,
        )
        self.session.add(row)
        self.session.flush()
        logger.debug(f"Created opportunity {row.opportunity_id} ({status}): {candidate.title!r}")
        return row_to_stored(row)

    def create_duplicate_link(
        self,
        source_id: str,
        existing_id: str,
        score: float,
        matched_fields: List[str],
        merge_strategy: Optional[str] = None,
    ) -> DuplicateLink:
        existing = self.session.query(OpportunityDuplicate).filter(
            OpportunityDuplicate.master_opportunity_id == existing_id,
            OpportunityDuplicate.duplicate_opportunity_id == source_id,
        ).first()
        if existing:
            logger.debug(f"Duplicate link already exists: {existing_id} <- {source_id}")
            return row_to_link(existing)

        row = OpportunityDuplicate(
            link_id=new_link_id(),
            master_opportunity_id=existing_id,
            duplicate_opportunity_id=source_id,
            similarity_score=max(0.0, min(1.0, float(score))),
            matched_fields_json=json.dumps(list(matched_fields)),
            merge_strategy=merge_strategy,
            created_at_utc=utc_now_z(),
        )
        self.session.add(row)
        self.session.flush()
        logger.debug(f"Linked duplicate {source_id} -> {existing_id} ({merge_strategy})")
        return row_to_link(row)

    def add_source_link(self, opportunity_id: str, candidate: CandidateRecord) -> None:
        source_url = candidate.source_url or candidate.url
        source = self.session.query(OpportunitySource).filter(
            OpportunitySource.type == candidate.source_type.value,
            OpportunitySource.url == source_url,
        ).first()
        if source is None:
            source = OpportunitySource(
                source_id=new_source_id(),
                name=candidate.source_type.value,
                type=candidate.source_type.value,
                url=source_url,
                created_at_utc=utc_now_z(),
            )
            self.session.add(source)
            self.session.flush()

        link = self.session.query(OpportunitySourceLink).filter(
            OpportunitySourceLink.opportunity_id == opportunity_id,
            OpportunitySourceLink.source_id == source.source_id,
        ).first()
        if link:
            return

        self.session.add(OpportunitySourceLink(
            link_id=new_link_id(),
            opportunity_id=opportunity_id,
            source_id=source.source_id,
            discovered_at_utc=to_utc_z(candidate.discovered_at),
        ))
        self.session.flush()
        logger.debug(f"Added source {source.source_id} to opportunity {opportunity_id}")

    def mark_archived(self, opportunity_id: str) -> None:
        row = self._get_row(opportunity_id)
        if not row:
            logger.warning(f"Opportunity not found: {opportunity_id}")
            return
        row.status = OpportunityStatus.ARCHIVED.value
        row.last_updated_utc = utc_now_z()
        self.session.flush()

    def count_all(self) -> int:
        return self.session.query(Opportunity).count()

    def count_duplicate_links(self) -> int:
        return self.session.query(OpportunityDuplicate).count()

    def list_source_links(self, opportunity_id: str) -> List[str]:
        """Source ids linked to an opportunity."""
        rows = self.session.query(OpportunitySourceLink).filter(
            OpportunitySourceLink.opportunity_id == opportunity_id
        ).all()
        return [row.source_id for row in rows]

    def list_duplicate_links(self, master_id: Optional[str] = None) -> List[DuplicateLink]:
        query = self.session.query(OpportunityDuplicate)
        if master_id:
            query = query.filter(OpportunityDuplicate.master_opportunity_id == master_id)
        rows = query.order_by(OpportunityDuplicate.created_at_utc.asc()).all()
        return [row_to_link(row) for row in rows]
