"""Pydantic models for candidates, stored opportunities and dedup decisions."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from oppdedupe.utils.time import ensure_aware, utc_now

DeadlineValue = Union[datetime, date, str]


class SourceType(str, Enum):
    WEBSEARCH = "websearch"
    SOCIAL = "social"
    BOOKMARK = "bookmark"
    NEWSLETTER = "newsletter"
    MANUAL = "manual"


class OpportunityStatus(str, Enum):
    NEW = "new"
    REVIEWING = "reviewing"
    APPLYING = "applying"
    SUBMITTED = "submitted"
    REJECTED = "rejected"
    ARCHIVED = "archived"


class DecisionAction(str, Enum):
    NEW_OPPORTUNITY = "new_opportunity"
    SOURCE_ADDED = "source_added"
    DUPLICATE_LINKED = "duplicate_linked"


class CandidateRecord(BaseModel):
    """A newly discovered opportunity posting awaiting dedup evaluation."""

    title: str
    description: str = ""
    url: str
    organization: Optional[str] = None
    deadline: Optional[DeadlineValue] = None
    tags: List[str] = Field(default_factory=list)
    source_type: SourceType = SourceType.WEBSEARCH
    source_url: Optional[str] = None
    discovered_at: datetime = Field(default_factory=utc_now)
    # Opaque pass-through; never inspected by the dedup core.
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("discovered_at")
    @classmethod
    def _aware_discovered_at(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class StoredOpportunity(BaseModel):
    """A persisted opportunity as seen by the dedup core."""

    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    organization: Optional[str] = None
    deadline: Optional[DeadlineValue] = None
    tags: List[str] = Field(default_factory=list)
    source_type: Optional[str] = None
    source_hash: Optional[str] = None
    status: str = OpportunityStatus.NEW.value
    discovered_at: datetime

    @field_validator("discovered_at")
    @classmethod
    def _aware_discovered_at(cls, value: datetime) -> datetime:
        return ensure_aware(value)


class DuplicateLink(BaseModel):
    """Append-only association of a duplicate occurrence with its canonical opportunity."""

    id: str
    duplicate_id: str
    master_id: str
    similarity_score: float = Field(..., ge=0.0, le=1.0)
    matched_fields: List[str] = Field(default_factory=list)
    merge_strategy: Optional[str] = None
    detected_at: datetime


class SimilarityFactors(BaseModel):
    """Per-field similarity between two records; transient, never persisted."""

    model_config = ConfigDict(frozen=True)

    title_similarity: float = Field(..., ge=0.0, le=1.0)
    organization_similarity: float = Field(..., ge=0.0, le=1.0)
    deadline_similarity: float = Field(..., ge=0.0, le=1.0)
    description_similarity: float = Field(..., ge=0.0, le=1.0)


class DecisionResult(BaseModel):
    """Outcome of checking one candidate against the record store."""

    is_duplicate: bool
    action: DecisionAction
    hash: str
    existing_id: Optional[str] = None
    similarity_score: Optional[float] = None
    matched_fields: List[str] = Field(default_factory=list)
    factors: Optional[SimilarityFactors] = None


class DuplicatePair(BaseModel):
    """A duplicate pair found by batch reconciliation."""

    primary_id: str
    secondary_id: str
    similarity_score: float
    matched_fields: List[str] = Field(default_factory=list)
    factors: Optional[SimilarityFactors] = None


class DeduplicationRunResult(BaseModel):
    duplicates_found: int = 0
    duplicates_removed: int = 0
    duplicate_pairs: List[DuplicatePair] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    records_scanned: int = 0
    comparisons: int = 0
    skipped_records: int = 0
    cancelled: bool = False


class DeduplicationStats(BaseModel):
    total_opportunities: int
    duplicates_identified: int
    deduplication_rate: float


class DuplicateGroup(BaseModel):
    """A cluster of in-run duplicates collapsed onto one primary record."""

    id: str
    records: List[CandidateRecord]
    primary: CandidateRecord
    duplicate_count: int
    confidence: float
    reason: str


class GroupingResult(BaseModel):
    original_count: int
    unique_count: int
    duplicate_groups: List[DuplicateGroup] = Field(default_factory=list)
    removed_duplicates: List[CandidateRecord] = Field(default_factory=list)
    unique_records: List[CandidateRecord] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    duplicate_detection_rate: float = 0.0
