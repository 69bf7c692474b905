from sqlalchemy import (
    Column,
    Float,
    Index,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Opportunity(Base):
    __tablename__ = "opportunities"

    opportunity_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    organization = Column(String, nullable=True)
    description = Column(Text, nullable=False, default="")
    url = Column(String, nullable=False, unique=True)  # race backstop for concurrent ingests
    deadline = Column(String, nullable=True)  # YYYY-MM-DD
    tags_json = Column(Text, nullable=True)  # JSON array
    source_type = Column(String, nullable=False)  # websearch, social, bookmark, newsletter, manual
    source_url = Column(String, nullable=True)
    source_metadata_json = Column(Text, nullable=True)
    source_hash = Column(String, nullable=True, index=True)  # SHA256 fingerprint
    status = Column(String, nullable=False, default="new")
    discovered_at_utc = Column(String, nullable=False, index=True)  # ISO 8601, fixed precision
    last_updated_utc = Column(String, nullable=True)


class OpportunitySource(Base):
    __tablename__ = "opportunity_sources"

    source_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)
    url = Column(String, nullable=True)
    config_json = Column(Text, nullable=True)
    created_at_utc = Column(String, nullable=False)


class OpportunitySourceLink(Base):
    __tablename__ = "opportunity_source_links"

    link_id = Column(String, primary_key=True)
    opportunity_id = Column(String, nullable=False, index=True)
    source_id = Column(String, nullable=False)
    discovered_at_utc = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("opportunity_id", "source_id", name="uq_source_links_opportunity_source"),
    )


class OpportunityDuplicate(Base):
    """Append-only duplicate links."""
    __tablename__ = "opportunity_duplicates"

    link_id = Column(String, primary_key=True)
    master_opportunity_id = Column(String, nullable=False, index=True)
    duplicate_opportunity_id = Column(String, nullable=False)
    similarity_score = Column(Float, nullable=False)
    matched_fields_json = Column(Text, nullable=True)  # JSON array of factor names
    merge_strategy = Column(String, nullable=True)  # keep_master | archive_duplicate
    created_at_utc = Column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "master_opportunity_id",
            "duplicate_opportunity_id",
            name="uq_duplicates_master_duplicate",
        ),
        Index("idx_duplicates_duplicate", "duplicate_opportunity_id"),
    )


def create_all(engine_url: str) -> None:
    engine = create_engine(engine_url)
    Base.metadata.create_all(engine)
