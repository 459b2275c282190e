from sqlalchemy import (
    Column,
    String,
    Integer,
    Float,
    Text,
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Uuid,
    UniqueConstraint,
)
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class MatchType(str, enum.Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"
    FUZZY = "fuzzy"

class SyncJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class ConnectionStatus(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    SYNCING = "syncing"
    ERROR = "error"


class BuyICTIntegration(Base):
    __tablename__ = "buyict_integrations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), unique=True, index=True, nullable=False)
    connection_method = Column(String, nullable=False, default="upload")  # upload | api | browser_sync
    connection_status = Column(String, nullable=False, default=ConnectionStatus.DISCONNECTED.value)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(String, nullable=True)
    config = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BuyICTSyncJob(Base):
    __tablename__ = "buyict_sync_jobs"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    integration_id = Column(Uuid(as_uuid=True), ForeignKey("buyict_integrations.id"), nullable=False)
    status = Column(String, nullable=False, default=SyncJobStatus.PENDING.value)
    sync_type = Column(String, nullable=False, default="full")  # full | incremental | upload
    stats = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class BuyICTOpportunity(Base):
    __tablename__ = "buyict_opportunities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    buyict_reference = Column(String, nullable=False)
    buyict_url = Column(String, nullable=True)
    title = Column(String, nullable=False)
    buyer_entity_raw = Column(String, nullable=True)
    category = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    publish_date = Column(DateTime, nullable=True)
    closing_date = Column(DateTime, nullable=True)
    opportunity_status = Column(String, nullable=True)
    contact_text_raw = Column(Text, nullable=True)
    attachments = Column(JSON, nullable=True)
    # Extended RFQ / labour-hire fields, stored as scraped
    details = Column(JSON, nullable=True)
    criteria = Column(JSON, nullable=True)
    last_synced_at = Column(DateTime, default=datetime.utcnow)
    sync_job_id = Column(Uuid(as_uuid=True), ForeignKey("buyict_sync_jobs.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("space_id", "buyict_reference", name="uq_buyict_opportunity_ref"),
    )


class BuyICTContact(Base):
    __tablename__ = "buyict_contacts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    email = Column(String, nullable=False)
    name = Column(String, nullable=True)
    opportunity_count = Column(Integer, nullable=False, default=0)
    first_seen_at = Column(DateTime, default=datetime.utcnow)
    last_seen_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("space_id", "email", name="uq_buyict_contact_email"),
    )


class BuyICTOpportunityContact(Base):
    __tablename__ = "buyict_opportunity_contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    opportunity_id = Column(Uuid(as_uuid=True), ForeignKey("buyict_opportunities.id"), index=True, nullable=False)
    contact_id = Column(Uuid(as_uuid=True), ForeignKey("buyict_contacts.id"), index=True, nullable=False)
    source_type = Column(String, nullable=False)  # structured_field | page_text | attachment
    source_detail = Column(String, nullable=True)
    role_label = Column(String, nullable=True)
    extraction_confidence = Column(Float, nullable=True)
    last_seen_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("opportunity_id", "contact_id", "source_type", name="uq_buyict_opp_contact"),
    )


class BuyICTDepartmentMapping(Base):
    __tablename__ = "buyict_department_mappings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    source_pattern = Column(String, nullable=False)
    match_type = Column(String, nullable=False, default=MatchType.EXACT.value)
    canonical_department = Column(String, nullable=False)
    canonical_agency = Column(String, nullable=True)
    confidence = Column(Float, nullable=False, default=1.0)
    is_approved = Column(Boolean, nullable=False, default=True)
    is_auto_generated = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
