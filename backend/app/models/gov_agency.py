from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, Uuid, UniqueConstraint
from datetime import datetime
import uuid
from ..core.db import Base

class GovAgency(Base):
    __tablename__ = "gov_agencies"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    portfolio = Column(String, nullable=True)
    website = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    email = Column(String, nullable=True)
    abn = Column(String, nullable=True)
    head_office_address = Column(Text, nullable=True)
    agency_type = Column(String, nullable=True)
    directory_gov_url = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    org_chart_status = Column(String, nullable=True)  # pending | extracting | completed | failed
    org_chart_url = Column(String, nullable=True)
    org_chart_last_scraped = Column(DateTime, nullable=True)
    last_synced_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("space_id", "name", name="uq_gov_agency_name"),
    )


class GovAgencyPerson(Base):
    __tablename__ = "gov_agency_people"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    agency_id = Column(Uuid(as_uuid=True), ForeignKey("gov_agencies.id", ondelete="CASCADE"), index=True, nullable=False)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    title = Column(String, nullable=True)
    division = Column(String, nullable=True)
    seniority_level = Column(Integer, nullable=True)  # 1 = agency head, larger is more junior
    photo_url = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    source_url = Column(String, nullable=True)
    extracted_at = Column(DateTime, nullable=True)
    extraction_method = Column(String, nullable=True)  # ai | manual

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("agency_id", "name", name="uq_gov_agency_person_name"),
    )
