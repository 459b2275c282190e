from sqlalchemy import Column, String, Text, JSON, Boolean, DateTime, ForeignKey, Uuid, UniqueConstraint
from datetime import datetime
import uuid
from ..core.db import Base

class BrandProfile(Base):
    __tablename__ = "brand_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), unique=True, index=True, nullable=False)

    who_we_are = Column(Text, nullable=True)
    what_we_do = Column(Text, nullable=True)
    who_we_serve = Column(Text, nullable=True)
    tone_notes = Column(Text, nullable=True)
    themes = Column(JSON, nullable=True)
    services = Column(JSON, nullable=True)

    # idea-generation extras
    detected_name = Column(String, nullable=True)
    taglines = Column(JSON, nullable=True)
    key_messaging = Column(Text, nullable=True)
    target_audience = Column(Text, nullable=True)
    tone_of_voice = Column(Text, nullable=True)

    logo_url = Column(String, nullable=True)
    logo_top_left_url = Column(String, nullable=True)
    logo_bottom_right_url = Column(String, nullable=True)

    is_system_generated = Column(Boolean, nullable=False, default=False)
    last_generated_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BrandManualField(Base):
    """One manually entered brand field (the `brand_manual_profile` table)."""
    __tablename__ = "brand_manual_profile"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    field_name = Column(String, nullable=False)
    field_value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("space_id", "field_name", name="uq_brand_manual_field"),
    )


class BrandContextCache(Base):
    __tablename__ = "brand_context_cache"

    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), primary_key=True)
    setup_status = Column(String, nullable=True)  # website_pending | profile_draft | ...
    detected_name = Column(String, nullable=True)
    detected_linkedin = Column(String, nullable=True)
    linkedin_confidence = Column(String, nullable=True)  # high | medium | low
    compiled_from = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BrandKnowledge(Base):
    __tablename__ = "brand_knowledge"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    category = Column(String, nullable=False)  # clients, projects, technologies, ...
    items = Column(JSON, nullable=False, default=list)
    last_synced_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("space_id", "category", name="uq_brand_knowledge_category"),
    )
