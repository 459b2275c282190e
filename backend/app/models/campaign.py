from sqlalchemy import Column, String, Integer, JSON, Enum, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    target_count = Column(Integer, nullable=False, default=10)
    status = Column(
        Enum(CampaignStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CampaignStatus.DRAFT,
    )
    # {use_website, use_manual, use_sharepoint}
    locked_source_settings = Column(JSON, nullable=True)
    # {text_template_id, image_template_id}
    template_ids = Column(JSON, nullable=True)
    # tone/audience/topics/length/hashtag/emoji/cta toggles + generated_ideas
    generation_settings = Column(JSON, nullable=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
