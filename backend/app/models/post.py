from sqlalchemy import Column, String, Integer, Text, JSON, Enum, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base


def _values(e):
    return [m.value for m in e]


class PostStatus(str, enum.Enum):
    DRAFT = "draft"
    READY_TO_PUBLISH = "ready_to_publish"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"
    FAILED = "failed"
    GENERATING_TEXT = "generating_text"
    GENERATING_IMAGE = "generating_image"

class ImageStatus(str, enum.Enum):
    NONE = "none"
    PROMPT_READY = "prompt_ready"
    GENERATING = "generating"
    IMAGES_AVAILABLE = "images_available"
    READY = "ready"
    FAILED = "failed"

class OverlayStatus(str, enum.Enum):
    NONE = "none"
    COMPOSITING = "compositing"
    READY = "ready"
    FAILED = "failed"

class Post(Base):
    __tablename__ = "posts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    campaign_id = Column(Uuid(as_uuid=True), ForeignKey("campaigns.id"), index=True, nullable=True)
    author_id = Column(String, nullable=True)

    title = Column(String, nullable=True)
    topic = Column(String, nullable=True)
    body = Column(Text, nullable=True)
    status = Column(Enum(PostStatus, values_callable=_values), nullable=False, default=PostStatus.DRAFT)
    sequence_number = Column(Integer, nullable=True)

    sources_used = Column(JSON, nullable=True)      # [{type, id?, name?}]
    generation_meta = Column(JSON, nullable=True)   # {model, tokens, cost_usd, generated_at}

    image_status = Column(Enum(ImageStatus, values_callable=_values), nullable=False, default=ImageStatus.NONE)
    overlay_status = Column(Enum(OverlayStatus, values_callable=_values), nullable=False, default=OverlayStatus.NONE)
    image_prompt = Column(Text, nullable=True)
    image_prompt_style = Column(String, nullable=True)  # realistic | editorial
    image_settings = Column(JSON, nullable=True)
    final_image_path = Column(String, nullable=True)
    publish_snapshot = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
