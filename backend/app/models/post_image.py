from sqlalchemy import Column, String, Integer, Text, JSON, Enum, Boolean, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class ImageGenerationStatus(str, enum.Enum):
    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"

class PostImage(Base):
    __tablename__ = "post_images"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    post_id = Column(Uuid(as_uuid=True), ForeignKey("posts.id"), index=True, nullable=False)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    source_type = Column(String, nullable=False, default="generated")  # generated | uploaded
    storage_path = Column(String, nullable=False)
    is_primary = Column(Boolean, nullable=False, default=False)
    prompt_used = Column(Text, nullable=True)    # logo composites carry the "[LOGO OVERLAY]" marker
    settings_used = Column(JSON, nullable=True)
    generation_status = Column(
        Enum(ImageGenerationStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ImageGenerationStatus.PENDING,
    )
    error_message = Column(String, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
