from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
from ..core.db import Base

class PromptTemplate(Base):
    __tablename__ = "prompt_templates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    prompt_type = Column(String, nullable=False, default="linkedin_text")  # linkedin_text | image_prompt
    template = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
