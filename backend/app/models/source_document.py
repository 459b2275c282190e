from sqlalchemy import Column, String, Text, JSON, Boolean, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
from ..core.db import Base

# Content written by the UI before the crawler has run
PLACEHOLDER_CONTENT = "(Content will be fetched by crawler)"

class SourceDocument(Base):
    __tablename__ = "source_documents"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    source_type = Column(String, nullable=False)  # website | sharepoint | manual
    url = Column(String, nullable=True)
    title = Column(String, nullable=True)
    content = Column(Text, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    is_confirmed = Column(Boolean, nullable=False, default=False)
    discovery_session_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
