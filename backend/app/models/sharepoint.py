from sqlalchemy import Column, String, Integer, Float, Text, JSON, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
import enum
from ..core.db import Base

class SharePointStatus(str, enum.Enum):
    CONNECTED = "connected"
    EXPIRED = "expired"
    ERROR = "error"

class SharePointConnection(Base):
    __tablename__ = "sharepoint_connections"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), unique=True, index=True, nullable=False)
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    user_email = Column(String, nullable=True)
    status = Column(String, nullable=False, default=SharePointStatus.CONNECTED.value)
    last_error = Column(String, nullable=True)
    connected_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SharePointSource(Base):
    """A folder the space has chosen to pull documents from."""
    __tablename__ = "sharepoint_sources"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    connection_id = Column(Uuid(as_uuid=True), ForeignKey("sharepoint_connections.id"), nullable=True)
    site_id = Column(String, nullable=False)
    site_name = Column(String, nullable=True)
    drive_id = Column(String, nullable=False)
    drive_name = Column(String, nullable=True)
    folder_id = Column(String, nullable=True)
    folder_path = Column(String, nullable=True)
    folder_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class SyncProgress(Base):
    __tablename__ = "sync_progress"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    space_id = Column(Uuid(as_uuid=True), ForeignKey("spaces.id"), index=True, nullable=False)
    source_type = Column(String, nullable=False, default="sharepoint")
    source_path = Column(String, nullable=True)
    status = Column(String, nullable=False, default="processing")  # processing | completed | failed
    total_documents = Column(Integer, nullable=True)
    processed_documents = Column(Integer, nullable=False, default=0)
    estimated_tokens = Column(Integer, nullable=True)
    estimated_cost = Column(Float, nullable=True)
    actual_tokens = Column(Integer, nullable=False, default=0)
    actual_cost = Column(Float, nullable=True)
    error_log = Column(JSON, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
