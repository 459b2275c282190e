# backend/app/schemas/sharepoint.py
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuthorizeOut(BaseModel):
    authorize_url: str


class ConnectionStatusOut(BaseModel):
    connected: bool
    status: str | None = None
    user_email: str | None = None
    connected_at: datetime | None = None
    expires_at: datetime | None = None
    last_error: str | None = None


class SourceCreate(BaseModel):
    site_id: str
    drive_id: str
    folder_id: str | None = None
    site_name: str | None = None
    drive_name: str | None = None
    folder_path: str | None = None
    folder_name: str | None = None


class SourceOut(BaseModel):
    id: UUID
    site_id: str
    site_name: str | None = None
    drive_id: str
    drive_name: str | None = None
    folder_id: str | None = None
    folder_path: str | None = None
    folder_name: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SyncRequest(BaseModel):
    site_id: str
    drive_id: str
    folder_id: str | None = None


class SyncProgressOut(BaseModel):
    id: UUID
    status: str
    source_path: str | None = None
    total_documents: int | None = None
    processed_documents: int | None = None
    estimated_tokens: int | None = None
    estimated_cost: float | None = None
    actual_tokens: int | None = None
    actual_cost: float | None = None
    error_log: list | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
