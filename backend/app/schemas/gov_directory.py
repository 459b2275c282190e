# backend/app/schemas/gov_directory.py
from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DirectoryResult(BaseModel):
    success: bool
    processed: int
    successCount: int
    errorCount: int
    isFinal: bool


class DirectoryScrapeRequest(BaseModel):
    max_agencies: int = Field(default=500, ge=1, le=5000)


class AgencyOut(BaseModel):
    id: UUID
    name: str
    portfolio: str | None = None
    website: str | None = None
    phone: str | None = None
    email: str | None = None
    abn: str | None = None
    head_office_address: str | None = None
    agency_type: str | None = None
    directory_gov_url: str | None = None
    notes: str | None = None
    org_chart_status: str | None = None
    org_chart_url: str | None = None
    org_chart_last_scraped: datetime | None = None
    last_synced_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PeopleResult(BaseModel):
    success: bool
    processed: int
    successCount: int
    errorCount: int


class AgencyPersonOut(BaseModel):
    id: UUID
    agency_id: UUID
    name: str
    title: str | None = None
    division: str | None = None
    seniority_level: int | None = None
    photo_url: str | None = None
    email: str | None = None
    phone: str | None = None
    source_url: str | None = None
    extracted_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
