# backend/app/schemas/buyict.py
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.buyict import MatchType


class IngestStatsOut(BaseModel):
    opportunities_added: int
    opportunities_updated: int
    contacts_found: int
    emails_extracted: int
    errors: int


class WebhookResult(BaseModel):
    success: bool
    syncJobId: str
    stats: IngestStatsOut


class UploadResult(BaseModel):
    syncJobId: str
    stats: IngestStatsOut
    errors: List[str]


class OpportunityContactOut(BaseModel):
    contact_id: UUID
    email: str
    name: str | None = None
    role_label: str | None = None
    source_type: str
    source_detail: str | None = None
    extraction_confidence: float | None = None


class OpportunityOut(BaseModel):
    id: UUID
    buyict_reference: str
    buyict_url: str | None = None
    title: str
    buyer_entity_raw: str | None = None
    category: str | None = None
    description: str | None = None
    publish_date: datetime | None = None
    closing_date: datetime | None = None
    opportunity_status: str | None = None
    contact_text_raw: str | None = None
    details: Dict[str, Any] = {}
    criteria: List[Any] = []
    last_synced_at: datetime | None = None
    canonical_department: str | None = None
    canonical_agency: str | None = None
    mapping_confidence: float | None = None
    contacts: List[OpportunityContactOut] = []


class ContactOut(BaseModel):
    id: UUID
    email: str
    name: str | None = None
    opportunity_count: int
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SyncJobOut(BaseModel):
    id: UUID
    status: str
    sync_type: str
    stats: Dict[str, Any] | None = None
    error: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class SyncJobsOut(BaseModel):
    jobs: List[SyncJobOut]
    isSyncing: bool


class StatsOut(BaseModel):
    totalOpportunities: int
    openOpportunities: int
    totalContacts: int
    uniqueDepartments: int
    unmappedDepartments: int
    closingThisWeek: int


class MappingCreate(BaseModel):
    source_pattern: str = Field(min_length=1)
    match_type: MatchType = MatchType.EXACT
    canonical_department: str = Field(min_length=1)
    canonical_agency: str | None = None
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    is_approved: bool = True

    @field_validator("source_pattern", "canonical_department")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class MappingUpdate(BaseModel):
    source_pattern: str | None = None
    match_type: MatchType | None = None
    canonical_department: str | None = None
    canonical_agency: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    is_approved: bool | None = None


class MappingOut(BaseModel):
    id: UUID
    source_pattern: str
    match_type: str
    canonical_department: str
    canonical_agency: str | None = None
    confidence: float
    is_approved: bool
    is_auto_generated: bool

    model_config = ConfigDict(from_attributes=True)


class ScrapeRequest(BaseModel):
    incremental: bool = False
    status: str = "live"
    max_opportunities: int = Field(default=200, ge=1, le=2000)


class RunOut(BaseModel):
    run_id: str | None = None
    status: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    task_id: str | None = None


class CsvUploadRequest(BaseModel):
    csv: str = Field(min_length=1)
    created_by: str | None = None
