# backend/app/schemas/campaigns.py
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.campaign import CampaignStatus
from ..models.post import PostStatus, ImageStatus, OverlayStatus

MAX_CAMPAIGN_NAME_LEN = 200
MAX_POSTS_PER_RUN = 100


class CampaignCreate(BaseModel):
    space_id: UUID
    name: str
    target_count: int = Field(default=10, ge=1, le=MAX_POSTS_PER_RUN)
    locked_source_settings: Dict[str, Any] | None = None
    template_ids: Dict[str, Any] | None = None
    generation_settings: Dict[str, Any] | None = None
    created_by: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be empty")
        if len(v) > MAX_CAMPAIGN_NAME_LEN:
            raise ValueError(f"name must be at most {MAX_CAMPAIGN_NAME_LEN} characters")
        return v


class CampaignOut(BaseModel):
    id: UUID
    space_id: UUID
    name: str
    target_count: int
    status: CampaignStatus
    locked_source_settings: Dict[str, Any] | None = None
    template_ids: Dict[str, Any] | None = None
    generation_settings: Dict[str, Any] | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GeneratePostsRequest(BaseModel):
    count: int | None = Field(default=None, ge=1, le=MAX_POSTS_PER_RUN)


class GenerateIdeasRequest(BaseModel):
    count: int | None = Field(default=None, ge=1, le=50)


class IdeasOut(BaseModel):
    campaign_id: UUID
    ideas: List[str]


class GenerationAccepted(BaseModel):
    campaign_id: UUID
    status: CampaignStatus
    task_id: str | None = None


class PostOut(BaseModel):
    id: UUID
    space_id: UUID
    campaign_id: UUID | None = None
    title: str | None = None
    topic: str | None = None
    body: str | None = None
    status: PostStatus
    sequence_number: int | None = None
    sources_used: List[Dict[str, Any]] | None = None
    generation_meta: Dict[str, Any] | None = None
    image_status: ImageStatus
    overlay_status: OverlayStatus
    image_prompt: str | None = None
    final_image_path: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
