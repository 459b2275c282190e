# backend/app/schemas/brand.py
from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


class CrawlRequest(BaseModel):
    space_id: UUID
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("url is required")
        return v


class DiscoveryOut(BaseModel):
    session_id: str
    canonical_domain: str
    detected_name: str | None = None
    detected_linkedin: str | None = None
    linkedin_confidence: str | None = None
    pages_found: List[Dict[str, Any]]


class GenerateProfileRequest(BaseModel):
    space_id: UUID
    selected_urls: List[str] | None = None
    detected_name: str | None = None


class ManualFieldsRequest(BaseModel):
    fields: Dict[str, str | None]


class ManualFieldOut(BaseModel):
    field_name: str
    field_value: str | None = None

    model_config = ConfigDict(from_attributes=True)


class LogoSettingsRequest(BaseModel):
    logo_url: str | None = None
    logo_top_left_url: str | None = None
    logo_bottom_right_url: str | None = None


class BrandProfileOut(BaseModel):
    space_id: UUID
    who_we_are: str | None = None
    what_we_do: str | None = None
    who_we_serve: str | None = None
    tone_notes: str | None = None
    themes: List[str] | None = None
    services: List[str] | None = None
    detected_name: str | None = None
    logo_url: str | None = None
    logo_top_left_url: str | None = None
    logo_bottom_right_url: str | None = None
    is_system_generated: bool | None = None
    last_generated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
