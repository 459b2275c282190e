# backend/app/schemas/images.py
from datetime import datetime
from typing import Any, Dict, List, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.post_image import ImageGenerationStatus

AspectRatio = Literal["1:1", "4:5", "16:9", "9:16", "1.91:1"]


class ImageSettings(BaseModel):
    style: Literal["photographic", "illustrative"] = "photographic"
    include_people: bool = True
    include_text: bool = False
    include_logos: bool = False
    aspect_ratio: AspectRatio = "1:1"


class GenerateImagesRequest(BaseModel):
    space_id: UUID
    prompt: str = Field(min_length=1)
    settings: ImageSettings | None = None
    count: int = Field(default=2, ge=1, le=4)


class ImagePromptRequest(BaseModel):
    space_id: UUID
    style: Literal["realistic", "editorial"] = "realistic"


class ImagePromptOut(BaseModel):
    success: bool
    prompt: str
    style: str


class BulkImagesRequest(BaseModel):
    space_id: UUID
    post_ids: List[UUID] = Field(min_length=1)
    settings: ImageSettings | None = None
    count: int = Field(default=2, ge=1, le=4)


class ApplyLogoRequest(BaseModel):
    space_id: UUID
    image_id: UUID
    position: Literal["top-left", "bottom-right", "both", "main-top-left"] = "both"


class BulkLogoRequest(BaseModel):
    space_id: UUID
    post_ids: List[UUID] = Field(min_length=1)
    randomize_logo: bool = True
    randomize_primary: bool = True


class TaskAccepted(BaseModel):
    task_id: str | None = None
    total: int


class ImageRunOut(BaseModel):
    post_id: str
    success: bool
    generated: List[Dict[str, str]]
    errors: List[Dict[str, Any]]
    total_requested: int


class PostImageOut(BaseModel):
    id: UUID
    post_id: UUID
    storage_path: str
    is_primary: bool
    prompt_used: str | None = None
    generation_status: ImageGenerationStatus
    error_message: str | None = None
    width: int | None = None
    height: int | None = None
    mime_type: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
