from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..models.brand import BrandManualField, BrandProfile
from ..schemas.brand import (
    BrandProfileOut,
    CrawlRequest,
    DiscoveryOut,
    GenerateProfileRequest,
    LogoSettingsRequest,
    ManualFieldOut,
    ManualFieldsRequest,
)
from ..services.brand_profile import generate_brand_profile, update_logo_settings, upsert_manual_fields
from ..services.website_crawler import crawl_website
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["brand"])


@router.post("/brand/crawl", response_model=DiscoveryOut)
def crawl(
    payload: CrawlRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("crawl_website"):
        result = crawl_website(db, payload.url, payload.space_id)
    return DiscoveryOut(**asdict(result))


@router.post("/brand/profile/generate")
def generate_profile(
    payload: GenerateProfileRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("generate_brand_profile"):
        profile = generate_brand_profile(db, payload.space_id, payload.selected_urls, payload.detected_name)
    return {"success": True, "profile": profile}


@router.get("/spaces/{space_id}/brand", response_model=BrandProfileOut)
def get_brand_profile(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    profile = db.query(BrandProfile).filter(BrandProfile.space_id == space_id).first()
    if not profile:
        raise HTTPException(status_code=404, detail="Brand profile not found")
    return profile


@router.get("/spaces/{space_id}/brand/manual", response_model=list[ManualFieldOut])
def list_manual_fields(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return (
        db.query(BrandManualField)
        .filter(BrandManualField.space_id == space_id)
        .order_by(BrandManualField.field_name.asc())
        .all()
    )


@router.put("/spaces/{space_id}/brand/manual", response_model=list[ManualFieldOut])
def save_manual_fields(
    space_id: UUID,
    payload: ManualFieldsRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return upsert_manual_fields(db, space_id, payload.fields)


@router.put("/spaces/{space_id}/brand/logos", response_model=BrandProfileOut)
def save_logo_settings(
    space_id: UUID,
    payload: LogoSettingsRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return update_logo_settings(db, space_id, **payload.model_dump())
