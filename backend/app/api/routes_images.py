from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import get_db
from ..models.post_image import PostImage
from ..schemas.images import (
    ApplyLogoRequest,
    BulkImagesRequest,
    BulkLogoRequest,
    GenerateImagesRequest,
    ImagePromptOut,
    ImagePromptRequest,
    ImageRunOut,
    PostImageOut,
    TaskAccepted,
)
from ..services.logo_overlay import apply_logo
from ..services.post_images import generate_image_prompt, generate_post_images
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["images"])


@router.get("/posts/{post_id}/images", response_model=list[PostImageOut])
def list_post_images(
    post_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return (
        db.query(PostImage)
        .filter(PostImage.post_id == post_id)
        .order_by(PostImage.created_at.desc())
        .all()
    )


@router.post("/posts/{post_id}/images", response_model=ImageRunOut)
def generate_images(
    post_id: UUID,
    payload: GenerateImagesRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    settings = payload.settings.model_dump() if payload.settings else None
    with service_errors("generate_post_images"):
        result = generate_post_images(db, post_id, payload.space_id, payload.prompt, settings, payload.count)
    return ImageRunOut(
        post_id=result.post_id,
        success=result.success,
        generated=result.generated,
        errors=result.errors,
        total_requested=result.total_requested,
    )


@router.post("/posts/{post_id}/image-prompt", response_model=ImagePromptOut)
def image_prompt(
    post_id: UUID,
    payload: ImagePromptRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("generate_image_prompt"):
        return generate_image_prompt(db, post_id, payload.space_id, payload.style)


@router.post("/images/bulk-generate", response_model=TaskAccepted, status_code=202)
def bulk_generate(
    payload: BulkImagesRequest,
    _: None = Depends(verify_api_key),
):
    settings = payload.settings.model_dump() if payload.settings else None
    task = celery_app.send_task(
        "app.services.post_images.run_bulk_image_generation",
        args=[str(payload.space_id), [str(p) for p in payload.post_ids], settings, payload.count],
        queue="generation",
    )
    return TaskAccepted(task_id=task.id, total=len(payload.post_ids))


@router.post("/posts/{post_id}/logo")
def apply_post_logo(
    post_id: UUID,
    payload: ApplyLogoRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("apply_logo"):
        return apply_logo(db, payload.image_id, post_id, payload.space_id, payload.position)


@router.post("/images/bulk-logo", response_model=TaskAccepted, status_code=202)
def bulk_logo(
    payload: BulkLogoRequest,
    _: None = Depends(verify_api_key),
):
    task = celery_app.send_task(
        "app.services.logo_overlay.run_bulk_logo_application",
        args=[
            str(payload.space_id),
            [str(p) for p in payload.post_ids],
            payload.randomize_logo,
            payload.randomize_primary,
        ],
        queue="generation",
    )
    return TaskAccepted(task_id=task.id, total=len(payload.post_ids))
