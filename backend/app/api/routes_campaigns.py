from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import get_db
from ..models.campaign import Campaign, CampaignStatus
from ..models.post import Post
from ..schemas.campaigns import (
    CampaignCreate,
    CampaignOut,
    GeneratePostsRequest,
    GenerateIdeasRequest,
    GenerationAccepted,
    IdeasOut,
    PostOut,
)
from ..services.ideas import generate_campaign_ideas
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["campaigns"])
logger = logging.getLogger(__name__)


def _get_campaign(db: Session, campaign_id: UUID) -> Campaign:
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@router.post("/campaigns", response_model=CampaignOut, status_code=201)
def create_campaign(
    payload: CampaignCreate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    campaign = Campaign(**payload.model_dump(), status=CampaignStatus.DRAFT)
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


@router.get("/campaigns/{campaign_id}", response_model=CampaignOut)
def get_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return _get_campaign(db, campaign_id)


@router.post("/campaigns/{campaign_id}/generate-posts", response_model=GenerationAccepted, status_code=202)
def generate_posts(
    campaign_id: UUID,
    payload: GeneratePostsRequest | None = None,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    campaign = _get_campaign(db, campaign_id)
    if campaign.status == CampaignStatus.RUNNING:
        raise HTTPException(status_code=409, detail="Generation already running")

    count = payload.count if payload else None
    task = celery_app.send_task(
        "app.services.campaign_posts.run_campaign_generation",
        args=[str(campaign.id), count],
        queue="generation",
    )
    logger.info(
        "Campaign generation dispatched",
        extra={"campaign_id": str(campaign.id), "space_id": str(campaign.space_id), "step": "dispatch"},
    )
    return GenerationAccepted(campaign_id=campaign.id, status=campaign.status, task_id=task.id)


@router.post("/campaigns/{campaign_id}/generate-ideas", response_model=IdeasOut)
def generate_ideas(
    campaign_id: UUID,
    payload: GenerateIdeasRequest | None = None,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("generate_ideas"):
        ideas = generate_campaign_ideas(db, campaign_id, payload.count if payload else None)
    return IdeasOut(campaign_id=campaign_id, ideas=ideas)


@router.get("/campaigns/{campaign_id}/posts", response_model=list[PostOut])
def list_campaign_posts(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    _get_campaign(db, campaign_id)
    return (
        db.query(Post)
        .filter(Post.campaign_id == campaign_id)
        .order_by(Post.sequence_number.asc(), Post.created_at.asc())
        .all()
    )
