from datetime import datetime
from typing import Any, Dict
from uuid import UUID
import logging

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import get_db
from ..schemas.buyict import (
    ContactOut,
    CsvUploadRequest,
    MappingCreate,
    MappingOut,
    MappingUpdate,
    OpportunityOut,
    RunOut,
    ScrapeRequest,
    StatsOut,
    SyncJobsOut,
    UploadResult,
    WebhookResult,
)
from ..services import buyict_mapping, buyict_queries
from ..services.apify import KIND_BUYICT, start_buyict_scrape
from ..services.buyict_csv import parse_opportunities_csv
from ..services.buyict_ingest import import_opportunities, ingest_webhook_payload
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["buyict"])
logger = logging.getLogger(__name__)


@router.post("/buyict/webhook", response_model=WebhookResult)
def buyict_webhook(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    """Called by the scraper actor with a batch of opportunities."""
    with service_errors("buyict_webhook"):
        return ingest_webhook_payload(db, payload)


@router.post("/spaces/{space_id}/buyict/upload", response_model=UploadResult)
def upload_csv(
    space_id: UUID,
    payload: CsvUploadRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    parsed = parse_opportunities_csv(payload.csv)
    with service_errors("buyict_upload"):
        return import_opportunities(db, space_id, parsed, created_by=payload.created_by)


@router.post("/spaces/{space_id}/buyict/scrape", response_model=RunOut, status_code=202)
def scrape(
    space_id: UUID,
    payload: ScrapeRequest | None = None,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    payload = payload or ScrapeRequest()
    with service_errors("buyict_scrape"):
        run = start_buyict_scrape(
            db,
            space_id,
            incremental=payload.incremental,
            status=payload.status,
            max_opportunities=payload.max_opportunities,
        )
    task = celery_app.send_task(
        "app.services.apify.run_monitor_actor_run",
        args=[run["run_id"], str(space_id), KIND_BUYICT],
        queue="sync",
    )
    return RunOut(**run, task_id=task.id)


@router.get("/spaces/{space_id}/buyict/opportunities", response_model=list[OpportunityOut])
def opportunities(
    space_id: UUID,
    status: str | None = None,
    closing_from: datetime | None = Query(default=None, alias="closingFrom"),
    closing_to: datetime | None = Query(default=None, alias="closingTo"),
    search_term: str | None = Query(default=None, alias="searchTerm"),
    department: str | None = None,
    has_contacts: bool | None = Query(default=None, alias="hasContacts"),
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    filters = buyict_queries.OpportunityFilters(
        status=status,
        closing_from=closing_from,
        closing_to=closing_to,
        search_term=search_term,
        department=department,
        has_contacts=has_contacts,
    )
    return buyict_queries.list_opportunities(db, space_id, filters)


@router.get("/spaces/{space_id}/buyict/contacts", response_model=list[ContactOut])
def contacts(
    space_id: UUID,
    search: str | None = None,
    min_opportunities: int | None = Query(default=None, alias="minOpportunities", ge=1),
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return buyict_queries.list_contacts(db, space_id, search, min_opportunities)


@router.get("/spaces/{space_id}/buyict/stats", response_model=StatsOut)
def stats(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return buyict_queries.dashboard_stats(db, space_id)


@router.get("/spaces/{space_id}/buyict/sync-jobs", response_model=SyncJobsOut)
def sync_jobs(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return SyncJobsOut(
        jobs=buyict_queries.list_sync_jobs(db, space_id),
        isSyncing=buyict_queries.is_syncing(db, space_id),
    )


@router.get("/spaces/{space_id}/buyict/mappings", response_model=list[MappingOut])
def mappings(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return buyict_mapping.list_mappings(db, space_id)


@router.get("/spaces/{space_id}/buyict/mappings/unmapped", response_model=list[str])
def unmapped(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return buyict_mapping.unmapped_buyer_entities(db, space_id)


@router.post("/spaces/{space_id}/buyict/mappings", response_model=MappingOut, status_code=201)
def create_mapping(
    space_id: UUID,
    payload: MappingCreate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    data = payload.model_dump()
    data["match_type"] = payload.match_type.value
    with service_errors("buyict_mapping_create"):
        return buyict_mapping.create_mapping(db, space_id, **data)


@router.patch("/spaces/{space_id}/buyict/mappings/{mapping_id}", response_model=MappingOut)
def update_mapping(
    space_id: UUID,
    mapping_id: UUID,
    payload: MappingUpdate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("match_type") is not None:
        updates["match_type"] = payload.match_type.value
    with service_errors("buyict_mapping_update"):
        return buyict_mapping.update_mapping(db, space_id, mapping_id, updates)


@router.post("/spaces/{space_id}/buyict/mappings/{mapping_id}/approve", response_model=MappingOut)
def approve_mapping(
    space_id: UUID,
    mapping_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("buyict_mapping_approve"):
        return buyict_mapping.approve_mapping(db, space_id, mapping_id)


@router.delete("/spaces/{space_id}/buyict/mappings/{mapping_id}", status_code=204)
def delete_mapping(
    space_id: UUID,
    mapping_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("buyict_mapping_delete"):
        buyict_mapping.delete_mapping(db, space_id, mapping_id)
