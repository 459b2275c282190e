from typing import Any, Dict
from uuid import UUID

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.db import get_db
from ..schemas.buyict import RunOut
from ..schemas.gov_directory import (
    AgencyOut,
    AgencyPersonOut,
    DirectoryResult,
    DirectoryScrapeRequest,
    PeopleResult,
)
from ..services.apify import KIND_GOV_DIRECTORY, start_directory_scrape
from ..services.gov_directory import (
    get_agency,
    ingest_directory_payload,
    ingest_people_payload,
    list_agencies,
    list_people,
)
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["gov-directory"])


@router.post("/gov-directory/webhook", response_model=DirectoryResult)
def directory_webhook(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    with service_errors("gov_directory_webhook"):
        return ingest_directory_payload(db, payload)


@router.post("/gov-directory/people/webhook", response_model=PeopleResult)
def people_webhook(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    with service_errors("gov_people_webhook"):
        return ingest_people_payload(db, payload)


@router.post("/spaces/{space_id}/gov-directory/scrape", response_model=RunOut, status_code=202)
def scrape_directory(
    space_id: UUID,
    payload: DirectoryScrapeRequest | None = None,
    _: None = Depends(verify_api_key),
):
    payload = payload or DirectoryScrapeRequest()
    with service_errors("gov_directory_scrape"):
        run = start_directory_scrape(space_id, max_agencies=payload.max_agencies)
    task = celery_app.send_task(
        "app.services.apify.run_monitor_actor_run",
        args=[run["run_id"], str(space_id), KIND_GOV_DIRECTORY],
        queue="sync",
    )
    return RunOut(**run, task_id=task.id)


@router.get("/spaces/{space_id}/gov-directory/agencies", response_model=list[AgencyOut])
def agencies(
    space_id: UUID,
    search: str | None = None,
    portfolio: str | None = None,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return list_agencies(db, space_id, search, portfolio)


@router.get("/spaces/{space_id}/gov-directory/agencies/{agency_id}", response_model=AgencyOut)
def agency(
    space_id: UUID,
    agency_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("gov_directory_agency"):
        return get_agency(db, space_id, agency_id)


@router.get("/spaces/{space_id}/gov-directory/agencies/{agency_id}/people", response_model=list[AgencyPersonOut])
def agency_people(
    space_id: UUID,
    agency_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("gov_directory_people"):
        return list_people(db, space_id, agency_id)
