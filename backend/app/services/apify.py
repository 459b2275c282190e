"""
Starting scraper actor runs and following them to completion.

The actors post their results back to our webhooks; the monitor task only
watches the run so a failed or stalled run is recorded.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import SessionLocal
from ..models.buyict import BuyICTIntegration, BuyICTOpportunity, ConnectionStatus
from .connectors.apify import ApifyClient, ApifyError

logger = logging.getLogger(__name__)

settings = get_settings()

BUYICT_WEBHOOK_PATH = "/buyict/webhook"
GOV_DIRECTORY_WEBHOOK_PATH = "/gov-directory/webhook"
DEFAULT_MAX_AGENCIES = 500
DEFAULT_MAX_OPPORTUNITIES = 200

KIND_BUYICT = "buyict"
KIND_GOV_DIRECTORY = "gov_directory"


def webhook_url(path: str) -> str:
    return f"{settings.PUBLIC_API_BASE_URL.rstrip('/')}{settings.API_PREFIX}{path}"


def _run_summary(run: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "run_id": run.get("id"),
        "status": run.get("status"),
        "started_at": run.get("startedAt"),
        "finished_at": run.get("finishedAt"),
    }


def start_buyict_scrape(
    db: Session,
    space_id: str | uuid.UUID,
    incremental: bool = False,
    status: str = "live",
    max_opportunities: int = DEFAULT_MAX_OPPORTUNITIES,
    client: Optional[ApifyClient] = None,
) -> Dict[str, Any]:
    """
    Launch the BuyICT scraper for a space. In incremental mode the actor is
    given the references already stored so it skips them.
    """
    space_uuid = uuid.UUID(str(space_id))
    run_input: Dict[str, Any] = {
        "webhookUrl": webhook_url(BUYICT_WEBHOOK_PATH),
        "spaceId": str(space_uuid),
        "maxOpportunities": max_opportunities,
        "status": status,
        "incrementalMode": incremental,
    }
    if incremental:
        run_input["existingReferences"] = [
            r[0]
            for r in db.query(BuyICTOpportunity.buyict_reference)
            .filter(BuyICTOpportunity.space_id == space_uuid)
            .all()
        ]

    apify = client or ApifyClient()
    try:
        run = apify.start_actor_run(settings.APIFY_BUYICT_ACTOR, run_input)
    finally:
        if client is None:
            apify.close()

    integration = db.query(BuyICTIntegration).filter(BuyICTIntegration.space_id == space_uuid).first()
    if integration:
        integration.connection_status = ConnectionStatus.SYNCING.value
        db.commit()

    logger.info(
        "BuyICT scrape started",
        extra={"space_id": str(space_uuid), "connector": "apify", "step": "buyict_start"},
    )
    return _run_summary(run)


def start_directory_scrape(
    space_id: str | uuid.UUID,
    max_agencies: int = DEFAULT_MAX_AGENCIES,
    client: Optional[ApifyClient] = None,
) -> Dict[str, Any]:
    run_input = {
        "webhookUrl": webhook_url(GOV_DIRECTORY_WEBHOOK_PATH),
        "spaceId": str(uuid.UUID(str(space_id))),
        "maxAgencies": max_agencies,
    }
    apify = client or ApifyClient()
    try:
        run = apify.start_actor_run(settings.APIFY_GOV_DIRECTORY_ACTOR, run_input)
    finally:
        if client is None:
            apify.close()
    logger.info(
        "Directory scrape started",
        extra={"space_id": str(space_id), "connector": "apify", "step": "gov_directory_start"},
    )
    return _run_summary(run)


def monitor_actor_run(
    db: Session,
    run_id: str,
    space_id: str | uuid.UUID,
    kind: str,
    client: Optional[ApifyClient] = None,
    sleep=None,
) -> Dict[str, Any]:
    """
    Wait for a run to finish. A BuyICT run that ends in anything but
    SUCCEEDED (or never ends) leaves the integration in ``error``.
    """
    client = client or ApifyClient()
    error: Optional[str] = None
    try:
        kwargs = {"sleep": sleep} if sleep else {}
        run = client.wait_for_run(run_id, **kwargs)
        if run.get("status") != "SUCCEEDED":
            error = f"Scraper run {run_id} ended with status {run.get('status')}"
    except ApifyError as e:
        run = {"id": run_id, "status": "UNKNOWN"}
        error = str(e)

    if error:
        logger.warning(error, extra={"space_id": str(space_id), "connector": "apify", "step": kind})

    if kind == KIND_BUYICT:
        integration = (
            db.query(BuyICTIntegration)
            .filter(BuyICTIntegration.space_id == uuid.UUID(str(space_id)))
            .first()
        )
        if integration:
            if error:
                integration.connection_status = ConnectionStatus.ERROR.value
                integration.last_sync_error = error
            elif integration.connection_status == ConnectionStatus.SYNCING.value:
                integration.connection_status = ConnectionStatus.CONNECTED.value
            integration.updated_at = datetime.utcnow()
            db.commit()

    return {**_run_summary(run), "error": error}


@celery_app.task(name="app.services.apify.run_monitor_actor_run", bind=True, queue="sync")
def run_monitor_actor_run(self, run_id: str, space_id: str, kind: str):
    db: Session = SessionLocal()
    client = ApifyClient()
    try:
        return monitor_actor_run(db, run_id, space_id, kind, client=client)
    finally:
        client.close()
        db.close()
