from uuid import UUID
from urllib.parse import urlencode
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..core.celery_app import celery_app
from ..core.config import get_settings
from ..core.db import get_db
from ..models.sharepoint import SyncProgress
from ..schemas.sharepoint import (
    AuthorizeOut,
    ConnectionStatusOut,
    SourceCreate,
    SourceOut,
    SyncProgressOut,
    SyncRequest,
)
from ..services import sharepoint_browse
from ..services.connectors.graph import MicrosoftGraphConnector
from ..services.sharepoint_oauth import (
    DEFAULT_FRONTEND_REDIRECT,
    build_authorize_url,
    connection_status,
    disconnect,
    get_valid_access_token,
    handle_callback,
)
from ..services.sharepoint_sync import scan_folder, start_sync
from .deps import verify_api_key, service_errors

router = APIRouter(tags=["sharepoint"])
logger = logging.getLogger(__name__)


@router.get("/spaces/{space_id}/sharepoint/authorize", response_model=AuthorizeOut)
def authorize(
    space_id: UUID,
    redirect: str | None = Query(default=None),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_authorize"):
        return AuthorizeOut(authorize_url=build_authorize_url(str(space_id), redirect))


@router.get("/sharepoint/oauth/callback")
def oauth_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    db: Session = Depends(get_db),
):
    """Browser lands here from Microsoft; always answers with a redirect to the frontend."""
    frontend = get_settings().FRONTEND_URL.rstrip("/")
    failure = f"{frontend}{DEFAULT_FRONTEND_REDIRECT}"

    if error:
        query = urlencode({"sharepoint": "error", "message": error_description or error})
        return RedirectResponse(f"{failure}?{query}", status_code=302)
    try:
        target = handle_callback(db, code or "", state or "")
    except (ValueError, RuntimeError) as e:
        logger.warning("SharePoint callback failed: %s", e, extra={"connector": "microsoft_graph"})
        query = urlencode({"sharepoint": "error", "message": str(e)})
        return RedirectResponse(f"{failure}?{query}", status_code=302)
    return RedirectResponse(target, status_code=302)


@router.get("/spaces/{space_id}/sharepoint/status", response_model=ConnectionStatusOut)
def status(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return connection_status(db, space_id)


@router.delete("/spaces/{space_id}/sharepoint", status_code=204)
def remove_connection(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    disconnect(db, space_id)
    sharepoint_browse.clear_browse_cache(str(space_id))


@router.get("/spaces/{space_id}/sharepoint/sites")
def sites(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_sites"):
        return sharepoint_browse.list_sites(db, str(space_id))


@router.get("/spaces/{space_id}/sharepoint/sites/{site_id}/drives")
def drives(
    space_id: UUID,
    site_id: str,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_drives"):
        return sharepoint_browse.list_drives(db, str(space_id), site_id)


@router.get("/spaces/{space_id}/sharepoint/drives/{drive_id}/items")
def items(
    space_id: UUID,
    drive_id: str,
    folder_id: str | None = None,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_items"):
        return sharepoint_browse.list_items(db, str(space_id), drive_id, folder_id)


@router.get("/spaces/{space_id}/sharepoint/sources", response_model=list[SourceOut])
def sources(
    space_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    return sharepoint_browse.list_sources(db, str(space_id))


@router.post("/spaces/{space_id}/sharepoint/sources", response_model=SourceOut, status_code=201)
def add_source(
    space_id: UUID,
    payload: SourceCreate,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_add_source"):
        return sharepoint_browse.add_source(db, str(space_id), **payload.model_dump())


@router.delete("/spaces/{space_id}/sharepoint/sources/{source_id}", status_code=204)
def delete_source(
    space_id: UUID,
    source_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    if not sharepoint_browse.remove_source(db, str(space_id), str(source_id)):
        raise HTTPException(status_code=404, detail="Source not found")


@router.post("/spaces/{space_id}/sharepoint/scan")
def scan(
    space_id: UUID,
    payload: SyncRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    with service_errors("sharepoint_scan"), MicrosoftGraphConnector() as graph:
        token = get_valid_access_token(db, space_id, graph)
        return scan_folder(graph, token, payload.drive_id, payload.folder_id).as_dict()


@router.post("/spaces/{space_id}/sharepoint/sync", response_model=SyncProgressOut, status_code=202)
def sync(
    space_id: UUID,
    payload: SyncRequest,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    progress = start_sync(db, str(space_id), payload.site_id, payload.drive_id, payload.folder_id)
    celery_app.send_task(
        "app.services.sharepoint_sync.run_sharepoint_sync",
        args=[str(progress.id), payload.drive_id, payload.folder_id],
        queue="sync",
    )
    return progress


@router.get("/sharepoint/sync/{sync_id}", response_model=SyncProgressOut)
def sync_progress(
    sync_id: UUID,
    db: Session = Depends(get_db),
    _: None = Depends(verify_api_key),
):
    progress = db.query(SyncProgress).filter(SyncProgress.id == sync_id).first()
    if not progress:
        raise HTTPException(status_code=404, detail="Sync not found")
    return progress
