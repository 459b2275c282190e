from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.sharepoint import SharePointConnection, SharePointSource
from .caching import cached_get, invalidate
from .connectors.graph import MicrosoftGraphConnector
from .sharepoint_oauth import get_valid_access_token

BROWSE_CACHE_TTL = 300


def _cache_key(space_id: str, *parts: Optional[str]) -> str:
    return "sharepoint:browse:" + ":".join([str(space_id), *[p or "-" for p in parts]])


def list_sites(db: Session, space_id: str, graph: Optional[MicrosoftGraphConnector] = None) -> List[Dict[str, Any]]:
    key = _cache_key(space_id, "sites")
    cached = cached_get(key)
    if cached is not None:
        return cached

    graph = graph or MicrosoftGraphConnector()
    token = get_valid_access_token(db, space_id, graph)
    sites = [
        {"id": s["id"], "name": s.get("displayName") or s.get("name"), "url": s.get("webUrl")}
        for s in graph.list_sites(token)
    ]
    cached_get(key, set_value=sites, ttl=BROWSE_CACHE_TTL)
    return sites


def list_drives(db: Session, space_id: str, site_id: str, graph: Optional[MicrosoftGraphConnector] = None) -> List[Dict[str, Any]]:
    if not site_id:
        raise ValueError("site_id required")
    key = _cache_key(space_id, "drives", site_id)
    cached = cached_get(key)
    if cached is not None:
        return cached

    graph = graph or MicrosoftGraphConnector()
    token = get_valid_access_token(db, space_id, graph)
    drives = [
        {"id": d["id"], "name": d.get("name"), "type": d.get("driveType")}
        for d in graph.list_drives(token, site_id)
    ]
    cached_get(key, set_value=drives, ttl=BROWSE_CACHE_TTL)
    return drives


def to_item(item: Dict[str, Any]) -> Dict[str, Any]:
    folder = item.get("folder")
    return {
        "id": item["id"],
        "name": item.get("name"),
        "is_folder": folder is not None,
        "child_count": folder.get("childCount") if folder else None,
        "mime_type": (item.get("file") or {}).get("mimeType"),
        "size": item.get("size"),
        "modified_at": item.get("lastModifiedDateTime"),
    }


def list_items(
    db: Session,
    space_id: str,
    drive_id: str,
    folder_id: Optional[str] = None,
    graph: Optional[MicrosoftGraphConnector] = None,
) -> List[Dict[str, Any]]:
    if not drive_id:
        raise ValueError("drive_id required")
    key = _cache_key(space_id, "items", drive_id, folder_id)
    cached = cached_get(key)
    if cached is not None:
        return cached

    graph = graph or MicrosoftGraphConnector()
    token = get_valid_access_token(db, space_id, graph)
    items = [to_item(i) for i in graph.list_children(token, drive_id, folder_id)]
    cached_get(key, set_value=items, ttl=BROWSE_CACHE_TTL)
    return items


def clear_browse_cache(space_id: str) -> int:
    return invalidate(f"sharepoint:browse:{space_id}:")


def add_source(
    db: Session,
    space_id: str,
    site_id: str,
    drive_id: str,
    folder_id: Optional[str] = None,
    site_name: Optional[str] = None,
    drive_name: Optional[str] = None,
    folder_path: Optional[str] = None,
    folder_name: Optional[str] = None,
) -> SharePointSource:
    if not site_id or not drive_id:
        raise ValueError("site_id and drive_id required")
    space_uuid = uuid.UUID(str(space_id))
    conn = db.query(SharePointConnection).filter(SharePointConnection.space_id == space_uuid).first()
    if not conn:
        raise ValueError("No connection found")

    source = SharePointSource(
        space_id=space_uuid,
        connection_id=conn.id,
        site_id=site_id,
        site_name=site_name,
        drive_id=drive_id,
        drive_name=drive_name,
        folder_id=folder_id,
        folder_path=folder_path or "/",
        folder_name=folder_name or "Root",
    )
    db.add(source)
    db.commit()
    db.refresh(source)
    return source


def list_sources(db: Session, space_id: str) -> List[SharePointSource]:
    return (
        db.query(SharePointSource)
        .filter(SharePointSource.space_id == uuid.UUID(str(space_id)))
        .order_by(SharePointSource.created_at.desc())
        .all()
    )


def remove_source(db: Session, space_id: str, source_id: str) -> bool:
    deleted = (
        db.query(SharePointSource)
        .filter(
            SharePointSource.id == uuid.UUID(str(source_id)),
            SharePointSource.space_id == uuid.UUID(str(space_id)),
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)
