from __future__ import annotations

import base64
import binascii
import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ..core.config import get_settings
from ..models.sharepoint import SharePointConnection, SharePointSource, SharePointStatus
from .connectors.base import ConnectorError
from .connectors.graph import MICROSOFT_AUTH_URL, SCOPES, MicrosoftGraphConnector

logger = logging.getLogger(__name__)

DEFAULT_FRONTEND_REDIRECT = "/brand-studio"
# Refresh a little before the provider's expiry
EXPIRY_SKEW = timedelta(seconds=60)


class TokenRefreshError(RuntimeError):
    pass


class SharePointNotConnected(LookupError):
    pass


def encode_state(space_id: str, frontend_redirect: Optional[str]) -> str:
    payload = {"space_id": str(space_id), "frontend_redirect": frontend_redirect or DEFAULT_FRONTEND_REDIRECT}
    return base64.urlsafe_b64encode(json.dumps(payload).encode()).decode()


def decode_state(state: str) -> Dict[str, str]:
    try:
        padded = state + "=" * (-len(state) % 4)
        data = json.loads(base64.urlsafe_b64decode(padded.encode()).decode())
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise ValueError("Invalid state") from e
    if not isinstance(data, dict) or not data.get("space_id"):
        raise ValueError("Invalid state")
    return data


def build_authorize_url(
    space_id: str,
    frontend_redirect: Optional[str] = None,
    graph: Optional[MicrosoftGraphConnector] = None,
) -> str:
    graph = graph or MicrosoftGraphConnector()
    graph._require_app_credentials()
    params = {
        "client_id": graph.client_id,
        "response_type": "code",
        "redirect_uri": graph.redirect_uri,
        "scope": SCOPES,
        "state": encode_state(space_id, frontend_redirect),
        "response_mode": "query",
    }
    return f"{MICROSOFT_AUTH_URL}?{urlencode(params)}"


def _expiry(tokens: Dict[str, Any]) -> datetime:
    return datetime.utcnow() + timedelta(seconds=int(tokens.get("expires_in") or 3600))


def handle_callback(
    db: Session,
    code: str,
    state: str,
    graph: Optional[MicrosoftGraphConnector] = None,
) -> str:
    """
    Finish the authorisation-code flow and store the connection.

    Returns the frontend URL to redirect the browser to.
    """
    if not code or not state:
        raise ValueError("Missing code or state")
    state_data = decode_state(state)
    space_uuid = uuid.UUID(state_data["space_id"])
    graph = graph or MicrosoftGraphConnector()

    try:
        tokens = graph.exchange_code(code)
    except (ConnectorError, httpx.HTTPError) as e:
        raise ValueError(f"Token exchange failed: {e}") from e

    user_email = None
    try:
        me = graph.get_me(tokens["access_token"])
        user_email = me.get("mail") or me.get("userPrincipalName")
    except httpx.HTTPError as e:
        logger.warning("Could not read Microsoft profile: %s", e, extra={"space_id": str(space_uuid), "connector": "microsoft_graph"})

    conn = db.query(SharePointConnection).filter(SharePointConnection.space_id == space_uuid).first()
    if not conn:
        conn = SharePointConnection(space_id=space_uuid)
        db.add(conn)
    conn.access_token = tokens["access_token"]
    conn.refresh_token = tokens.get("refresh_token")
    conn.token_expires_at = _expiry(tokens)
    conn.user_email = user_email
    conn.status = SharePointStatus.CONNECTED.value
    conn.last_error = None
    conn.connected_at = datetime.utcnow()
    db.commit()

    logger.info("SharePoint connected", extra={"space_id": str(space_uuid), "connector": "microsoft_graph"})
    frontend = get_settings().FRONTEND_URL.rstrip("/")
    return f"{frontend}{state_data.get('frontend_redirect') or DEFAULT_FRONTEND_REDIRECT}?sharepoint=connected"


def _get_connection(db: Session, space_id: str | uuid.UUID) -> SharePointConnection:
    conn = (
        db.query(SharePointConnection)
        .filter(SharePointConnection.space_id == uuid.UUID(str(space_id)))
        .first()
    )
    if not conn:
        raise SharePointNotConnected("SharePoint not connected")
    return conn


def refresh_connection(
    db: Session,
    space_id: str | uuid.UUID,
    graph: Optional[MicrosoftGraphConnector] = None,
) -> SharePointConnection:
    """
    Exchange the stored refresh token for a new access token.

    One attempt only. On failure the connection is marked `expired` so the
    user is asked to reconnect, and TokenRefreshError is raised.
    """
    conn = _get_connection(db, space_id)
    if not conn.refresh_token:
        raise ValueError("No refresh token found")
    graph = graph or MicrosoftGraphConnector()

    try:
        tokens = graph.refresh_token(conn.refresh_token)
        if not tokens.get("access_token"):
            raise ConnectorError("No access token in refresh response")
    except (ConnectorError, httpx.HTTPError) as e:
        conn.status = SharePointStatus.EXPIRED.value
        conn.last_error = "Token refresh failed"
        db.commit()
        logger.warning(
            "SharePoint token refresh failed: %s", e,
            extra={"space_id": str(conn.space_id), "connector": "microsoft_graph"},
        )
        raise TokenRefreshError("Token refresh failed") from e

    conn.access_token = tokens["access_token"]
    conn.refresh_token = tokens.get("refresh_token") or conn.refresh_token
    conn.token_expires_at = _expiry(tokens)
    conn.status = SharePointStatus.CONNECTED.value
    conn.last_error = None
    db.commit()
    return conn


def get_valid_access_token(
    db: Session,
    space_id: str | uuid.UUID,
    graph: Optional[MicrosoftGraphConnector] = None,
) -> str:
    conn = _get_connection(db, space_id)
    if conn.status != SharePointStatus.CONNECTED.value:
        raise SharePointNotConnected("SharePoint not connected")
    if not conn.token_expires_at or conn.token_expires_at - EXPIRY_SKEW < datetime.utcnow():
        conn = refresh_connection(db, space_id, graph)
    return conn.access_token


def connection_status(db: Session, space_id: str | uuid.UUID) -> Dict[str, Any]:
    conn = (
        db.query(SharePointConnection)
        .filter(SharePointConnection.space_id == uuid.UUID(str(space_id)))
        .first()
    )
    return {
        "connected": bool(conn and conn.status == SharePointStatus.CONNECTED.value),
        "status": conn.status if conn else None,
        "user_email": conn.user_email if conn else None,
        "connected_at": conn.connected_at if conn else None,
        "expires_at": conn.token_expires_at if conn else None,
        "last_error": conn.last_error if conn else None,
    }


def disconnect(db: Session, space_id: str | uuid.UUID) -> None:
    space_uuid = uuid.UUID(str(space_id))
    db.query(SharePointSource).filter(SharePointSource.space_id == space_uuid).delete(synchronize_session=False)
    db.query(SharePointConnection).filter(SharePointConnection.space_id == space_uuid).delete(synchronize_session=False)
    db.commit()
    logger.info("SharePoint disconnected", extra={"space_id": str(space_uuid), "connector": "microsoft_graph"})
