from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception

from .base import BaseConnector, ConnectorError
from ...core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

MICROSOFT_AUTH_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/authorize"
MICROSOFT_TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

SCOPES = " ".join(["offline_access", "Sites.Read.All", "Files.Read.All", "User.Read"])


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


_read_retry = retry(
    wait=wait_exponential(multiplier=1, min=1, max=10),
    stop=stop_after_attempt(3),
    retry=retry_if_exception(_is_transient),
    reraise=True,
)


class MicrosoftGraphConnector(BaseConnector):
    """
    Microsoft identity platform token calls plus the Graph drive endpoints.

    Token calls are single-shot; listing calls are idempotent reads and are
    retried on transport errors and 5xx.
    """

    name = "microsoft_graph"

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        super().__init__(client)
        self.timeout = settings.GRAPH_TIMEOUT_SECONDS
        self.client_id = settings.MICROSOFT_CLIENT_ID
        self.client_secret = settings.MICROSOFT_CLIENT_SECRET
        self.redirect_uri = settings.MICROSOFT_REDIRECT_URI or (
            f"{settings.PUBLIC_API_BASE_URL.rstrip('/')}{settings.API_PREFIX}/sharepoint/oauth/callback"
        )

    def _require_app_credentials(self) -> None:
        if not self.client_id or not self.client_secret:
            raise RuntimeError(
                "Microsoft OAuth not configured. Set MICROSOFT_CLIENT_ID and MICROSOFT_CLIENT_SECRET."
            )

    # -- identity platform ----------------------------------------------------

    def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        self._require_app_credentials()
        resp = self.client.post(
            MICROSOFT_TOKEN_URL,
            data={"client_id": self.client_id, "client_secret": self.client_secret, "scope": SCOPES, **form},
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if resp.status_code >= 400:
            raise ConnectorError(self._error_text(resp), resp.status_code)
        return resp.json()

    def exchange_code(self, code: str) -> Dict[str, Any]:
        return self._token_request(
            {"code": code, "redirect_uri": self.redirect_uri, "grant_type": "authorization_code"}
        )

    def refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        return self._token_request({"refresh_token": refresh_token, "grant_type": "refresh_token"})

    # -- graph ------------------------------------------------------------------

    def _get(self, access_token: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = endpoint if endpoint.startswith("http") else f"{GRAPH_BASE_URL}{endpoint}"
        resp = self.client.get(url, headers={"Authorization": f"Bearer {access_token}"}, params=params)
        resp.raise_for_status()
        return resp.json()

    def get_me(self, access_token: str) -> Dict[str, Any]:
        return self._get(access_token, "/me")

    @_read_retry
    def list_sites(self, access_token: str) -> List[Dict[str, Any]]:
        data = self._get(access_token, "/sites", params={"search": "*"})
        return data.get("value") or []

    @_read_retry
    def list_drives(self, access_token: str, site_id: str) -> List[Dict[str, Any]]:
        data = self._get(access_token, f"/sites/{site_id}/drives")
        return data.get("value") or []

    @_read_retry
    def list_children(self, access_token: str, drive_id: str, folder_id: Optional[str] = None) -> List[Dict[str, Any]]:
        if folder_id:
            endpoint = f"/drives/{drive_id}/items/{folder_id}/children"
        else:
            endpoint = f"/drives/{drive_id}/root/children"
        items: List[Dict[str, Any]] = []
        data = self._get(access_token, endpoint)
        items.extend(data.get("value") or [])
        next_link = data.get("@odata.nextLink")
        while next_link:
            data = self._get(access_token, next_link)
            items.extend(data.get("value") or [])
            next_link = data.get("@odata.nextLink")
        return items

    @_read_retry
    def download_item(self, access_token: str, drive_id: str, item_id: str) -> bytes:
        resp = self.client.get(
            f"{GRAPH_BASE_URL}/drives/{drive_id}/items/{item_id}/content",
            headers={"Authorization": f"Bearer {access_token}"},
            follow_redirects=True,
        )
        resp.raise_for_status()
        return resp.content
