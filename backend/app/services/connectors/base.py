from __future__ import annotations

from typing import Any, Dict, Optional

import httpx


class ConnectorError(RuntimeError):
    """Non-retryable failure from a third-party API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BaseConnector:
    """
    Shared plumbing for the sync HTTP connectors.

    An `httpx.Client` may be injected (tests pass one backed by
    `httpx.MockTransport`); otherwise one is created per connector.
    `close()` (or leaving a `with` block) only closes a client the
    connector created itself.
    """

    name: str
    timeout: float = 30

    def __init__(self, client: Optional[httpx.Client] = None) -> None:
        self._client = client
        self._owns_client = False

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
            self._owns_client = True
        return self._client

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None
            self._owns_client = False

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "accept": "application/json"}

    @staticmethod
    def _error_text(resp: httpx.Response) -> str:
        try:
            body: Any = resp.json()
        except ValueError:
            return resp.text[:500]
        if isinstance(body, dict):
            err = body.get("error")
            if isinstance(err, dict):
                return str(err.get("message") or err)
            if err:
                return str(body.get("error_description") or err)
        return str(body)[:500]
