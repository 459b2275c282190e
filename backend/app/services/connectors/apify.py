from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx
from tenacity import retry, wait_exponential, stop_after_attempt, retry_if_exception_type

from .base import BaseConnector
from ...core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

TERMINAL_RUN_STATES = frozenset({"SUCCEEDED", "FAILED", "ABORTED", "TIMED-OUT"})


class ApifyError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApifyAuthError(ApifyError):
    pass


class ApifyActorNotFound(ApifyError):
    pass


class ApifyRunTimeout(ApifyError):
    pass


class ApifyClient(BaseConnector):
    """
    Minimal client for the Apify actor-run API.

    Starting a run is not retried (it would launch duplicate scrapes).
    Reading run status is.
    """

    name = "apify"
    timeout = 30

    def __init__(
        self,
        token: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
    ) -> None:
        super().__init__(client)
        self.token = token or settings.APIFY_API_TOKEN
        self.base_url = (base_url or settings.APIFY_BASE_URL).rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            raise RuntimeError("APIFY_API_TOKEN is not configured")
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "accept": "application/json",
        }

    def start_actor_run(self, actor: str, run_input: Dict[str, Any]) -> Dict[str, Any]:
        resp = self.client.post(
            f"{self.base_url}/acts/{actor}/runs",
            headers=self._headers(),
            json=run_input,
        )
        if resp.status_code == 401:
            raise ApifyAuthError("Invalid Apify API token", 401)
        if resp.status_code == 404:
            raise ApifyActorNotFound(f"Actor not found: {actor}", 404)
        if resp.status_code >= 400:
            raise ApifyError(f"Apify error ({resp.status_code}): {self._error_text(resp)}", resp.status_code)

        run = resp.json().get("data") or {}
        logger.info(
            "Apify run started",
            extra={"connector": self.name, "step": f"start:{actor}"},
        )
        return run

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    )
    def get_run(self, run_id: str) -> Dict[str, Any]:
        resp = self.client.get(f"{self.base_url}/actor-runs/{run_id}", headers=self._headers())
        resp.raise_for_status()
        return resp.json().get("data") or {}

    def wait_for_run(
        self,
        run_id: str,
        interval: Optional[float] = None,
        max_polls: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Dict[str, Any]:
        """
        Poll a run on a fixed interval until it reaches a terminal state.

        Raises ApifyRunTimeout once `max_polls` reads have not seen one.
        """
        interval = settings.APIFY_POLL_INTERVAL_SECONDS if interval is None else interval
        max_polls = settings.APIFY_MAX_POLLS if max_polls is None else max_polls

        for attempt in range(max_polls):
            run = self.get_run(run_id)
            if run.get("status") in TERMINAL_RUN_STATES:
                return run
            if attempt < max_polls - 1:
                sleep(interval)

        raise ApifyRunTimeout(f"Run {run_id} not finished after {max_polls} polls")
