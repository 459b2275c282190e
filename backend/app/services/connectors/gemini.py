from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .base import BaseConnector, ConnectorError
from ...core.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


@dataclass
class GeneratedImage:
    data: bytes
    mime_type: str


class GeminiImageConnector(BaseConnector):
    """
    Gemini `generateContent` with image output.

    Not retried: every call is billed and a retry would double the spend on
    a partial failure.
    """

    name = "gemini"

    def __init__(self, client: Optional[httpx.Client] = None, api_key: Optional[str] = None) -> None:
        super().__init__(client)
        self.timeout = settings.GEMINI_TIMEOUT_SECONDS
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = settings.GEMINI_IMAGE_MODEL
        self.base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    def _headers(self):
        if not self.api_key:
            raise RuntimeError("GEMINI_API_KEY is not configured")
        return {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

    def generate(self, prompt: str) -> GeneratedImage:
        payload = {
            "contents": [
                {"parts": [{"text": f"Generate a professional image for LinkedIn/social media. {prompt}"}]}
            ],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }
        resp = self.client.post(
            f"{self.base_url}/{self.model}:generateContent",
            headers=self._headers(),
            json=payload,
        )
        if resp.status_code >= 400:
            raise ConnectorError(f"Gemini API error: {self._error_text(resp)}", resp.status_code)

        data = resp.json()
        parts = (((data.get("candidates") or [{}])[0].get("content") or {}).get("parts")) or []
        for part in parts:
            inline = part.get("inlineData") or {}
            mime = inline.get("mimeType") or ""
            if mime.startswith("image/") and inline.get("data"):
                return GeneratedImage(data=base64.b64decode(inline["data"]), mime_type=mime)

        raise ConnectorError("No image data in response")
