"""
Shared test doubles and sample data.

Fake LLM / storage clients mirror the surface the services call, so tests
never reach OpenAI, Gemini, S3 or the network.
"""
import io
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

from PIL import Image


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

def completion_response(content: str, prompt_tokens: int = 120, completion_tokens: int = 80):
    """Object shaped like an OpenAI chat completion response."""
    return SimpleNamespace(
        model="gpt-4o-mini",
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


class FakeLLM:
    """
    Stand-in for the OpenAI client. `responder` receives the call kwargs and
    returns the text, or raises to simulate a failed completion.
    """

    def __init__(self, responder: Callable[[Dict], str]):
        self.calls: List[Dict] = []
        self._responder = responder
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        return completion_response(self._responder(kwargs))


def user_prompt(call: Dict) -> str:
    return next(m["content"] for m in call["messages"] if m["role"] == "user")


# ---------------------------------------------------------------------------
# Storage / images
# ---------------------------------------------------------------------------

@dataclass
class FakeStorage:
    files: Dict[str, bytes] = field(default_factory=dict)

    def upload(self, path: str, data: bytes, content_type: str) -> str:
        self.files[path] = data
        return path

    def download(self, path: str) -> bytes:
        if path not in self.files:
            raise KeyError(path)
        return self.files[path]

    def public_url(self, path: str) -> str:
        return f"https://cdn.test/{path}"


def png_bytes(width: int = 200, height: int = 100, color=(30, 90, 160, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", (width, height), color).save(buf, format="PNG")
    return buf.getvalue()


def fake_logo_fetcher(urls_seen: Optional[List[str]] = None):
    def fetch(url: str) -> bytes:
        if urls_seen is not None:
            urls_seen.append(url)
        return png_bytes(400, 200, (255, 255, 255, 255))
    return fetch


# ---------------------------------------------------------------------------
# BuyICT samples
# ---------------------------------------------------------------------------

SAMPLE_CSV = """ATM ID,Opportunity Title,Agency,Contact Officer,Closing Date,Status,Description
ATM-001,Cloud migration services,Department of Finance,Jane Smith <jane.smith@finance.gov.au>,15/03/2025,Open,Migrate workloads to cloud.
ATM-002,Data platform uplift,Services Australia,,2025-04-01,,Enquiries to procurement officer data.team@servicesaustralia.gov.au
,Missing reference row,Department of Health,,,,
ATM-004,,Department of Health,,,,
ATM-005,Help desk support,Department of Finance,noreply@finance.gov.au,1 May 2025,Closed,
"""

WEBHOOK_OPPORTUNITY = {
    "buyict_reference": "PRI-1001",
    "buyict_url": "https://www.buyict.gov.au/sp?id=opportunity&ref=PRI-1001",
    "title": "Senior Business Analyst",
    "buyer_entity_raw": "Australian Taxation Office",
    "category": "Digital Marketplace",
    "closing_date": "2025-06-30T14:00:00Z",
    "publish_date": "02/06/2025",
    "buyer_contact": "Alex Chen alex.chen@ato.gov.au",
    "requirements": "Work with stakeholders. Questions to test.person@test.gov.au",
    "location": "Canberra",
    "working_arrangement": "Hybrid",
    "criteria": ["Stakeholder engagement", "Process mapping"],
}
