from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List

from ..core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelRate:
    input_per_mtok: float
    output_per_mtok: float


# USD per 1M tokens.
DEFAULT_PRICEBOOK: Dict[str, ModelRate] = {
    "gpt-4o-mini": ModelRate(0.150, 0.600),
    "gpt-4o": ModelRate(2.500, 10.000),
    "gpt-4.1-mini": ModelRate(0.400, 1.600),
}


def _load_pricebook() -> Dict[str, ModelRate]:
    """
    Default rates, overlaid with LLM_PRICEBOOK_JSON when set:

        {"gpt-4o-mini": {"input_per_mtok": 0.15, "output_per_mtok": 0.6}}

    Malformed overrides are ignored entry by entry.
    """
    pricebook = dict(DEFAULT_PRICEBOOK)
    raw = get_settings().LLM_PRICEBOOK_JSON
    if not raw:
        return pricebook
    try:
        override = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("LLM_PRICEBOOK_JSON is not valid JSON; using default rates")
        return pricebook
    if not isinstance(override, dict):
        return pricebook

    for key, value in override.items():
        try:
            pricebook[key.strip().lower()] = ModelRate(
                float(value["input_per_mtok"]),
                float(value["output_per_mtok"]),
            )
        except (KeyError, ValueError, TypeError):
            continue
    return pricebook


_PRICEBOOK: Dict[str, ModelRate] = _load_pricebook()


def normalize_model_name(model: str | None) -> str:
    """`openai/gpt-4o-mini:free` -> `gpt-4o-mini` (OpenRouter ids carry a vendor prefix)."""
    m = (model or "").strip().lower()
    if "/" in m:
        m = m.split("/")[-1]
    if ":" in m:
        m = m.split(":")[0]
    return m


def cost_for_tokens(model: str | None, input_tokens: int, output_tokens: int) -> float:
    rate = _PRICEBOOK.get(normalize_model_name(model))
    if not rate:
        return 0.0
    return (
        max(0, int(input_tokens)) / 1_000_000 * rate.input_per_mtok
        + max(0, int(output_tokens)) / 1_000_000 * rate.output_per_mtok
    )


def estimate_tokens_for_bytes(size_bytes: int) -> int:
    """Rough token estimate for a document of the given size (~4 bytes/token)."""
    return max(0, int(size_bytes)) // 4


class LLMCostTracker:
    """Accumulates token usage for one unit of work (a sync, a campaign run)."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._lock = threading.Lock()
        self._records: List[Dict[str, Any]] = []

    def add_record(
        self,
        model: str | None,
        kind: str,
        *,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        record = {
            "model": model or "",
            "kind": kind,
            "input_tokens": int(input_tokens or 0),
            "output_tokens": int(output_tokens or 0),
            "cost_usd": cost_for_tokens(model, input_tokens, output_tokens),
        }
        with self._lock:
            self._records.append(record)

    @property
    def total_tokens(self) -> int:
        with self._lock:
            return sum(r["input_tokens"] + r["output_tokens"] for r in self._records)

    @property
    def total_cost_usd(self) -> float:
        with self._lock:
            return sum(r["cost_usd"] for r in self._records)
