from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from contextlib import contextmanager
from threading import BoundedSemaphore
from typing import Any, Dict, List

from openai import OpenAI

from ..core.config import get_settings
from .llm_costs import cost_for_tokens

_llm_semaphore: BoundedSemaphore | None = None


def _get_semaphore() -> BoundedSemaphore:
    """
    Lazy-initialised global semaphore for limiting concurrent LLM calls.
    """
    global _llm_semaphore
    if _llm_semaphore is None:
        settings = get_settings()
        _llm_semaphore = BoundedSemaphore(settings.LLM_MAX_CONCURRENCY)
    return _llm_semaphore


@contextmanager
def limit_llm_concurrency():
    """
    Bound concurrent calls to the LLM provider.

        with limit_llm_concurrency():
            client.chat.completions.create(...)
    """
    sem = _get_semaphore()
    sem.acquire()
    try:
        yield
    finally:
        sem.release()


@lru_cache(maxsize=1)
def get_llm_client() -> OpenAI:
    """
    Shared OpenAI-compatible client.

    - If OPENROUTER_API_KEY is set, route requests via OpenRouter.
    - Otherwise, fall back to the standard OpenAI API using OPENAI_API_KEY.
    """
    settings = get_settings()

    if settings.OPENROUTER_API_KEY:
        return OpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=settings.OPENROUTER_API_KEY.strip(),
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:5173",
                "X-Title": "Spaces",
            },
        )

    if settings.OPENAI_API_KEY:
        return OpenAI(api_key=settings.OPENAI_API_KEY.strip())

    raise RuntimeError(
        "No LLM API key configured. Set either OPENAI_API_KEY or OPENROUTER_API_KEY."
    )


@dataclass
class Completion:
    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        return cost_for_tokens(self.model, self.input_tokens, self.output_tokens)

    def as_meta(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": round(self.cost_usd, 6),
        }


def chat_completion(
    messages: List[Dict[str, str]],
    *,
    max_tokens: int = 500,
    temperature: float = 0.7,
    model: str | None = None,
    client: Any = None,
    json_mode: bool = False,
) -> Completion:
    """
    Single chat completion call. No retry: callers decide what a failure means.

    `client` defaults to the shared process client; tests pass a fake with the
    same `chat.completions.create` surface.
    """
    settings = get_settings()
    llm = client or get_llm_client()
    model_name = model or settings.LLM_MODEL

    kwargs: Dict[str, Any] = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    with limit_llm_concurrency():
        response = llm.chat.completions.create(**kwargs)

    text = (response.choices[0].message.content or "").strip()
    usage = getattr(response, "usage", None)
    input_tokens = int(getattr(usage, "prompt_tokens", 0) or 0) if usage else 0
    output_tokens = int(getattr(usage, "completion_tokens", 0) or 0) if usage else 0

    return Completion(
        text=text,
        model=getattr(response, "model", None) or model_name,
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )
