from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

import openai
from openai import AsyncOpenAI

from ..core.config import Settings
from .errors import SynthesisProviderError

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    """LLM completion contract: one system + one user message in, text out."""

    name: str = "llm"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Return the completion text or raise SynthesisProviderError."""
        raise NotImplementedError


def build_llm_client(settings: Settings) -> AsyncOpenAI:
    """
    Factory for the OpenAI-compatible client.

    - If OPENROUTER_API_KEY is set, route requests via OpenRouter.
    - Otherwise, fall back to the standard OpenAI API using OPENAI_API_KEY.
    """
    if settings.OPENROUTER_API_KEY:
        return AsyncOpenAI(
            base_url="https://openrouter.ai/api/v1",
            api_key=settings.OPENROUTER_API_KEY.strip(),
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
            default_headers={
                "HTTP-Referer": settings.FRONTEND_ORIGIN or "http://localhost:3000",
                "X-Title": "Lead Intel",
            },
        )

    if settings.OPENAI_API_KEY:
        return AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY.strip(),
            timeout=settings.LLM_TIMEOUT_SECONDS,
            max_retries=0,
        )

    raise RuntimeError(
        "No LLM API key configured. Set either OPENAI_API_KEY or OPENROUTER_API_KEY."
    )


def map_provider_error(exc: Exception) -> SynthesisProviderError:
    """
    Translate an openai SDK exception into a stable SynthesisProviderError kind.

    402 and 429-with-insufficient_quota mean the account is out of credits;
    any other 429 is a rate limit.
    """
    if isinstance(exc, SynthesisProviderError):
        return exc
    if isinstance(exc, (openai.APITimeoutError, openai.APIConnectionError)):
        return SynthesisProviderError("transport", f"LLM provider unreachable: {exc}")
    if isinstance(exc, openai.APIStatusError):
        status = exc.status_code
        body = exc.body if isinstance(exc.body, dict) else {}
        code = str(getattr(exc, "code", None) or body.get("code") or "")
        if status == 402 or code == "insufficient_quota":
            return SynthesisProviderError(
                "quota_exhausted",
                "LLM credits exhausted. Please add credits to continue.",
                status,
            )
        if status == 429:
            return SynthesisProviderError(
                "rate_limited",
                "Rate limit exceeded. Please try again later.",
                status,
            )
        return SynthesisProviderError("provider_error", f"LLM provider error ({status})", status)
    return SynthesisProviderError("provider_error", f"LLM call failed: {exc}")


class OpenAICompletionProvider(CompletionProvider):
    name = "openai"

    def __init__(self, client: AsyncOpenAI, model: str, *, max_concurrency: int = 4) -> None:
        self._client = client
        self._model = model
        self._semaphore = asyncio.Semaphore(max(max_concurrency, 1))

    @asynccontextmanager
    async def limit_llm_concurrency(self) -> AsyncIterator[None]:
        """Bound concurrent calls to the LLM provider from this process."""
        async with self._semaphore:
            yield

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        async with self.limit_llm_concurrency():
            try:
                resp = await self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
            except openai.OpenAIError as e:
                err = map_provider_error(e)
                logger.error(
                    "LLM completion failed (%s): %s",
                    err.kind,
                    e,
                    extra={"connector": self.name, "step": "synthesis"},
                )
                raise err from e

        if not resp.choices:
            raise SynthesisProviderError("provider_error", "LLM returned no choices")
        return resp.choices[0].message.content or ""
