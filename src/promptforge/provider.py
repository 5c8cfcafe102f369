"""OpenAI-backed generation provider.

A single ``OpenAIProvider`` is built at process start (server lifespan or
worker CLI) and shared by every worker invocation.  It holds only the client
and its configuration.

The provider makes exactly one attempt per call (``max_retries=0``): the
workers decide what to do on failure, and their policy is a fallback text,
not a retry.
"""

from __future__ import annotations

import asyncio
import logging

from openai import AsyncOpenAI, OpenAIError

from promptforge.errors import ProviderError
from promptforge.interfaces import GenerationProvider
from promptforge.models.generation import ChatMessage

logger = logging.getLogger(__name__)


class OpenAIProvider(GenerationProvider):
    """Chat-completions provider over ``openai.AsyncOpenAI``.

    Args:
        api_key: OpenAI (or compatible) API key
        model: model name sent with every request
        base_url: optional endpoint for OpenAI-compatible gateways
        timeout: per-request timeout in seconds
        temperature: sampling temperature
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        timeout: float = 60.0,
        temperature: float = 0.7,
    ) -> None:
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )
        self.model = model
        self.temperature = temperature

    async def complete(self, messages: list[ChatMessage]) -> str:
        """Send the chat turns and return the first choice's text."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[m.model_dump() for m in messages],
                temperature=self.temperature,
            )
        except (OpenAIError, asyncio.TimeoutError) as exc:
            logger.warning(
                "Provider call failed (%s): %s", exc.__class__.__name__, exc,
            )
            raise ProviderError(f"Generation request failed: {exc}") from exc

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        await self.client.close()
