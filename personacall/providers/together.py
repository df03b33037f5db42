"""
TogetherAI Completion Provider

Text completion through the TogetherAI completions endpoint.
"""

import logging
from typing import List, Optional

import httpx

from ..config import TogetherConfig
from .base import (
    Completion,
    CompletionProvider,
    FailureKind,
    ProviderResult,
    failure_from_exception,
    failure_from_response,
)


logger = logging.getLogger(__name__)

DEFAULT_STOP = ["\nUser:", "\nHuman:", "<end>"]


class TogetherCompletionProvider(CompletionProvider):
    """TogetherAI completion provider."""

    name = "together"

    def __init__(self, config: Optional[TogetherConfig] = None):
        self.config = config or TogetherConfig.from_env()
        self._client: Optional[httpx.AsyncClient] = None
        if not self.config.api_key:
            logger.warning("TogetherAI API key is not set. API calls will fail.")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=httpx.Timeout(self.config.timeout),
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        stop: Optional[List[str]] = None,
    ) -> ProviderResult[Completion]:
        """Generate a completion for ``prompt``."""
        body = {
            "model": self.config.model,
            "prompt": prompt,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "stream": False,
            "stop": stop if stop is not None else DEFAULT_STOP,
        }

        try:
            client = await self._get_client()
            response = await client.post("/completions", json=body)
        except httpx.HTTPError as e:
            logger.error(f"TogetherAI completion failed: {e}")
            return failure_from_exception(self.name, e)

        if response.status_code != 200:
            logger.error(f"TogetherAI API error {response.status_code}: {response.text}")
            return failure_from_response(self.name, response)

        payload = response.json()
        choices = payload.get("choices") or []
        if not choices:
            return ProviderResult.fail(
                self.name,
                FailureKind.UNKNOWN,
                "TogetherAI returned no choices",
                raw_detail=payload,
            )

        choice = choices[0]
        return ProviderResult.ok(
            self.name,
            Completion(
                text=choice.get("text") or "",
                model=payload.get("model"),
                finish_reason=choice.get("finish_reason"),
            ),
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


__all__ = ["TogetherCompletionProvider", "DEFAULT_STOP"]
