"""Anthropic API engine — plain completions, no tools."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from scribe.engines.base import AgentResponse, EngineError

logger = logging.getLogger(__name__)


@dataclass
class AnthropicAPIEngine:
    """Direct Anthropic API via the `anthropic` SDK."""

    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = 1024

    def __post_init__(self) -> None:
        try:
            import anthropic

            self._client = anthropic.Anthropic()
        except ImportError:
            raise ImportError("anthropic package required. Install with: pip install anthropic")

    @property
    def name(self) -> str:
        return "anthropic_api"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        kwargs: dict = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": message}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await asyncio.to_thread(self._client.messages.create, **kwargs)
        except Exception as e:
            logger.error("Anthropic API error: %s", e)
            raise EngineError(f"Anthropic API error: {e}") from e

        text = "".join(
            getattr(block, "text", "") for block in (response.content or [])
        )
        if not text.strip():
            raise EngineError("Anthropic API returned an empty response")

        cost = None
        input_tokens = output_tokens = None
        if response.usage:
            input_tokens = response.usage.input_tokens
            output_tokens = response.usage.output_tokens
            # Approximate cost (Sonnet pricing)
            cost = (input_tokens * 3 + output_tokens * 15) / 1e6

        return AgentResponse(
            text=text,
            cost_usd=cost,
            model=response.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )

    async def health_check(self) -> bool:
        try:
            response = await asyncio.to_thread(
                self._client.messages.create,
                model=self.model,
                max_tokens=10,
                messages=[{"role": "user", "content": "ping"}],
            )
            return bool(response.content)
        except Exception:
            return False
