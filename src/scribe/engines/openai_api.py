"""OpenAI-compatible chat completions engine.

Works with any OpenAI-compatible API (OpenAI, DeepSeek, Groq, local vLLM).
Reads OPENAI_API_KEY and, optionally, OPENAI_BASE_URL from the environment.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass

from scribe.engines.base import AgentResponse, EngineError

logger = logging.getLogger(__name__)


@dataclass
class OpenAIAPIEngine:
    """Chat completions via the `openai` SDK."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 1024
    temperature: float = 0.7

    def __post_init__(self) -> None:
        try:
            from openai import OpenAI
        except ImportError:
            raise ImportError("openai package required. Install with: pip install openai")
        self._client = OpenAI(base_url=os.getenv("OPENAI_BASE_URL") or None)

    @property
    def name(self) -> str:
        return "openai_api"

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": message})

        logger.debug("OpenAI request: model=%s, messages=%d", self.model, len(messages))
        try:
            response = await asyncio.to_thread(
                self._client.chat.completions.create,
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error("OpenAI API error: %s", e)
            raise EngineError(f"OpenAI API error: {e}") from e

        if not response.choices:
            raise EngineError("OpenAI API returned no choices")
        text = response.choices[0].message.content or ""
        if not text.strip():
            raise EngineError("OpenAI API returned an empty response")

        usage = response.usage
        return AgentResponse(
            text=text,
            model=response.model,
            input_tokens=usage.prompt_tokens if usage else None,
            output_tokens=usage.completion_tokens if usage else None,
        )

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._client.models.list)
            return True
        except Exception:
            return False
