"""Generative backend — the single `generate(prompt) -> text` capability.

Built once at process start and injected into the enhancement service,
the batch trigger and the refresh worker. Wraps a primary engine with an
explicit timeout and an optional fallback engine.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from scribe.engines.base import EngineError, EngineTimeout

if TYPE_CHECKING:
    from scribe.config import EngineConfig
    from scribe.engines.base import Engine

logger = logging.getLogger(__name__)


class GenerativeBackend:
    """Timeout- and fallback-aware front for one or two engines."""

    def __init__(
        self,
        engine: Engine,
        *,
        fallback: Engine | None = None,
        timeout: float | None = 60,
    ) -> None:
        self.engine = engine
        self.fallback = fallback
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.engine.name

    async def generate(self, prompt: str) -> str:
        """Return the engine's text for `prompt`. Raises EngineError."""
        try:
            return await self._call(self.engine, prompt)
        except EngineError as e:
            if self.fallback is None:
                raise
            logger.warning(
                "Primary engine %s failed (%s), trying fallback: %s",
                self.engine.name,
                e,
                self.fallback.name,
            )
            return await self._call(self.fallback, prompt)

    async def _call(self, engine: Engine, prompt: str) -> str:
        try:
            response = await asyncio.wait_for(engine.send(prompt), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EngineTimeout(f"{engine.name} did not respond within {self.timeout}s") from e
        text = response.text or ""
        if not text.strip():
            raise EngineError(f"{engine.name} returned an empty response")
        return text

    async def health_check(self) -> bool:
        return await self.engine.health_check()


def build_engine(name: str, *, model: str | None = None, max_tokens: int = 1024) -> Engine:
    """Instantiate the engine registered under `name`."""
    kwargs: dict = {"max_tokens": max_tokens}
    if model:
        kwargs["model"] = model
    if name == "anthropic_api":
        from scribe.engines.anthropic_api import AnthropicAPIEngine

        return AnthropicAPIEngine(**kwargs)
    if name == "openai_api":
        from scribe.engines.openai_api import OpenAIAPIEngine

        return OpenAIAPIEngine(**kwargs)
    raise ValueError(f"Unknown engine: {name}")


def build_backend(config: EngineConfig) -> GenerativeBackend:
    engine = build_engine(config.name, model=config.model, max_tokens=config.max_tokens)
    fallback = None
    if config.fallback:
        try:
            # The configured model belongs to the primary engine.
            fallback = build_engine(config.fallback, max_tokens=config.max_tokens)
        except Exception as e:
            logger.warning("Failed to build fallback engine: %s", e)
    logger.info("Generative backend ready (engine=%s, timeout=%ss)", engine.name, config.timeout)
    return GenerativeBackend(engine, fallback=fallback, timeout=config.timeout)
