"""Engine protocol and shared types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


class EngineError(Exception):
    """The generative backend failed or returned something unusable."""


class EngineTimeout(EngineError):
    """The generative backend did not answer within the configured timeout."""


@dataclass
class AgentResponse:
    """Response from a generative engine."""

    text: str
    cost_usd: float | None = None
    model: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    metadata: dict = field(default_factory=dict)


@runtime_checkable
class Engine(Protocol):
    """Protocol that all engine backends must implement."""

    @property
    def name(self) -> str: ...

    async def send(self, message: str, *, system_prompt: str | None = None) -> AgentResponse:
        """Send a prompt and return the response. Raises EngineError on failure."""
        ...

    async def health_check(self) -> bool:
        """Check if the engine is available. Returns True if healthy."""
        ...
