"""
Provider contract shared by every routing tier.

A provider answers ``AiRequest``s with ``AiResponse``s. ``complete`` never
raises: internal failures come back as typed failure responses.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .observable import ObservableValue
from .types import AiRequest, AiResponse


class AiCapability(Enum):
    """What a provider can do."""

    CLASSIFICATION = "classification"
    EXTRACTION = "extraction"
    GENERATION = "generation"
    STREAMING = "streaming"
    LONG_CONTEXT = "long_context"


@dataclass
class ModelInfo:
    """Describes the model behind a provider."""

    model_id: str
    display_name: str
    provider_id: str
    context_length: int = 0
    memory_bytes: int = 0
    is_loaded: bool = False
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class StreamChunk:
    """A piece of incrementally produced output."""

    text: str
    is_final: bool = False
    response: AiResponse | None = None  # set on the final chunk


class AiProvider(ABC):
    """Base class for routing tiers."""

    provider_id: str = "provider"
    display_name: str = "Provider"
    capabilities: frozenset[AiCapability] = frozenset()

    def __init__(self) -> None:
        self.availability: ObservableValue[bool] = ObservableValue(False)

    @property
    def is_available(self) -> bool:
        return self.availability.value

    @abstractmethod
    async def complete(self, request: AiRequest) -> AiResponse:
        """Run a request. Never raises."""
        ...

    async def stream(self, request: AiRequest) -> AsyncIterator[StreamChunk]:
        """
        Stream partial output for a request.

        The default runs ``complete`` and yields a single final chunk.
        """
        response = await self.complete(request)
        text = response.raw_text or ""
        if not text and response.result is not None:
            text = _result_text(response)
        yield StreamChunk(text=text, is_final=True, response=response)

    @abstractmethod
    async def initialize(self) -> bool:
        """Prepare the provider. Returns True when it is usable."""
        ...

    async def release(self) -> None:
        """Free resources held by the provider."""
        self.availability.set(False)

    @abstractmethod
    def get_model_info(self) -> ModelInfo:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.provider_id!r}, available={self.is_available})"


def _result_text(response: AiResponse) -> str:
    result = response.result
    for attr in ("message", "text", "explanation", "summary", "title", "refined_goal"):
        value = getattr(result, attr, None)
        if isinstance(value, str) and value:
            return value
    return ""


__all__ = ["AiCapability", "AiProvider", "ModelInfo", "StreamChunk"]
