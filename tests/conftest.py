"""
Pytest configuration and fixtures for prio-ai tests.
"""

import pytest
import sys
from pathlib import Path

# Add project root to path so we can import prio_ai package
sys.path.insert(0, str(Path(__file__).parent.parent))

from prio_ai.llama_engine import NativeInferenceEngine
from prio_ai.provider import AiCapability, AiProvider, ModelInfo
from prio_ai.types import (
    AiRequest,
    AiResponse,
    AiResponseMetadata,
    EisenhowerQuadrant,
    ErrorCode,
    PriorityClassification,
)


class FakeLlama:
    """Stands in for llama_cpp.Llama."""

    def __init__(self, text='{"quadrant": "DO", "confidence": 0.9, "reasoning": "ok"}', **kwargs):
        self.kwargs = kwargs
        self.text = text
        self.closed = False
        self.calls = []
        self.raise_on_generate = None

    def create_completion(self, prompt, stream=False, **kwargs):
        self.calls.append({"prompt": prompt, "stream": stream, **kwargs})
        if self.raise_on_generate is not None:
            raise self.raise_on_generate
        if stream:
            return self._stream()
        return {
            "choices": [{"text": self.text}],
            "usage": {"completion_tokens": len(self.text.split())},
        }

    def _stream(self):
        for piece in self.text.split(" "):
            yield {"choices": [{"text": piece + " "}]}

    def close(self):
        self.closed = True


class FakeLlamaFactory:
    """Records every model it builds."""

    def __init__(self, text=None, fail=False, return_none=False):
        self.text = text
        self.fail = fail
        self.return_none = return_none
        self.models = []

    def __call__(self, **kwargs):
        if self.fail:
            raise RuntimeError("bad gguf")
        if self.return_none:
            return None
        model = FakeLlama(**kwargs) if self.text is None else FakeLlama(text=self.text, **kwargs)
        self.models.append(model)
        return model


class FakeProvider(AiProvider):
    """Scriptable provider tier for router tests."""

    capabilities = frozenset({AiCapability.CLASSIFICATION})

    def __init__(
        self,
        provider_id="fake",
        available=True,
        quadrant=EisenhowerQuadrant.SCHEDULE,
        confidence=0.9,
        fail=False,
        raise_on_complete=None,
        init_result=True,
        raise_on_init=None,
        raise_on_release=None,
    ):
        super().__init__()
        self.provider_id = provider_id
        self.availability.set(available)
        self.quadrant = quadrant
        self.confidence = confidence
        self.fail = fail
        self.raise_on_complete = raise_on_complete
        self.init_result = init_result
        self.raise_on_init = raise_on_init
        self.raise_on_release = raise_on_release
        self.complete_calls = 0
        self.init_calls = 0
        self.release_calls = 0

    async def complete(self, request: AiRequest) -> AiResponse:
        self.complete_calls += 1
        if self.raise_on_complete is not None:
            raise self.raise_on_complete
        metadata = AiResponseMetadata(provider=self.provider_id, model=f"{self.provider_id}-model")
        if self.fail:
            return AiResponse.failure(request, "scripted failure", ErrorCode.GENERATION_FAILED, metadata)
        result = PriorityClassification(
            quadrant=self.quadrant,
            confidence=self.confidence,
            explanation=f"from {self.provider_id}",
            is_urgent=self.quadrant.is_urgent,
            is_important=self.quadrant.is_important,
        )
        return AiResponse.ok(request, result, metadata)

    async def initialize(self) -> bool:
        self.init_calls += 1
        if self.raise_on_init is not None:
            raise self.raise_on_init
        return self.init_result

    async def release(self) -> None:
        self.release_calls += 1
        if self.raise_on_release is not None:
            raise self.raise_on_release

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            model_id=f"{self.provider_id}-model",
            display_name=self.provider_id,
            provider_id=self.provider_id,
            is_loaded=self.is_available,
        )


@pytest.fixture
def make_provider():
    """Provide a factory for scripted provider tiers."""
    return FakeProvider


@pytest.fixture
def make_llama_factory():
    """Provide a factory for fake llama.cpp model factories."""
    return FakeLlamaFactory


@pytest.fixture
def model_file(tmp_path):
    """Provide a placeholder GGUF file."""
    path = tmp_path / "phi3.gguf"
    path.write_bytes(b"GGUF" + b"\x00" * 1020)
    return path


@pytest.fixture
def llama_factory():
    """Provide a fake llama.cpp model factory."""
    return FakeLlamaFactory()


@pytest.fixture
def engine(llama_factory):
    """Provide an engine backed by the fake factory."""
    return NativeInferenceEngine(model_factory=llama_factory)


@pytest.fixture
def stub_engine():
    """Provide an engine without a native backend."""
    return NativeInferenceEngine(backend_available=False)


# Markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "hypothesis: property-based tests"
    )
    config.addinivalue_line(
        "markers", "slow: tests that take >1s"
    )
