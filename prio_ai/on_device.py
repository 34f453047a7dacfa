"""
On-device model tier.

Adapts ``NativeInferenceEngine`` to the provider contract: renders the
request with the model family's prompt template, runs generation, and parses
the output into the request's result variant.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from pathlib import Path

from .catalog import DEFAULT_MODEL_ID, get_model, template_for_model
from .llama_engine import (
    DEFAULT_CONTEXT_SIZE,
    DEFAULT_THREADS,
    EngineState,
    GenerateResult,
    LoadResult,
    NativeInferenceEngine,
)
from .prompts import build_prompt, format_prompt, stop_sequences
from .provider import AiCapability, AiProvider, ModelInfo, StreamChunk
from .response_parser import ResponseParseError, parse_model_output
from .types import AiRequest, AiResponse, AiResponseMetadata, ErrorCode

logger = logging.getLogger(__name__)

_DONE = object()


class OnDeviceAiProvider(AiProvider):
    """Provider backed by a locally loaded GGUF model."""

    provider_id = "on-device"
    display_name = "On-device LLM"
    capabilities = frozenset(
        {
            AiCapability.CLASSIFICATION,
            AiCapability.EXTRACTION,
            AiCapability.GENERATION,
            AiCapability.STREAMING,
        }
    )

    def __init__(
        self,
        engine: NativeInferenceEngine | None = None,
        model_id: str = DEFAULT_MODEL_ID,
        model_path: str | None = None,
        context_size: int = DEFAULT_CONTEXT_SIZE,
        threads: int = DEFAULT_THREADS,
    ):
        super().__init__()
        self.engine = engine or NativeInferenceEngine()
        self.model_id = model_id
        self.model_path = model_path
        self.context_size = context_size
        self.threads = threads
        self._unsubscribe = self.engine.state.subscribe(self._on_engine_state)

    def _on_engine_state(self, state: EngineState) -> None:
        self.availability.set(state.is_loaded and not state.is_stub)

    async def initialize(self) -> bool:
        """Initialize the engine and load the configured model, if any."""
        try:
            if not await self.engine.initialize():
                logger.info("On-device tier unavailable: native backend missing")
                return False
            if self.engine.is_loaded:
                return True
            if not self.model_path:
                logger.info("On-device tier has no model path configured")
                return False
            result = await self.load_model(self.model_path)
            return result.success
        except Exception as e:
            logger.warning(f"On-device tier failed to initialize: {e}")
            return False

    async def load_model(self, path: str | Path, model_id: str | None = None) -> LoadResult:
        """Load a model file supplied by the model registry."""
        result = await self.engine.load_model(path, self.context_size, self.threads)
        if result.success:
            self.model_path = str(path)
            if model_id:
                self.model_id = model_id
        return result

    async def release(self) -> None:
        await self.engine.cleanup()

    # -- requests -----------------------------------------------------------

    def _render(self, request: AiRequest) -> tuple[str, list[str]]:
        template = template_for_model(self.model_id)
        system, user = build_prompt(request)
        return format_prompt(template, system, user), stop_sequences(template)

    def _metadata(self, start: float, tokens: int = 0) -> AiResponseMetadata:
        return AiResponseMetadata(
            provider=self.provider_id,
            model=self.model_id,
            latency_ms=(time.perf_counter() - start) * 1000,
            tokens_used=tokens,
        )

    def _unavailable(self, request: AiRequest, start: float) -> AiResponse:
        if self.engine.is_stub:
            code, error = ErrorCode.BACKEND_UNAVAILABLE, "Native inference backend unavailable"
        else:
            code, error = ErrorCode.MODEL_NOT_LOADED, "No on-device model loaded"
        return AiResponse.failure(request, error, code, self._metadata(start))

    def _finish(self, request: AiRequest, generated: GenerateResult, start: float) -> AiResponse:
        metadata = self._metadata(start, generated.tokens_generated)
        if generated.error is not None:
            return AiResponse.failure(
                request,
                generated.error,
                generated.error_code or ErrorCode.GENERATION_FAILED,
                metadata,
                raw_text=generated.text or None,
            )
        try:
            result = parse_model_output(request.type, generated.text)
        except ResponseParseError as e:
            logger.warning(f"Could not parse {request.type.value} output: {e}")
            return AiResponse.failure(
                request, str(e), ErrorCode.PARSE_FAILED, metadata, raw_text=generated.text
            )
        return AiResponse.ok(request, result, metadata, raw_text=generated.text)

    async def _generate(self, request: AiRequest, on_text=None) -> GenerateResult:
        try:
            prompt, stop = self._render(request)
            opts = request.options
            return await self.engine.generate(
                prompt,
                max_tokens=opts.max_tokens,
                temperature=opts.temperature,
                top_p=opts.top_p,
                stop=stop,
                on_text=on_text,
            )
        except Exception as e:
            logger.error(f"On-device generation raised: {e}")
            return GenerateResult(error=str(e), error_code=ErrorCode.GENERATION_FAILED)

    async def complete(self, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        if not self.is_available:
            return self._unavailable(request, start)
        generated = await self._generate(request)
        return self._finish(request, generated, start)

    async def stream(self, request: AiRequest) -> AsyncIterator[StreamChunk]:
        """Yield text pieces as the engine produces them, then a final chunk."""
        start = time.perf_counter()
        if not self.is_available:
            yield StreamChunk(text="", is_final=True, response=self._unavailable(request, start))
            return

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_text(piece: str) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, piece)

        task = asyncio.ensure_future(self._generate(request, on_text=on_text))
        task.add_done_callback(lambda _: queue.put_nowait(_DONE))

        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield StreamChunk(text=item)

        response = self._finish(request, task.result(), start)
        yield StreamChunk(text="", is_final=True, response=response)

    def get_model_info(self) -> ModelInfo:
        definition = get_model(self.model_id)
        state = self.engine.state.value
        return ModelInfo(
            model_id=self.model_id,
            display_name=definition.display_name if definition else self.model_id,
            provider_id=self.provider_id,
            context_length=definition.context_length if definition else self.context_size,
            memory_bytes=state.memory_bytes,
            is_loaded=state.is_loaded,
            details={
                "model_path": state.model_path,
                "template": template_for_model(self.model_id).value,
                "is_stub": state.is_stub,
                "load_time_ms": state.load_time_ms,
            },
        )
