"""
Secondary tier: a small model served by a local Ollama daemon.

Lighter than the on-device GGUF tier and tried before it in
``HYBRID_SECONDARY`` routing. Talks to Ollama's HTTP API with httpx.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from .prompts import JSON_OPERATIONS, build_prompt
from .provider import AiCapability, AiProvider, ModelInfo, StreamChunk
from .response_parser import ResponseParseError, parse_model_output
from .types import AiRequest, AiResponse, AiResponseMetadata, ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "gemma3:1b"


class OllamaProvider(AiProvider):
    """Provider backed by Ollama's ``/api/generate`` endpoint."""

    provider_id = "ollama"
    display_name = "Ollama"
    capabilities = frozenset(
        {AiCapability.CLASSIFICATION, AiCapability.EXTRACTION, AiCapability.GENERATION}
    )

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_MODEL,
        host: str = DEFAULT_OLLAMA_HOST,
        timeout_s: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__()
        self.model = model
        self.host = host.rstrip("/")
        self.timeout_s = timeout_s
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.host, timeout=self.timeout_s)
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.host}{path}"

    async def initialize(self) -> bool:
        """Check the daemon is up and the model is pulled."""
        try:
            response = await self._get_client().get(self._url("/api/tags"), timeout=2.0)
            response.raise_for_status()
            names = {m.get("name", "") for m in response.json().get("models", [])}
        except (httpx.HTTPError, ValueError) as e:
            logger.info(f"Ollama not reachable at {self.host}: {e}")
            self.availability.set(False)
            return False

        available = self.model in names or f"{self.model}:latest" in names
        if not available:
            logger.info(f"Ollama model {self.model} not pulled (have: {sorted(names)})")
        self.availability.set(available)
        return available

    async def release(self) -> None:
        self.availability.set(False)
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _payload(self, request: AiRequest, stream: bool) -> dict[str, Any]:
        system, user = build_prompt(request)
        payload: dict[str, Any] = {
            "model": self.model,
            "prompt": user,
            "system": system,
            "stream": stream,
            "options": {
                "num_predict": request.options.max_tokens,
                "temperature": request.options.temperature,
                "top_p": request.options.top_p,
            },
        }
        if request.type in JSON_OPERATIONS:
            payload["format"] = "json"
        return payload

    def _metadata(self, start: float, tokens: int = 0) -> AiResponseMetadata:
        return AiResponseMetadata(
            provider=self.provider_id,
            model=self.model,
            latency_ms=(time.perf_counter() - start) * 1000,
            tokens_used=tokens,
        )

    def _finish(self, request: AiRequest, text: str, tokens: int, start: float) -> AiResponse:
        metadata = self._metadata(start, tokens)
        try:
            result = parse_model_output(request.type, text)
        except ResponseParseError as e:
            logger.warning(f"Could not parse Ollama {request.type.value} output: {e}")
            return AiResponse.failure(
                request, str(e), ErrorCode.PARSE_FAILED, metadata, raw_text=text
            )
        return AiResponse.ok(request, result, metadata, raw_text=text)

    async def complete(self, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        if not self.is_available:
            return AiResponse.failure(
                request,
                f"Ollama model {self.model} unavailable",
                ErrorCode.PROVIDER_UNAVAILABLE,
                self._metadata(start),
            )

        try:
            response = await self._get_client().post(
                self._url("/api/generate"), json=self._payload(request, stream=False)
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Ollama request failed: {e}")
            return AiResponse.failure(
                request, f"Ollama request failed: {e}", ErrorCode.PROVIDER_ERROR,
                self._metadata(start),
            )

        return self._finish(request, data.get("response", ""), data.get("eval_count", 0), start)

    async def stream(self, request: AiRequest) -> AsyncIterator[StreamChunk]:
        """Yield pieces from Ollama's NDJSON stream, then a final chunk."""
        start = time.perf_counter()
        if not self.is_available:
            yield StreamChunk(text="", is_final=True, response=await self.complete(request))
            return

        pieces: list[str] = []
        tokens = 0
        try:
            async with self._get_client().stream(
                "POST", self._url("/api/generate"), json=self._payload(request, stream=True)
            ) as response:
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    piece = data.get("response", "")
                    if piece:
                        pieces.append(piece)
                        yield StreamChunk(text=piece)
                    if data.get("done"):
                        tokens = data.get("eval_count", 0)
                        break
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Ollama stream failed: {e}")
            failure = AiResponse.failure(
                request, f"Ollama stream failed: {e}", ErrorCode.PROVIDER_ERROR,
                self._metadata(start),
            )
            yield StreamChunk(text="", is_final=True, response=failure)
            return

        yield StreamChunk(
            text="", is_final=True, response=self._finish(request, "".join(pieces), tokens, start)
        )

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            model_id=self.model,
            display_name=f"Ollama {self.model}",
            provider_id=self.provider_id,
            is_loaded=self.is_available,
            details={"host": self.host},
        )
