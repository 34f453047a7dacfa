"""
Native inference engine around llama.cpp.

Owns a single ``llama_cpp.Llama`` instance. The native library is not safe
for concurrent use, so every state transition and native call runs on one
dedicated worker thread and under one lock. Callers await results without
blocking the event loop.

No mid-generation cancellation: if the awaiting coroutine is abandoned, the
native call still runs to completion on the worker thread.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from .observable import ObservableValue
from .types import ErrorCode

logger = logging.getLogger(__name__)

# Probed once per process; a missing shared library raises OSError
try:
    from llama_cpp import Llama

    _LLAMA_AVAILABLE = True
except (ImportError, OSError):
    Llama = None  # type: ignore[assignment, misc]
    _LLAMA_AVAILABLE = False


DEFAULT_CONTEXT_SIZE = 2048
DEFAULT_THREADS = 4
DEFAULT_TEMPERATURE = 0.3
DEFAULT_TOP_P = 0.9
DEFAULT_MAX_TOKENS = 256


class EngineLifecycle(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    MODEL_LOADED = "model_loaded"
    UNLOADED = "unloaded"


@dataclass(frozen=True)
class EngineState:
    """Snapshot of engine state, published on every transition."""

    lifecycle: EngineLifecycle = EngineLifecycle.UNINITIALIZED
    is_stub: bool = False
    model_path: str | None = None
    load_time_ms: float = 0.0
    memory_bytes: int = 0
    context_size: int = 0
    last_inference_ms: float = 0.0
    last_tokens_generated: int = 0
    last_error: str | None = None

    @property
    def is_loaded(self) -> bool:
        return self.lifecycle == EngineLifecycle.MODEL_LOADED


@dataclass
class LoadResult:
    success: bool
    load_time_ms: float = 0.0
    memory_bytes: int = 0
    is_stub: bool = False
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass
class GenerateResult:
    text: str = ""
    inference_time_ms: float = 0.0
    tokens_generated: int = 0
    tokens_per_second: float = 0.0
    error: str | None = None
    error_code: ErrorCode | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class _ModelHandle:
    """Owns the native model; ``close`` frees it exactly once."""

    def __init__(self, model: Any, path: str):
        self._model = model
        self.path = path

    @property
    def model(self) -> Any:
        if self._model is None:
            raise RuntimeError("Model handle already closed")
        return self._model

    @property
    def closed(self) -> bool:
        return self._model is None

    def close(self) -> None:
        if self._model is None:
            return
        model, self._model = self._model, None
        closer = getattr(model, "close", None)
        if callable(closer):
            try:
                closer()
            except Exception as e:
                logger.warning(f"Error closing model {self.path}: {e}")


class NativeInferenceEngine:
    """
    Exclusive-access lifecycle around one llama.cpp model.

    Lifecycle: UNINITIALIZED -> INITIALIZED -> MODEL_LOADED -> UNLOADED,
    and back to UNINITIALIZED on ``cleanup``. Without the native backend the
    engine runs in stub mode for its whole lifetime: load and generate fail
    with ``BACKEND_UNAVAILABLE`` instead of raising, before or after
    ``initialize`` and ``cleanup``.

    Example:
        engine = NativeInferenceEngine()
        await engine.initialize()
        result = await engine.load_model("/models/phi3.gguf")
        if result.success:
            out = await engine.generate("<|user|>\\nHi<|end|>\\n<|assistant|>\\n")
    """

    def __init__(
        self,
        model_factory: Callable[..., Any] | None = None,
        backend_available: bool | None = None,
    ):
        """
        Args:
            model_factory: Builds the native model; defaults to ``llama_cpp.Llama``
            backend_available: Override the process-wide backend probe
        """
        self._model_factory = model_factory or Llama
        if backend_available is None:
            backend_available = model_factory is not None or _LLAMA_AVAILABLE
        self._backend_available = backend_available

        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None
        self._handle: _ModelHandle | None = None

        self.state: ObservableValue[EngineState] = ObservableValue(self._initial_state())

        self._stats = {
            "loads": 0,
            "load_failures": 0,
            "generations": 0,
            "generation_failures": 0,
            "tokens_generated": 0,
        }

    # -- properties ---------------------------------------------------------

    @property
    def backend_available(self) -> bool:
        return self._backend_available

    @property
    def is_stub(self) -> bool:
        return not self._backend_available

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None and self.state.value.is_loaded

    @property
    def model_path(self) -> str | None:
        return self.state.value.model_path

    # -- async API ----------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Initialize the engine. Idempotent.

        Returns:
            True when the native backend is usable, False in stub mode
        """
        return await self._run(self._initialize_sync)

    async def load_model(
        self,
        path: str | Path,
        context_size: int = DEFAULT_CONTEXT_SIZE,
        threads: int = DEFAULT_THREADS,
    ) -> LoadResult:
        """Load a GGUF model, replacing any loaded one. Never raises."""
        return await self._run(self._load_sync, str(path), context_size, threads)

    async def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        top_p: float = DEFAULT_TOP_P,
        stop: list[str] | None = None,
        on_text: Callable[[str], None] | None = None,
    ) -> GenerateResult:
        """
        Generate a completion. Never raises.

        Args:
            on_text: Receives each generated piece as it arrives. Called on the
                engine's worker thread.
        """
        return await self._run(
            self._generate_sync, prompt, max_tokens, temperature, top_p, stop, on_text
        )

    async def unload(self) -> None:
        """Release the loaded model, if any. Idempotent."""
        await self._run(self._unload_sync)

    async def cleanup(self) -> None:
        """Release everything and return to UNINITIALIZED. Idempotent."""
        await self._run(self._cleanup_sync)
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    def get_statistics(self) -> dict[str, Any]:
        state = self.state.value
        return {
            **self._stats,
            "lifecycle": state.lifecycle.value,
            "is_stub": self.is_stub,
            "model_path": state.model_path,
            "memory_bytes": state.memory_bytes,
            "backend_available": self._backend_available,
        }

    # -- worker-thread implementations -------------------------------------

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="prio-llama")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, functools.partial(fn, *args))

    def _initial_state(self) -> EngineState:
        # Stub mode is fixed by the backend probe and survives cleanup
        return EngineState(is_stub=not self._backend_available)

    def _publish(self, **changes: Any) -> None:
        self.state.set(replace(self.state.value, **changes))

    def _initialize_locked(self) -> bool:
        current = self.state.value
        if current.lifecycle != EngineLifecycle.UNINITIALIZED:
            return not current.is_stub

        if not self._backend_available:
            logger.warning("llama-cpp-python not available; inference engine in stub mode")
            self._publish(lifecycle=EngineLifecycle.INITIALIZED, is_stub=True)
            return False

        logger.info("Native inference engine initialized")
        self._publish(lifecycle=EngineLifecycle.INITIALIZED, is_stub=False)
        return True

    def _initialize_sync(self) -> bool:
        with self._lock:
            return self._initialize_locked()

    def _release_handle_locked(self) -> None:
        if self._handle is not None:
            logger.info(f"Unloading model {self._handle.path}")
            self._handle.close()
            self._handle = None

    def _load_sync(self, path: str, context_size: int, threads: int) -> LoadResult:
        with self._lock:
            self._initialize_locked()
            if self.is_stub:
                return LoadResult(
                    success=False,
                    is_stub=True,
                    error="Native inference backend unavailable",
                    error_code=ErrorCode.BACKEND_UNAVAILABLE,
                )

            # Checked before touching the loaded model so a bad path changes nothing
            model_file = Path(path).expanduser()
            if not model_file.is_file():
                logger.warning(f"Model file not found: {path}")
                return LoadResult(
                    success=False,
                    error=f"Model file not found: {path}",
                    error_code=ErrorCode.MODEL_NOT_FOUND,
                )

            self._release_handle_locked()
            start = time.perf_counter()
            try:
                model = self._model_factory(
                    model_path=str(model_file),
                    n_ctx=context_size,
                    n_threads=threads,
                    verbose=False,
                )
            except Exception as e:
                model = None
                error = f"Failed to load model: {e}"
            else:
                error = "Native loader returned no model"
            load_time_ms = (time.perf_counter() - start) * 1000

            if model is None:
                logger.error(f"{error} ({path})")
                self._stats["load_failures"] += 1
                self._publish(
                    lifecycle=EngineLifecycle.UNLOADED,
                    model_path=None,
                    memory_bytes=0,
                    last_error=error,
                )
                return LoadResult(
                    success=False,
                    load_time_ms=load_time_ms,
                    error=error,
                    error_code=ErrorCode.MODEL_LOAD_FAILED,
                )

            self._handle = _ModelHandle(model, str(model_file))
            memory_bytes = model_file.stat().st_size
            self._stats["loads"] += 1
            self._publish(
                lifecycle=EngineLifecycle.MODEL_LOADED,
                model_path=str(model_file),
                load_time_ms=load_time_ms,
                memory_bytes=memory_bytes,
                context_size=context_size,
                last_error=None,
            )
            logger.info(
                f"Loaded {model_file.name} in {load_time_ms:.0f}ms "
                f"({memory_bytes / 1e6:.0f}MB, ctx={context_size}, threads={threads})"
            )
            return LoadResult(success=True, load_time_ms=load_time_ms, memory_bytes=memory_bytes)

    def _generate_sync(
        self,
        prompt: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
        stop: list[str] | None,
        on_text: Callable[[str], None] | None,
    ) -> GenerateResult:
        with self._lock:
            if self.is_stub:
                return GenerateResult(
                    error="Native inference backend unavailable",
                    error_code=ErrorCode.BACKEND_UNAVAILABLE,
                )
            if self._handle is None:
                return GenerateResult(
                    error="No model loaded",
                    error_code=ErrorCode.MODEL_NOT_LOADED,
                )

            model = self._handle.model
            kwargs = {
                "max_tokens": max_tokens,
                "temperature": temperature,
                "top_p": top_p,
                "stop": stop or None,
            }
            start = time.perf_counter()
            try:
                if on_text is None:
                    output = model.create_completion(prompt, **kwargs)
                    text = output["choices"][0]["text"]
                    tokens = output.get("usage", {}).get("completion_tokens", 0)
                else:
                    pieces = []
                    tokens = 0
                    for chunk in model.create_completion(prompt, stream=True, **kwargs):
                        piece = chunk["choices"][0]["text"]
                        tokens += 1
                        if piece:
                            pieces.append(piece)
                            on_text(piece)
                    text = "".join(pieces)
            except Exception as e:
                elapsed_ms = (time.perf_counter() - start) * 1000
                logger.error(f"Generation failed: {e}")
                self._stats["generation_failures"] += 1
                self._publish(last_error=str(e))
                return GenerateResult(
                    inference_time_ms=elapsed_ms,
                    error=f"Generation failed: {e}",
                    error_code=ErrorCode.GENERATION_FAILED,
                )

            elapsed_ms = (time.perf_counter() - start) * 1000
            tokens_per_second = tokens / (elapsed_ms / 1000) if elapsed_ms > 0 else 0.0
            self._stats["generations"] += 1
            self._stats["tokens_generated"] += tokens
            self._publish(last_inference_ms=elapsed_ms, last_tokens_generated=tokens)
            logger.debug(
                f"Generated {tokens} tokens in {elapsed_ms:.0f}ms ({tokens_per_second:.1f} tok/s)"
            )
            return GenerateResult(
                text=text,
                inference_time_ms=elapsed_ms,
                tokens_generated=tokens,
                tokens_per_second=tokens_per_second,
            )

    def _unload_sync(self) -> None:
        with self._lock:
            self._release_handle_locked()
            if self.state.value.lifecycle == EngineLifecycle.MODEL_LOADED:
                self._publish(
                    lifecycle=EngineLifecycle.UNLOADED,
                    model_path=None,
                    memory_bytes=0,
                    context_size=0,
                )

    def _cleanup_sync(self) -> None:
        with self._lock:
            self._release_handle_locked()
            self.state.set(self._initial_state())


__all__ = [
    "DEFAULT_CONTEXT_SIZE",
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "DEFAULT_THREADS",
    "DEFAULT_TOP_P",
    "EngineLifecycle",
    "EngineState",
    "GenerateResult",
    "LoadResult",
    "NativeInferenceEngine",
]
