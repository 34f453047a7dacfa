"""
Tiered AI provider router.

Routes each request through a fallback chain:
1. Rule-based classifier (<50ms, always available)
2. Secondary small model via Ollama (``HYBRID_SECONDARY`` only)
3. On-device GGUF model

A model tier is only consulted when the rule-based answer's confidence is
below the request's threshold. The router is itself an ``AiProvider``, so it
can stand in anywhere a single provider is expected.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, replace
from typing import Any

from .config import PrioAIConfig
from .llama_engine import NativeInferenceEngine
from .observable import ObservableValue
from .ollama_provider import OllamaProvider
from .on_device import OnDeviceAiProvider
from .provider import AiProvider, ModelInfo
from .rule_based import RuleBasedFallbackProvider
from .types import (
    AiRequest,
    AiResponse,
    AiResponseMetadata,
    EisenhowerQuadrant,
    ErrorCode,
    PriorityClassification,
    RoutingMode,
    RoutingPath,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_CONFIDENCE = 0.7


@dataclass
class RouterStatistics:
    """Snapshot of routing counters."""

    total_requests: int = 0
    rule_based_direct: int = 0
    escalated_success: int = 0
    escalated_failure: int = 0
    escalation_skipped_unavailable: int = 0
    overrides: int = 0
    rule_based_calls: int = 0
    rule_based_latency_ms_total: float = 0.0
    model_latency_ms_total: float = 0.0
    model_calls: int = 0

    @property
    def average_rule_based_latency_ms(self) -> float:
        return (
            self.rule_based_latency_ms_total / self.rule_based_calls
            if self.rule_based_calls
            else 0.0
        )

    @property
    def average_model_latency_ms(self) -> float:
        return self.model_latency_ms_total / self.model_calls if self.model_calls else 0.0

    @property
    def escalation_rate(self) -> float:
        escalated = self.escalated_success + self.escalated_failure
        return escalated / self.total_requests if self.total_requests else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["average_rule_based_latency_ms"] = self.average_rule_based_latency_ms
        data["average_model_latency_ms"] = self.average_model_latency_ms
        data["escalation_rate"] = self.escalation_rate
        return data


@dataclass
class OverrideRecord:
    """A user correcting a classification."""

    request_id: str
    original_quadrant: EisenhowerQuadrant
    override_quadrant: EisenhowerQuadrant
    was_model: bool
    timestamp: float


class AiProviderRouter(AiProvider):
    """
    Confidence-driven fallback across provider tiers.

    Example:
        router = AiProviderRouter(primary=OnDeviceAiProvider(model_path=path))
        await router.initialize()
        response = await router.complete(AiRequest.classify("Pay rent today"))
    """

    provider_id = "router"
    display_name = "AI router"

    def __init__(
        self,
        rule_based: AiProvider | None = None,
        primary: AiProvider | None = None,
        secondary: AiProvider | None = None,
        routing_mode: RoutingMode = RoutingMode.HYBRID,
        default_min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        max_override_history: int = 500,
    ):
        """
        Args:
            rule_based: Always-available tier; defaults to the regex classifier
            primary: General on-device model tier
            secondary: Lightweight model tier tried before ``primary``
            routing_mode: Initial routing mode
            default_min_confidence: Threshold when a request does not set one
        """
        super().__init__()
        self.rule_based = rule_based or RuleBasedFallbackProvider()
        self.primary = primary
        self.secondary = secondary
        self.default_min_confidence = default_min_confidence

        # Registry keyed by provider id, lightest tier first
        self._tiers: dict[str, AiProvider] = {}
        for tier in (self.rule_based, self.secondary, self.primary):
            if tier is not None:
                self._tiers[tier.provider_id] = tier

        self.capabilities = frozenset().union(*(t.capabilities for t in self._tiers.values()))
        self.routing_mode: ObservableValue[RoutingMode] = ObservableValue(routing_mode)
        self.availability.set(True)

        self._stats = RouterStatistics()
        self._stats_lock = threading.Lock()
        self._overrides: deque[OverrideRecord] = deque(maxlen=max_override_history)
        self._secondary_probed = False

    # -- registry -----------------------------------------------------------

    @property
    def tiers(self) -> dict[str, AiProvider]:
        return dict(self._tiers)

    def get_tier(self, provider_id: str) -> AiProvider | None:
        return self._tiers.get(provider_id)

    def set_routing_mode(self, mode: RoutingMode) -> None:
        if self.routing_mode.set(mode):
            logger.info(f"Routing mode set to {mode.value}")

    # -- lifecycle ----------------------------------------------------------

    async def initialize(self) -> bool:
        """
        Initialize every tier.

        The secondary tier is probed once; success upgrades ``HYBRID`` to
        ``HYBRID_SECONDARY``. Failures leave the mode unchanged.
        """
        await self._initialize_tier(self.rule_based)

        if self.secondary is not None and not self._secondary_probed:
            self._secondary_probed = True
            ready = await self._initialize_tier(self.secondary)
            if ready and self.routing_mode.value == RoutingMode.HYBRID:
                self.set_routing_mode(RoutingMode.HYBRID_SECONDARY)

        if self.primary is not None:
            await self._initialize_tier(self.primary)

        self.availability.set(True)
        return True

    async def _initialize_tier(self, tier: AiProvider) -> bool:
        try:
            ready = await tier.initialize()
        except Exception as e:
            logger.warning(f"Tier {tier.provider_id} failed to initialize: {e}")
            return False
        logger.info(f"Tier {tier.provider_id} initialized: {ready}")
        return ready is True

    async def release(self) -> None:
        """Release every tier; one failing release does not stop the others."""
        for tier in self._tiers.values():
            try:
                await tier.release()
            except Exception as e:
                logger.warning(f"Tier {tier.provider_id} failed to release: {e}")
        self.availability.set(False)

    # -- routing ------------------------------------------------------------

    async def complete(self, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        self._count(total_requests=1)
        mode = self.routing_mode.value

        if mode == RoutingMode.RULE_BASED_ONLY:
            return await self._route_rule_based_only(request, start)
        if mode == RoutingMode.MODEL_ONLY:
            return await self._route_model_only(request, start)
        return await self._route_hybrid(request, mode, start)

    async def _route_rule_based_only(self, request: AiRequest, start: float) -> AiResponse:
        response = await self._call_rule_based(request)
        if response.success:
            self._count(rule_based_direct=1)
            return self._tag(response, RoutingPath.RULE_BASED_DIRECT, start)
        self._count(escalation_skipped_unavailable=1)
        return self._all_failed(request, response, start)

    async def _route_model_only(self, request: AiRequest, start: float) -> AiResponse:
        attempted = False
        failure = None
        for tier in (self.primary, self.secondary):
            if tier is None or not self._is_available(tier):
                continue
            attempted = True
            response = await self._call_model(tier, request)
            if response.success:
                self._count(escalated_success=1)
                return self._tag(response, RoutingPath.ESCALATED, start)
            logger.warning(f"Tier {tier.provider_id} failed: {response.error_code} {response.error}")
            failure = response

        return await self._fall_back(request, attempted, failure, None, start)

    async def _route_hybrid(self, request: AiRequest, mode: RoutingMode, start: float) -> AiResponse:
        threshold = request.options.min_confidence
        if threshold is None:
            threshold = self.default_min_confidence

        rule_response = await self._call_rule_based(request)
        rule_confidence = rule_response.confidence if rule_response.success else 0.0

        if rule_response.success and (
            rule_confidence >= threshold or not request.options.use_llm
        ):
            self._count(rule_based_direct=1)
            logger.debug(
                f"Rule-based answer accepted ({rule_confidence:.2f} >= {threshold:.2f} "
                f"or model tiers disabled)"
            )
            return self._tag(rule_response, RoutingPath.RULE_BASED_DIRECT, start)

        attempted = False
        failure = None
        if request.options.use_llm:
            candidates = []
            if mode == RoutingMode.HYBRID_SECONDARY and self.secondary is not None:
                candidates.append(self.secondary)
            if self.primary is not None:
                candidates.append(self.primary)

            logger.debug(
                f"Escalating {request.type.value}: confidence {rule_confidence:.2f} < {threshold:.2f}"
            )
            for tier in candidates:
                if not self._is_available(tier):
                    logger.debug(f"Tier {tier.provider_id} unavailable, skipping")
                    continue
                attempted = True
                response = await self._call_model(tier, request)
                if response.success:
                    self._count(escalated_success=1)
                    return self._tag(response, RoutingPath.ESCALATED, start)
                logger.warning(
                    f"Tier {tier.provider_id} failed: {response.error_code} {response.error}"
                )
                failure = response

        return await self._fall_back(request, attempted, failure, rule_response, start)

    async def _fall_back(
        self,
        request: AiRequest,
        attempted: bool,
        failure: AiResponse | None,
        rule_response: AiResponse | None,
        start: float,
    ) -> AiResponse:
        """Settle a request no model tier answered."""
        if attempted:
            self._count(escalated_failure=1)
        else:
            self._count(escalation_skipped_unavailable=1)

        if not request.options.fallback_to_rule_based:
            if failure is None:
                failure = AiResponse.failure(
                    request,
                    "No model tier available",
                    ErrorCode.PROVIDER_UNAVAILABLE,
                    AiResponseMetadata(provider=self.provider_id),
                )
            return self._tag(failure, RoutingPath.FAILED, start)

        if rule_response is None:
            rule_response = await self._call_rule_based(request)
        if not rule_response.success:
            return self._all_failed(request, rule_response, start)

        path = RoutingPath.FALLBACK_AFTER_FAILURE if attempted else RoutingPath.FALLBACK_UNAVAILABLE
        return self._tag(rule_response, path, start, was_llm_fallback=True)

    # -- tier calls ---------------------------------------------------------

    async def _call_rule_based(self, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        response = await self._call(self.rule_based, request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        self._count(rule_based_calls=1, rule_based_latency_ms_total=elapsed_ms)
        return response

    async def _call_model(self, tier: AiProvider, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        response = await self._call(tier, request)
        self._count(model_calls=1, model_latency_ms_total=(time.perf_counter() - start) * 1000)
        return response

    async def _call(self, tier: AiProvider, request: AiRequest) -> AiResponse:
        """Invoke a tier, turning an escaping exception into a failure."""
        try:
            response = await tier.complete(request)
        except Exception as e:
            logger.warning(f"Tier {tier.provider_id} raised: {e}")
            return AiResponse.failure(
                request,
                f"{tier.provider_id} raised {type(e).__name__}: {e}",
                ErrorCode.PROVIDER_ERROR,
                AiResponseMetadata(provider=tier.provider_id),
            )
        if not isinstance(response, AiResponse):
            return AiResponse.failure(
                request,
                f"{tier.provider_id} returned {type(response).__name__}",
                ErrorCode.PROVIDER_ERROR,
                AiResponseMetadata(provider=tier.provider_id),
            )
        return response

    @staticmethod
    def _is_available(tier: AiProvider) -> bool:
        try:
            return bool(tier.is_available)
        except Exception as e:
            logger.warning(f"Tier {tier.provider_id} availability check raised: {e}")
            return False

    def _tag(
        self,
        response: AiResponse,
        path: RoutingPath,
        start: float,
        was_llm_fallback: bool = False,
    ) -> AiResponse:
        metadata = replace(
            response.metadata,
            routing_path=path,
            was_llm_fallback=was_llm_fallback,
            latency_ms=(time.perf_counter() - start) * 1000,
            confidence_score=response.confidence if response.success else None,
        )
        return replace(response, metadata=metadata)

    def _all_failed(self, request: AiRequest, last: AiResponse, start: float) -> AiResponse:
        logger.error(f"All tiers failed for {request.type.value}: {last.error}")
        return AiResponse.failure(
            request,
            f"All tiers failed: {last.error}",
            ErrorCode.ALL_TIERS_FAILED,
            AiResponseMetadata(
                provider=self.provider_id,
                latency_ms=(time.perf_counter() - start) * 1000,
                routing_path=RoutingPath.FAILED,
            ),
        )

    # -- statistics ---------------------------------------------------------

    def _count(self, **increments: float) -> None:
        with self._stats_lock:
            for name, amount in increments.items():
                setattr(self._stats, name, getattr(self._stats, name) + amount)

    @property
    def statistics(self) -> RouterStatistics:
        with self._stats_lock:
            return replace(self._stats)

    def get_statistics(self) -> dict[str, Any]:
        stats = self.statistics.to_dict()
        stats["routing_mode"] = self.routing_mode.value.value
        stats["accuracy"] = self.calculate_accuracy()
        return stats

    def reset_statistics(self) -> None:
        with self._stats_lock:
            self._stats = RouterStatistics()
            self._overrides.clear()

    def record_override(
        self,
        request_id: str,
        original: PriorityClassification | EisenhowerQuadrant,
        override_quadrant: EisenhowerQuadrant | str,
        was_model: bool = False,
    ) -> OverrideRecord:
        """Record a user moving a task to a different quadrant."""
        original_quadrant = (
            original.quadrant if isinstance(original, PriorityClassification) else original
        )
        record = OverrideRecord(
            request_id=request_id,
            original_quadrant=original_quadrant,
            override_quadrant=EisenhowerQuadrant.parse(override_quadrant),
            was_model=was_model,
            timestamp=time.time(),
        )
        with self._stats_lock:
            self._overrides.append(record)
            self._stats.overrides += 1
        logger.info(
            f"Override recorded: {record.original_quadrant.value} -> "
            f"{record.override_quadrant.value}"
        )
        return record

    @property
    def override_history(self) -> list[OverrideRecord]:
        with self._stats_lock:
            return list(self._overrides)

    def calculate_accuracy(self) -> float:
        """Share of routed requests the user did not override."""
        stats = self.statistics
        if stats.total_requests == 0:
            return 0.0
        return max(0.0, 1.0 - stats.overrides / stats.total_requests)

    def get_model_info(self) -> ModelInfo:
        mode = self.routing_mode.value
        if mode != RoutingMode.RULE_BASED_ONLY:
            for tier in (self.primary, self.secondary):
                if tier is not None and self._is_available(tier):
                    return tier.get_model_info()
        return self.rule_based.get_model_info()


def create_router(config: PrioAIConfig | None = None) -> AiProviderRouter:
    """Build a router with the default tiers wired from configuration."""
    config = config or PrioAIConfig.load()

    primary = OnDeviceAiProvider(
        engine=NativeInferenceEngine(),
        model_id=config.model.model_id,
        model_path=config.model.model_path,
        context_size=config.engine.context_size,
        threads=config.engine.threads,
    )
    secondary = None
    if config.secondary.enabled:
        secondary = OllamaProvider(
            model=config.secondary.model,
            host=config.secondary.host,
            timeout_s=config.secondary.timeout_s,
        )

    return AiProviderRouter(
        rule_based=RuleBasedFallbackProvider(),
        primary=primary,
        secondary=secondary,
        routing_mode=config.router.mode,
        default_min_confidence=config.router.min_confidence,
        max_override_history=config.router.max_override_history,
    )


__all__ = ["AiProviderRouter", "OverrideRecord", "RouterStatistics", "create_router"]
