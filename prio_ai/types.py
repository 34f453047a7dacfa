"""
Request/response data model for the on-device AI router.

Every provider tier speaks these types: an ``AiRequest`` goes in, an
``AiResponse`` comes out carrying exactly one result variant on success or
an ``ErrorCode`` on failure.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Union


def clamp_confidence(value: float) -> float:
    """Clamp a confidence value into [0, 1]."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, value))


class AiRequestType(Enum):
    """Operations the router can serve."""

    CLASSIFY_PRIORITY = "classify_priority"
    PARSE_TASK = "parse_task"
    SUGGEST_GOAL = "suggest_goal"
    GENERATE_BRIEFING = "generate_briefing"
    EXTRACT_ACTION_ITEMS = "extract_action_items"
    SUMMARIZE = "summarize"
    CHAT = "chat"


class EisenhowerQuadrant(Enum):
    """Eisenhower matrix quadrants."""

    DO_FIRST = "DO_FIRST"  # urgent + important
    SCHEDULE = "SCHEDULE"  # important, not urgent
    DELEGATE = "DELEGATE"  # urgent, not important
    ELIMINATE = "ELIMINATE"  # neither

    @classmethod
    def from_flags(cls, urgent: bool, important: bool) -> EisenhowerQuadrant:
        if urgent and important:
            return cls.DO_FIRST
        if important:
            return cls.SCHEDULE
        if urgent:
            return cls.DELEGATE
        return cls.ELIMINATE

    @property
    def is_urgent(self) -> bool:
        return self in (EisenhowerQuadrant.DO_FIRST, EisenhowerQuadrant.DELEGATE)

    @property
    def is_important(self) -> bool:
        return self in (EisenhowerQuadrant.DO_FIRST, EisenhowerQuadrant.SCHEDULE)

    @classmethod
    def parse(cls, value: str | EisenhowerQuadrant) -> EisenhowerQuadrant:
        """Parse a quadrant name leniently (``"do first"``, ``"Q2"``, ...)."""
        if isinstance(value, EisenhowerQuadrant):
            return value
        key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        if key in _QUADRANT_ALIASES:
            return _QUADRANT_ALIASES[key]
        raise ValueError(f"Unknown quadrant: {value!r}")


_QUADRANT_ALIASES: dict[str, EisenhowerQuadrant] = {
    "DO_FIRST": EisenhowerQuadrant.DO_FIRST,
    "DO": EisenhowerQuadrant.DO_FIRST,
    "DO_NOW": EisenhowerQuadrant.DO_FIRST,
    "URGENT_IMPORTANT": EisenhowerQuadrant.DO_FIRST,
    "Q1": EisenhowerQuadrant.DO_FIRST,
    "SCHEDULE": EisenhowerQuadrant.SCHEDULE,
    "PLAN": EisenhowerQuadrant.SCHEDULE,
    "DECIDE": EisenhowerQuadrant.SCHEDULE,
    "Q2": EisenhowerQuadrant.SCHEDULE,
    "DELEGATE": EisenhowerQuadrant.DELEGATE,
    "Q3": EisenhowerQuadrant.DELEGATE,
    "ELIMINATE": EisenhowerQuadrant.ELIMINATE,
    "DELETE": EisenhowerQuadrant.ELIMINATE,
    "DROP": EisenhowerQuadrant.ELIMINATE,
    "Q4": EisenhowerQuadrant.ELIMINATE,
}


class RoutingMode(Enum):
    """Which tiers participate in routing, and in what order."""

    RULE_BASED_ONLY = "rule_based_only"
    MODEL_ONLY = "model_only"
    HYBRID = "hybrid"
    HYBRID_SECONDARY = "hybrid_secondary"


class RoutingPath(Enum):
    """Path a routed request actually took."""

    RULE_BASED_DIRECT = "rule_based_direct"
    ESCALATED = "escalated"
    FALLBACK_AFTER_FAILURE = "fallback_after_failure"
    FALLBACK_UNAVAILABLE = "fallback_unavailable"
    FAILED = "failed"


class ErrorCode(Enum):
    """Typed failure kinds surfaced in ``AiResponse.error_code``."""

    BACKEND_UNAVAILABLE = "backend_unavailable"
    MODEL_NOT_FOUND = "model_not_found"
    MODEL_LOAD_FAILED = "model_load_failed"
    MODEL_NOT_LOADED = "model_not_loaded"
    GENERATION_FAILED = "generation_failed"
    PARSE_FAILED = "parse_failed"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    PROVIDER_ERROR = "provider_error"
    ALL_TIERS_FAILED = "all_tiers_failed"


@dataclass
class AiContext:
    """Optional signals that accompany a request."""

    previous_quadrant: EisenhowerQuadrant | None = None
    existing_goals: list[str] = field(default_factory=list)
    recent_tasks: list[str] = field(default_factory=list)
    current_time: str | None = None  # ISO-8601
    deadline: str | None = None  # ISO-8601 date or datetime
    timezone: str | None = None
    custom: dict[str, Any] = field(default_factory=dict)


@dataclass
class AiRequestOptions:
    """Per-request generation and routing knobs."""

    max_tokens: int = 256
    temperature: float = 0.3
    top_p: float = 0.9
    min_confidence: float | None = None  # None -> router default
    use_llm: bool = True
    fallback_to_rule_based: bool = True


@dataclass
class AiRequest:
    """A single operation to run through a provider."""

    type: AiRequestType
    input: str
    context: AiContext = field(default_factory=AiContext)
    options: AiRequestOptions = field(default_factory=AiRequestOptions)
    system_prompt: str | None = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def classify(cls, text: str, **options: Any) -> AiRequest:
        """Shorthand for a priority classification request."""
        return cls(
            type=AiRequestType.CLASSIFY_PRIORITY,
            input=text,
            options=AiRequestOptions(**options),
        )


# =============================================================================
# Result variants
# =============================================================================


class _ResultBase:
    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)  # type: ignore[call-overload]
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


@dataclass
class PriorityClassification(_ResultBase):
    quadrant: EisenhowerQuadrant
    confidence: float
    explanation: str
    is_urgent: bool
    is_important: bool
    urgency_signals: list[str] = field(default_factory=list)
    importance_signals: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class ParsedTask(_ResultBase):
    title: str
    due_date: str | None = None  # YYYY-MM-DD
    due_time: str | None = None  # HH:MM (24h)
    priority: str | None = None
    suggested_quadrant: EisenhowerQuadrant | None = None
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class SmartGoalSuggestion(_ResultBase):
    refined_goal: str
    specific: str
    measurable: str
    achievable: str
    relevant: str
    time_bound: str
    suggested_milestones: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class BriefingContent(_ResultBase):
    greeting: str
    summary: str
    top_priorities: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    motivational_quote: str | None = None
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class ActionItem:
    description: str
    assignee: str | None = None
    due_date: str | None = None


@dataclass
class ActionItems(_ResultBase):
    items: list[ActionItem] = field(default_factory=list)
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class Summary(_ResultBase):
    text: str
    key_points: list[str] = field(default_factory=list)
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


@dataclass
class ChatReply(_ResultBase):
    message: str
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = clamp_confidence(self.confidence)


AiResult = Union[
    PriorityClassification,
    ParsedTask,
    SmartGoalSuggestion,
    BriefingContent,
    ActionItems,
    Summary,
    ChatReply,
]

RESULT_TYPES: dict[AiRequestType, type] = {
    AiRequestType.CLASSIFY_PRIORITY: PriorityClassification,
    AiRequestType.PARSE_TASK: ParsedTask,
    AiRequestType.SUGGEST_GOAL: SmartGoalSuggestion,
    AiRequestType.GENERATE_BRIEFING: BriefingContent,
    AiRequestType.EXTRACT_ACTION_ITEMS: ActionItems,
    AiRequestType.SUMMARIZE: Summary,
    AiRequestType.CHAT: ChatReply,
}


# =============================================================================
# Response
# =============================================================================


@dataclass
class AiResponseMetadata:
    """Where an answer came from and what it cost."""

    provider: str
    model: str | None = None
    latency_ms: float = 0.0
    tokens_used: int = 0
    was_rule_based: bool = False
    was_llm_fallback: bool = False
    confidence_score: float | None = None
    routing_path: RoutingPath | None = None

    def __post_init__(self) -> None:
        if self.confidence_score is not None:
            self.confidence_score = clamp_confidence(self.confidence_score)


@dataclass
class AiResponse:
    """
    Outcome of a provider call.

    A successful response carries exactly one result variant; a failed one
    carries an error message and code and no result.
    """

    success: bool
    request_id: str
    metadata: AiResponseMetadata
    result: AiResult | None = None
    error: str | None = None
    error_code: ErrorCode | None = None
    raw_text: str | None = None

    def __post_init__(self) -> None:
        if self.success and self.result is None:
            raise ValueError("Successful AiResponse requires a result")
        if not self.success and self.result is not None:
            raise ValueError("Failed AiResponse must not carry a result")

    @classmethod
    def ok(
        cls,
        request: AiRequest,
        result: AiResult,
        metadata: AiResponseMetadata,
        raw_text: str | None = None,
    ) -> AiResponse:
        expected = RESULT_TYPES[request.type]
        if not isinstance(result, expected):
            raise TypeError(
                f"{request.type.value} expects {expected.__name__}, "
                f"got {type(result).__name__}"
            )
        if metadata.confidence_score is None:
            metadata.confidence_score = getattr(result, "confidence", None)
        return cls(
            success=True,
            request_id=request.id,
            result=result,
            metadata=metadata,
            raw_text=raw_text,
        )

    @classmethod
    def failure(
        cls,
        request: AiRequest,
        error: str,
        error_code: ErrorCode,
        metadata: AiResponseMetadata,
        raw_text: str | None = None,
    ) -> AiResponse:
        return cls(
            success=False,
            request_id=request.id,
            error=error,
            error_code=error_code,
            metadata=metadata,
            raw_text=raw_text,
        )

    @property
    def confidence(self) -> float:
        """Confidence of the result, or 0.0 for failures."""
        if self.result is not None:
            return clamp_confidence(getattr(self.result, "confidence", 0.0))
        return self.metadata.confidence_score or 0.0


__all__ = [
    "AiContext",
    "AiRequest",
    "AiRequestOptions",
    "AiRequestType",
    "AiResponse",
    "AiResponseMetadata",
    "AiResult",
    "ActionItem",
    "ActionItems",
    "BriefingContent",
    "ChatReply",
    "EisenhowerQuadrant",
    "ErrorCode",
    "ParsedTask",
    "PriorityClassification",
    "RESULT_TYPES",
    "RoutingMode",
    "RoutingPath",
    "SmartGoalSuggestion",
    "Summary",
    "clamp_confidence",
]
