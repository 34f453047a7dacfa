"""
Parse raw model output into typed results.

Models wrap their JSON in prose often enough that we take the span from the
first ``{`` to the last ``}``. Each operation's payload is validated with a
pydantic model; confidences are clamped into [0, 1].
"""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from .types import (
    ActionItem,
    ActionItems,
    AiRequestType,
    AiResult,
    BriefingContent,
    ChatReply,
    EisenhowerQuadrant,
    ParsedTask,
    PriorityClassification,
    SmartGoalSuggestion,
    Summary,
    clamp_confidence,
)

logger = logging.getLogger(__name__)

DEFAULT_MODEL_CONFIDENCE = 0.7


class ResponseParseError(ValueError):
    """Model output lacked the structure the operation requires."""


# =============================================================================
# Payload schemas
# =============================================================================


class ClassificationPayload(BaseModel):
    quadrant: str
    confidence: float = DEFAULT_MODEL_CONFIDENCE
    reasoning: str | None = None
    explanation: str | None = None
    is_urgent: bool | None = None
    is_important: bool | None = None


class ParsedTaskPayload(BaseModel):
    title: str
    due_date: str | None = None
    due_time: str | None = None
    priority: str | None = None
    quadrant: str | None = None
    confidence: float = DEFAULT_MODEL_CONFIDENCE


class GoalPayload(BaseModel):
    refined_goal: str
    specific: str = ""
    measurable: str = ""
    achievable: str = ""
    relevant: str = ""
    time_bound: str = ""
    milestones: list[str] = []
    confidence: float = DEFAULT_MODEL_CONFIDENCE


class BriefingPayload(BaseModel):
    greeting: str = ""
    summary: str
    top_priorities: list[str] = []
    insights: list[str] = []
    quote: str | None = None
    confidence: float = DEFAULT_MODEL_CONFIDENCE


class ActionItemPayload(BaseModel):
    description: str
    assignee: str | None = None
    due_date: str | None = None


class ActionItemsPayload(BaseModel):
    items: list[ActionItemPayload]
    confidence: float = DEFAULT_MODEL_CONFIDENCE


class SummaryPayload(BaseModel):
    summary: str
    key_points: list[str] = []
    confidence: float = DEFAULT_MODEL_CONFIDENCE


# =============================================================================
# Extraction
# =============================================================================


def extract_json(text: str) -> dict[str, Any]:
    """
    Extract the JSON object embedded in ``text``.

    Raises:
        ResponseParseError: If no well-formed object is present
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise ResponseParseError(f"No JSON object in model output: {text[:200]!r}")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Invalid JSON in model output: {e}") from e

    if not isinstance(data, dict):
        raise ResponseParseError("Model output JSON is not an object")
    return data


def _validate(schema: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ResponseParseError(f"Missing or invalid fields: {fields}") from e


def _quadrant(value: str) -> EisenhowerQuadrant:
    try:
        return EisenhowerQuadrant.parse(value)
    except ValueError as e:
        raise ResponseParseError(str(e)) from e


def _clean(text: str) -> str:
    return text.strip().strip('"').strip()


# =============================================================================
# Per-operation parsers
# =============================================================================


def parse_classification(text: str) -> PriorityClassification:
    payload = _validate(ClassificationPayload, extract_json(text))
    quadrant = _quadrant(payload.quadrant)
    # The quadrant is authoritative; model-supplied flags are advisory only
    if (payload.is_urgent not in (None, quadrant.is_urgent)) or (
        payload.is_important not in (None, quadrant.is_important)
    ):
        logger.debug(f"Ignoring urgency/importance flags that contradict {quadrant.value}")
    return PriorityClassification(
        quadrant=quadrant,
        confidence=clamp_confidence(payload.confidence),
        explanation=payload.reasoning or payload.explanation or "",
        is_urgent=quadrant.is_urgent,
        is_important=quadrant.is_important,
    )


def parse_task(text: str) -> ParsedTask:
    payload = _validate(ParsedTaskPayload, extract_json(text))
    if not payload.title.strip():
        raise ResponseParseError("Parsed task has an empty title")
    return ParsedTask(
        title=payload.title.strip(),
        due_date=payload.due_date,
        due_time=payload.due_time,
        priority=payload.priority.lower() if payload.priority else None,
        suggested_quadrant=_quadrant(payload.quadrant) if payload.quadrant else None,
        confidence=clamp_confidence(payload.confidence),
    )


def parse_goal(text: str) -> SmartGoalSuggestion:
    payload = _validate(GoalPayload, extract_json(text))
    return SmartGoalSuggestion(
        refined_goal=payload.refined_goal,
        specific=payload.specific,
        measurable=payload.measurable,
        achievable=payload.achievable,
        relevant=payload.relevant,
        time_bound=payload.time_bound,
        suggested_milestones=list(payload.milestones),
        confidence=clamp_confidence(payload.confidence),
    )


def parse_briefing(text: str) -> BriefingContent:
    payload = _validate(BriefingPayload, extract_json(text))
    return BriefingContent(
        greeting=payload.greeting,
        summary=payload.summary,
        top_priorities=list(payload.top_priorities),
        insights=list(payload.insights),
        motivational_quote=payload.quote,
        confidence=clamp_confidence(payload.confidence),
    )


def parse_action_items(text: str) -> ActionItems:
    payload = _validate(ActionItemsPayload, extract_json(text))
    return ActionItems(
        items=[
            ActionItem(description=i.description, assignee=i.assignee, due_date=i.due_date)
            for i in payload.items
        ],
        confidence=clamp_confidence(payload.confidence),
    )


def parse_summary(text: str) -> Summary:
    """JSON when the model produced it, otherwise the free text itself."""
    if "{" in text:
        try:
            payload = _validate(SummaryPayload, extract_json(text))
            return Summary(
                text=payload.summary,
                key_points=list(payload.key_points),
                confidence=clamp_confidence(payload.confidence),
            )
        except ResponseParseError:
            logger.debug("Summary output is not JSON; using free text")
    body = _clean(text)
    if not body:
        raise ResponseParseError("Empty summary")
    return Summary(text=body, confidence=DEFAULT_MODEL_CONFIDENCE)


def parse_chat(text: str) -> ChatReply:
    body = _clean(text)
    if not body:
        raise ResponseParseError("Empty chat reply")
    return ChatReply(message=body, confidence=DEFAULT_MODEL_CONFIDENCE)


_PARSERS = {
    AiRequestType.CLASSIFY_PRIORITY: parse_classification,
    AiRequestType.PARSE_TASK: parse_task,
    AiRequestType.SUGGEST_GOAL: parse_goal,
    AiRequestType.GENERATE_BRIEFING: parse_briefing,
    AiRequestType.EXTRACT_ACTION_ITEMS: parse_action_items,
    AiRequestType.SUMMARIZE: parse_summary,
    AiRequestType.CHAT: parse_chat,
}


def parse_model_output(request_type: AiRequestType, text: str) -> AiResult:
    """
    Parse model text into the result variant for ``request_type``.

    Raises:
        ResponseParseError: If the output cannot be parsed
    """
    return _PARSERS[request_type](text)


__all__ = [
    "ResponseParseError",
    "extract_json",
    "parse_model_output",
]
