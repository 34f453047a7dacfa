"""
Deterministic rule-based provider.

Classifies tasks into Eisenhower quadrants from lexical signals and handles
the remaining operations with lightweight heuristics. Pure: no I/O, no
native code, always available. Must stay fast (<50ms) so it uses regexes
only.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .catalog import RULE_BASED_MODEL_ID
from .provider import AiCapability, AiProvider, ModelInfo
from .types import (
    ActionItem,
    ActionItems,
    AiContext,
    AiRequest,
    AiRequestType,
    AiResponse,
    AiResponseMetadata,
    AiResult,
    BriefingContent,
    ChatReply,
    EisenhowerQuadrant,
    ErrorCode,
    ParsedTask,
    PriorityClassification,
    SmartGoalSuggestion,
    Summary,
)

logger = logging.getLogger(__name__)

URGENCY_PRIOR = 0.30
IMPORTANCE_PRIOR = 0.35
THRESHOLD = 0.5
MAX_CONFIDENCE = 0.95


@dataclass(frozen=True)
class Signal:
    """A weighted lexical pattern."""

    name: str
    pattern: re.Pattern[str]
    weight: float


def _sig(name: str, pattern: str, weight: float) -> Signal:
    return Signal(name, re.compile(pattern, re.IGNORECASE), weight)


_WEEKDAYS = "monday|tuesday|wednesday|thursday|friday|saturday|sunday"

URGENCY_SIGNALS: list[Signal] = [
    _sig("urgent", r"\burgent(ly)?\b", 0.4),
    _sig("asap", r"\b(asap|a\.s\.a\.p)\b|as soon as possible", 0.4),
    _sig("emergency", r"\b(emergency|crisis)\b", 0.4),
    _sig("immediately", r"\b(immediately|right away|right now)\b", 0.35),
    _sig("now", r"\bnow\b", 0.3),
    _sig("today", r"\b(today|tonight|this (morning|afternoon|evening))\b", 0.35),
    _sig("end of day", r"\b(eod|end of (the )?day|close of business)\b", 0.35),
    _sig("overdue", r"\b(overdue|past due)\b", 0.35),
    _sig("within hours", r"\bwithin (an? |\d+ |the next \d+ )?(hour|hours|minutes)\b", 0.35),
    _sig("tomorrow", r"\btomorrow\b", 0.25),
    _sig("this week", rf"\b(this week|by ({_WEEKDAYS}))\b", 0.2),
    _sig("deadline", r"\b(deadline|due)\b", 0.15),
    _sig(
        "system outage",
        r"\b(server|system|site|website|service|app|production|prod|database)\b.{0,20}"
        r"\b(down|outage|crash(ed|ing)?|broken|failing|unreachable)\b",
        0.4,
    ),
    _sig("critical", r"\b(critical|blocker|blocking)\b", 0.2),
    _sig(
        "no time pressure",
        r"\b(next (week|month|year)|someday|some day|eventually|no rush|whenever|"
        r"when i have time)\b",
        -0.3,
    ),
]

IMPORTANCE_SIGNALS: list[Signal] = [
    _sig("explicitly important", r"\b(important|crucial|essential|vital|high priority)\b", 0.3),
    _sig(
        "career",
        r"\b(career|promotion|performance review|interview|job|boss|manager|"
        r"presentation|resume|raise)\b",
        0.3,
    ),
    _sig(
        "financial",
        r"\b(tax(es)?|invoice|payment|bills?|budget|salary|mortgage|rent|bank|loan|"
        r"revenue|contract|payroll)\b",
        0.3,
    ),
    _sig(
        "health",
        r"\b(doctor|dentist|hospital|medical|medication|medicine|health|surgery|"
        r"therapy|prescription|checkup|workout|exercise)\b",
        0.3,
    ),
    _sig("client-facing", r"\b(clients?|customers?|stakeholders?|investors?|board meeting)\b", 0.3),
    _sig(
        "business-critical system",
        r"\b(production|prod|outage|security|breach|servers?|data loss)\b",
        0.3,
    ),
    _sig("emergency", r"\b(emergency|crisis)\b", 0.2),
    _sig(
        "family or legal",
        r"\b(family|kids?|child(ren)?|wife|husband|partner|mom|dad|mother|father|"
        r"parents?|legal|lawyer|court|visa|passport|insurance)\b",
        0.25,
    ),
    _sig(
        "long-term growth",
        r"\b(learn(ing)?|course|study|strategy|strategic|planning|goals?|skills?|"
        r"certification|research|roadmap|mentor(ing)?)\b",
        0.2,
    ),
    _sig(
        "recreational",
        r"\b(social media|facebook|instagram|tiktok|twitter|youtube|netflix|tv|"
        r"video games?|gaming|browse|browsing|scroll(ing)?|gossip|memes?)\b",
        -0.35,
    ),
    _sig(
        "administrative",
        r"\b(filing|organi[sz]e|sort|clean up|tidy|inbox|paperwork|forms?|"
        r"timesheet|spam|newsletters?)\b",
        -0.2,
    ),
    _sig(
        "optional",
        r"\b(maybe|optional|if time|nice to have|not important|unimportant|trivial|"
        r"random|stuff)\b",
        -0.3,
    ),
    _sig(
        "delegatable",
        r"\b(routine|errands?|pick up|drop off|reschedule|forward|reply to|"
        r"respond to|call back|order|coffee|lunch)\b",
        -0.2,
    ),
]

_QUADRANT_ORDER = [
    EisenhowerQuadrant.DO_FIRST,
    EisenhowerQuadrant.SCHEDULE,
    EisenhowerQuadrant.DELEGATE,
    EisenhowerQuadrant.ELIMINATE,
]

_QUOTES = [
    "What is important is seldom urgent and what is urgent is seldom important.",
    "The key is not to prioritize what's on your schedule, but to schedule your priorities.",
    "Focus on being productive instead of busy.",
    "Action is the foundational key to all success.",
    "You don't have to see the whole staircase, just take the first step.",
]


@dataclass
class PriorityScores:
    """Urgency and importance scores with the signals that produced them."""

    urgency: float
    importance: float
    urgency_signals: list[str] = field(default_factory=list)
    importance_signals: list[str] = field(default_factory=list)

    @property
    def is_urgent(self) -> bool:
        return self.urgency >= THRESHOLD

    @property
    def is_important(self) -> bool:
        return self.importance >= THRESHOLD

    @property
    def quadrant(self) -> EisenhowerQuadrant:
        return EisenhowerQuadrant.from_flags(self.is_urgent, self.is_important)

    @property
    def confidence(self) -> float:
        """
        Confidence from the margin of each score from the threshold.

        The weaker axis bounds the confidence, since a borderline axis makes
        the quadrant uncertain no matter how strong the other one is.
        """
        u_margin = abs(self.urgency - THRESHOLD) / THRESHOLD
        i_margin = abs(self.importance - THRESHOLD) / THRESHOLD
        return round(min(MAX_CONFIDENCE, 0.35 + 0.6 * min(u_margin, i_margin)), 3)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _apply(signals: list[Signal], text: str) -> tuple[float, list[str]]:
    total = 0.0
    matched = []
    for signal in signals:
        if signal.pattern.search(text):
            total += signal.weight
            matched.append(signal.name)
    return total, matched


def reference_time(context: AiContext | None) -> datetime:
    """The request's notion of "now", from context when supplied."""
    if context is not None and context.current_time:
        try:
            return _naive(datetime.fromisoformat(context.current_time))
        except ValueError:
            logger.debug(f"Unparseable current_time: {context.current_time!r}")
    return datetime.now()


def _naive(moment: datetime) -> datetime:
    return moment.replace(tzinfo=None) if moment.tzinfo is not None else moment


def _deadline_adjustment(context: AiContext) -> tuple[float, str | None]:
    if not context.deadline:
        return 0.0, None
    try:
        deadline = _naive(datetime.fromisoformat(context.deadline))
    except ValueError:
        logger.debug(f"Unparseable deadline: {context.deadline!r}")
        return 0.0, None

    days = (deadline - reference_time(context)).total_seconds() / 86400
    if days < 0:
        return 0.5, "deadline overdue"
    if days <= 1:
        return 0.4, "deadline within a day"
    if days <= 3:
        return 0.25, "deadline within 3 days"
    if days <= 7:
        return 0.1, "deadline within a week"
    if days > 14:
        return -0.1, "deadline more than two weeks out"
    return 0.0, None


def score_priority(text: str, context: AiContext | None = None) -> PriorityScores:
    """Compute urgency and importance scores for a task description."""
    context = context or AiContext()
    urgency_delta, urgency_signals = _apply(URGENCY_SIGNALS, text)
    importance_delta, importance_signals = _apply(IMPORTANCE_SIGNALS, text)

    deadline_delta, deadline_signal = _deadline_adjustment(context)
    if deadline_signal:
        urgency_delta += deadline_delta
        urgency_signals.append(deadline_signal)

    previous = context.previous_quadrant
    if previous is not None:
        urgency_delta += 0.1 if previous.is_urgent else -0.1
        importance_delta += 0.1 if previous.is_important else -0.1

    return PriorityScores(
        urgency=_clamp(URGENCY_PRIOR + urgency_delta),
        importance=_clamp(IMPORTANCE_PRIOR + importance_delta),
        urgency_signals=urgency_signals,
        importance_signals=importance_signals,
    )


def _describe(scores: PriorityScores) -> str:
    urgent = "urgent" if scores.is_urgent else "not urgent"
    important = "important" if scores.is_important else "not important"
    u_detail = ", ".join(scores.urgency_signals) or "no urgency signals"
    i_detail = ", ".join(scores.importance_signals) or "no importance signals"
    return (
        f"{scores.quadrant.value}: {urgent} ({u_detail}; score {scores.urgency:.2f}), "
        f"{important} ({i_detail}; score {scores.importance:.2f})"
    )


def classify_priority(text: str, context: AiContext | None = None) -> PriorityClassification:
    """Classify a task into an Eisenhower quadrant."""
    scores = score_priority(text, context)
    return PriorityClassification(
        quadrant=scores.quadrant,
        confidence=scores.confidence,
        explanation=_describe(scores),
        is_urgent=scores.is_urgent,
        is_important=scores.is_important,
        urgency_signals=list(scores.urgency_signals),
        importance_signals=list(scores.importance_signals),
    )


# =============================================================================
# Date and time extraction
# =============================================================================

_DAY_AFTER_TOMORROW = re.compile(r"\bday after tomorrow\b", re.IGNORECASE)
_TODAY = re.compile(r"\b(today|tonight)\b", re.IGNORECASE)
_TOMORROW = re.compile(r"\btomorrow\b", re.IGNORECASE)
_IN_DAYS = re.compile(r"\bin (\d{1,3}) days?\b", re.IGNORECASE)
_NEXT_WEEK = re.compile(r"\bnext week\b", re.IGNORECASE)
_WEEKDAY = re.compile(rf"\b(?:(next|this|on|by)\s+)?({_WEEKDAYS})\b", re.IGNORECASE)
_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

_CLOCK_TIME = re.compile(r"\b(?:at\s+)?(\d{1,2}):(\d{2})\s*(am|pm)?\b", re.IGNORECASE)
_HOUR_TIME = re.compile(r"\b(?:at\s+)?(\d{1,2})\s*(am|pm)\b", re.IGNORECASE)
_NAMED_TIME = re.compile(r"\b(?:at\s+)?(noon|midnight)\b", re.IGNORECASE)

_DATE_PATTERNS = [_DAY_AFTER_TOMORROW, _TODAY, _TOMORROW, _IN_DAYS, _NEXT_WEEK, _WEEKDAY, _ISO_DATE]
_TIME_PATTERNS = [_CLOCK_TIME, _HOUR_TIME, _NAMED_TIME]


def extract_due_date(text: str, now: datetime) -> date | None:
    """Resolve a relative or ISO date phrase against ``now``."""
    today = now.date()
    iso = _ISO_DATE.search(text)
    if iso:
        try:
            return date.fromisoformat(iso.group(1))
        except ValueError:
            pass
    if _DAY_AFTER_TOMORROW.search(text):
        return today + timedelta(days=2)
    if _TODAY.search(text):
        return today
    if _TOMORROW.search(text):
        return today + timedelta(days=1)
    in_days = _IN_DAYS.search(text)
    if in_days:
        return today + timedelta(days=int(in_days.group(1)))
    if _NEXT_WEEK.search(text):
        return today + timedelta(days=7)
    weekday = _WEEKDAY.search(text)
    if weekday:
        target = _WEEKDAYS.split("|").index(weekday.group(2).lower())
        days_ahead = (target - today.weekday()) % 7
        if days_ahead == 0:
            days_ahead = 7
        return today + timedelta(days=days_ahead)
    return None


def extract_due_time(text: str) -> str | None:
    """Extract a clock time as 24-hour ``HH:MM``."""
    clock = _CLOCK_TIME.search(text)
    if clock:
        hour = _to_24h(int(clock.group(1)), clock.group(3))
        minute = int(clock.group(2))
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
    hour_only = _HOUR_TIME.search(text)
    if hour_only:
        hour = _to_24h(int(hour_only.group(1)), hour_only.group(2))
        if hour < 24:
            return f"{hour:02d}:00"
    named = _NAMED_TIME.search(text)
    if named:
        return "12:00" if named.group(1).lower() == "noon" else "00:00"
    return None


def _to_24h(hour: int, meridiem: str | None) -> int:
    if not meridiem:
        return hour
    meridiem = meridiem.lower()
    if meridiem == "pm" and hour < 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour


# =============================================================================
# Heuristic handlers for the other operations
# =============================================================================

_COMMAND_PREFIX = re.compile(
    r"^\s*(remind me to|remember to|don't forget to|todo:|to do:|task:|"
    r"i need to|i have to|need to)\s*",
    re.IGNORECASE,
)
_PRIORITY_PHRASE = re.compile(
    r"\b(?:(high|medium|low)\s+priority|priority:?\s*(high|medium|low))\b", re.IGNORECASE
)
_HIGH_MARKERS = re.compile(r"(\burgent\b|\basap\b|!!)", re.IGNORECASE)
_FILLER = re.compile(r"\b(by|on|at|due|before)\s*$", re.IGNORECASE)


def parse_task(text: str, context: AiContext | None = None) -> ParsedTask:
    now = reference_time(context)
    due = extract_due_date(text, now)
    due_time = extract_due_time(text)

    priority = None
    phrase = _PRIORITY_PHRASE.search(text)
    if phrase:
        priority = (phrase.group(1) or phrase.group(2)).lower()
    elif _HIGH_MARKERS.search(text):
        priority = "high"

    title = _COMMAND_PREFIX.sub("", text)
    for pattern in (*_DATE_PATTERNS, *_TIME_PATTERNS, _PRIORITY_PHRASE, _HIGH_MARKERS):
        title = pattern.sub(" ", title)
    title = re.sub(r"\s+", " ", title).strip(" ,;:-!.")
    title = _FILLER.sub("", title).strip(" ,;:-")
    title = title[:1].upper() + title[1:] if title else text.strip()

    classification = classify_priority(text, context)
    found = sum(x is not None for x in (due, due_time, priority))
    return ParsedTask(
        title=title,
        due_date=due.isoformat() if due else None,
        due_time=due_time,
        priority=priority,
        suggested_quadrant=classification.quadrant,
        confidence=0.45 + 0.05 * found,
    )


_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)]|\[ ?\])\s+")
_ACTION_LABEL = re.compile(r"^\s*(?:todo|action(?: item)?|ai|follow[- ]up)\s*[:\-]\s*", re.IGNORECASE)
_MODAL = re.compile(r"\b(will|should|needs? to|must|has to|have to|please)\b", re.IGNORECASE)
_MENTION = re.compile(r"@(\w+)")
_NAMED_ASSIGNEE = re.compile(r"^([A-Z][a-z]+)\s+(?:will|to|should|needs? to|must|has to)\b")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _units(text: str) -> list[str]:
    units = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if _BULLET.match(line):
            units.append(line)
        else:
            units.extend(s.strip() for s in _SENTENCE_SPLIT.split(line) if s.strip())
    return units


def extract_action_items(text: str, context: AiContext | None = None) -> ActionItems:
    now = reference_time(context)
    items = []
    for unit in _units(text):
        is_bullet = bool(_BULLET.match(unit))
        is_labeled = bool(_ACTION_LABEL.match(unit))
        if not (is_bullet or is_labeled or _MODAL.search(unit)):
            continue
        description = _ACTION_LABEL.sub("", _BULLET.sub("", unit)).strip().rstrip(".")
        if not description:
            continue

        assignee = None
        mention = _MENTION.search(description) or _NAMED_ASSIGNEE.match(description)
        if mention:
            assignee = mention.group(1)

        due = extract_due_date(description, now)
        items.append(
            ActionItem(
                description=description,
                assignee=assignee,
                due_date=due.isoformat() if due else None,
            )
        )
    return ActionItems(items=items, confidence=0.5 if items else 0.3)


def summarize(text: str, max_chars: int = 240) -> Summary:
    units = _units(text)
    sentences = [u for u in units if not _BULLET.match(u)]
    bullets = [_BULLET.sub("", u).strip() for u in units if _BULLET.match(u)]

    chosen: list[str] = []
    for sentence in sentences:
        if chosen and len(" ".join(chosen)) + len(sentence) > max_chars:
            break
        chosen.append(sentence)
    body = " ".join(chosen) or " ".join(bullets[:2]) or text.strip()[:max_chars]

    key_points = bullets[:5] or sentences[:3]
    return Summary(text=body, key_points=key_points, confidence=0.3)


_NUMBER = re.compile(r"\b\d+(?:[.,]\d+)?\s*(?:%|[a-z]+)?", re.IGNORECASE)


def suggest_goal(text: str, context: AiContext | None = None) -> SmartGoalSuggestion:
    now = reference_time(context)
    goal = text.strip().rstrip(".")
    goal = goal[:1].upper() + goal[1:]

    target = extract_due_date(goal, now) or (now.date() + timedelta(days=90))
    span = (target - now.date()).days or 1

    number = _NUMBER.search(goal)
    if number:
        measurable = f"Reach {number.group(0).strip()} and track progress weekly"
    else:
        measurable = "Define one metric and review it weekly"

    milestones = [
        f"{pct}% complete by {(now.date() + timedelta(days=round(span * pct / 100))).isoformat()}"
        for pct in (25, 50, 75, 100)
    ]
    return SmartGoalSuggestion(
        refined_goal=f"{goal} by {target.isoformat()}",
        specific=f"Focus on: {goal}",
        measurable=measurable,
        achievable="Break the goal into weekly steps that fit your current schedule",
        relevant="Connect this goal to your top priorities before committing time",
        time_bound=f"Complete by {target.isoformat()}",
        suggested_milestones=milestones,
        confidence=0.4,
    )


def generate_briefing(text: str, context: AiContext | None = None) -> BriefingContent:
    context = context or AiContext()
    now = reference_time(context)
    if now.hour < 12:
        greeting = "Good morning!"
    elif now.hour < 18:
        greeting = "Good afternoon!"
    else:
        greeting = "Good evening!"

    ranked = sorted(
        ((task, classify_priority(task, context)) for task in context.recent_tasks),
        key=lambda pair: (_QUADRANT_ORDER.index(pair[1].quadrant), -pair[1].confidence),
    )
    counts = {q: 0 for q in _QUADRANT_ORDER}
    for _, classification in ranked:
        counts[classification.quadrant] += 1

    if ranked:
        summary = (
            f"You have {len(ranked)} tasks: {counts[EisenhowerQuadrant.DO_FIRST]} to do first, "
            f"{counts[EisenhowerQuadrant.SCHEDULE]} to schedule, "
            f"{counts[EisenhowerQuadrant.DELEGATE]} to delegate and "
            f"{counts[EisenhowerQuadrant.ELIMINATE]} to drop."
        )
    else:
        summary = "No tasks on your list yet."

    insights = []
    if counts[EisenhowerQuadrant.DO_FIRST] > 3:
        insights.append("Your urgent list is long. Protect a focus block for the top items.")
    if counts[EisenhowerQuadrant.SCHEDULE] and not counts[EisenhowerQuadrant.DO_FIRST]:
        insights.append("Nothing is on fire today. Good time to move important work forward.")
    if counts[EisenhowerQuadrant.DELEGATE]:
        insights.append("Some urgent items could be handed off.")
    for goal in context.existing_goals[:1]:
        insights.append(f"Keep your goal in view: {goal}")

    return BriefingContent(
        greeting=greeting,
        summary=summary,
        top_priorities=[task for task, _ in ranked[:3]],
        insights=insights,
        motivational_quote=_QUOTES[now.date().toordinal() % len(_QUOTES)],
        confidence=0.5 if ranked else 0.35,
    )


CHAT_FALLBACK_MESSAGE = (
    "I can classify tasks, parse reminders, extract action items, summarize notes "
    "and draft briefings. Open-ended chat needs an on-device model to be loaded."
)


class RuleBasedFallbackProvider(AiProvider):
    """
    Always-available tier backed by regex heuristics.

    Results are a pure function of the request's input and context.
    """

    provider_id = "rule-based"
    display_name = "Rule-based"
    capabilities = frozenset({AiCapability.CLASSIFICATION, AiCapability.EXTRACTION})

    def __init__(self) -> None:
        super().__init__()
        self.availability.set(True)

    async def initialize(self) -> bool:
        return True

    async def release(self) -> None:
        # No resources; stays available
        return None

    def handle(self, request: AiRequest) -> AiResult:
        """Run a request synchronously and return its result variant."""
        text, ctx = request.input, request.context
        if request.type == AiRequestType.CLASSIFY_PRIORITY:
            return classify_priority(text, ctx)
        if request.type == AiRequestType.PARSE_TASK:
            return parse_task(text, ctx)
        if request.type == AiRequestType.SUGGEST_GOAL:
            return suggest_goal(text, ctx)
        if request.type == AiRequestType.GENERATE_BRIEFING:
            return generate_briefing(text, ctx)
        if request.type == AiRequestType.EXTRACT_ACTION_ITEMS:
            return extract_action_items(text, ctx)
        if request.type == AiRequestType.SUMMARIZE:
            return summarize(text)
        return ChatReply(message=CHAT_FALLBACK_MESSAGE, confidence=0.1)

    async def complete(self, request: AiRequest) -> AiResponse:
        start = time.perf_counter()
        try:
            result = self.handle(request)
        except Exception as e:
            logger.error(f"Rule-based handler failed for {request.type.value}: {e}")
            return AiResponse.failure(
                request,
                error=str(e),
                error_code=ErrorCode.PROVIDER_ERROR,
                metadata=AiResponseMetadata(
                    provider=self.provider_id,
                    model=RULE_BASED_MODEL_ID,
                    latency_ms=(time.perf_counter() - start) * 1000,
                    was_rule_based=True,
                ),
            )

        return AiResponse.ok(
            request,
            result,
            AiResponseMetadata(
                provider=self.provider_id,
                model=RULE_BASED_MODEL_ID,
                latency_ms=(time.perf_counter() - start) * 1000,
                was_rule_based=True,
            ),
        )

    def get_model_info(self) -> ModelInfo:
        return ModelInfo(
            model_id=RULE_BASED_MODEL_ID,
            display_name="Rule-based classifier",
            provider_id=self.provider_id,
            is_loaded=True,
            details={
                "urgency_signals": len(URGENCY_SIGNALS),
                "importance_signals": len(IMPORTANCE_SIGNALS),
            },
        )


__all__ = [
    "IMPORTANCE_SIGNALS",
    "PriorityScores",
    "RuleBasedFallbackProvider",
    "URGENCY_SIGNALS",
    "classify_priority",
    "extract_action_items",
    "extract_due_date",
    "extract_due_time",
    "generate_briefing",
    "parse_task",
    "score_priority",
    "suggest_goal",
    "summarize",
]
