"""
Unit tests for the rule-based provider.
"""

from datetime import datetime

import pytest

from prio_ai.rule_based import (
    RuleBasedFallbackProvider,
    classify_priority,
    extract_action_items,
    extract_due_date,
    extract_due_time,
    generate_briefing,
    parse_task,
    score_priority,
    suggest_goal,
    summarize,
)
from prio_ai.types import (
    AiContext,
    AiRequest,
    AiRequestType,
    ChatReply,
    EisenhowerQuadrant,
    ErrorCode,
    ParsedTask,
)

# 2026-02-10 is a Tuesday
NOW = "2026-02-10T09:00:00"


class TestPriorityClassification:
    """Tests for classify_priority."""

    def test_emergency_is_confident_do_first(self):
        """A loud production emergency is DO_FIRST with high confidence."""
        result = classify_priority("URGENT EMERGENCY: Production server down NOW!")
        assert result.quadrant == EisenhowerQuadrant.DO_FIRST
        assert result.is_urgent and result.is_important
        assert result.confidence >= 0.7
        assert result.confidence == pytest.approx(0.77)

    def test_vague_task_has_low_confidence(self):
        """Vague text lands in ELIMINATE without enough confidence to skip escalation."""
        result = classify_priority("Think about some stuff")
        assert result.quadrant == EisenhowerQuadrant.ELIMINATE
        assert result.confidence < 0.7

    def test_recreational_task_eliminated(self):
        """Recreational vocabulary lowers importance."""
        result = classify_priority("Browse social media feeds")
        assert result.quadrant == EisenhowerQuadrant.ELIMINATE
        assert "recreational" in result.importance_signals

    def test_career_growth_scheduled(self):
        """Important without time pressure is SCHEDULE."""
        result = classify_priority("Learn Kotlin Multiplatform for career growth")
        assert result.quadrant == EisenhowerQuadrant.SCHEDULE
        assert "career" in result.importance_signals

    def test_routine_urgent_task_delegated(self):
        """Urgent but routine is DELEGATE."""
        result = classify_priority("Reply to vendor email today")
        assert result.quadrant == EisenhowerQuadrant.DELEGATE
        assert "today" in result.urgency_signals
        assert "delegatable" in result.importance_signals

    def test_explanation_names_signals(self):
        """The explanation lists the matched signals."""
        result = classify_priority("URGENT EMERGENCY: Production server down NOW!")
        assert "urgent" in result.explanation
        assert "system outage" in result.explanation
        assert "business-critical system" in result.explanation

    def test_explanation_without_signals(self):
        """Texts with no signals still get an explanation."""
        result = classify_priority("Water the plants")
        assert "no urgency signals" in result.explanation

    def test_deterministic(self):
        """Same input, same output."""
        text = "Call the client about the invoice tomorrow"
        assert classify_priority(text) == classify_priority(text)


class TestContextSignals:
    """Tests for deadline and previous-quadrant adjustments."""

    def test_deadline_within_a_day_is_urgent(self):
        """A same-day deadline makes the task urgent."""
        context = AiContext(current_time=NOW, deadline="2026-02-10T17:00:00")
        scores = score_priority("Finish the report", context)
        assert scores.is_urgent
        assert "deadline within a day" in scores.urgency_signals

    def test_overdue_deadline(self):
        """Past deadlines add the most urgency."""
        context = AiContext(current_time=NOW, deadline="2026-02-09")
        scores = score_priority("Finish the report", context)
        assert scores.urgency == pytest.approx(0.8)
        assert "deadline overdue" in scores.urgency_signals

    def test_distant_deadline_lowers_urgency(self):
        """Deadlines weeks away reduce urgency."""
        context = AiContext(current_time=NOW, deadline="2026-03-30")
        scores = score_priority("Finish the report", context)
        assert scores.urgency == pytest.approx(0.2)

    def test_unparseable_deadline_ignored(self):
        """Garbage deadlines do not change the score."""
        context = AiContext(current_time=NOW, deadline="next-ish")
        assert score_priority("Finish the report", context).urgency == pytest.approx(0.3)

    def test_previous_quadrant_nudges_scores(self):
        """A previous quadrant nudges both axes toward it."""
        base = score_priority("Finish the report")
        nudged = score_priority(
            "Finish the report", AiContext(previous_quadrant=EisenhowerQuadrant.DO_FIRST)
        )
        assert nudged.urgency == pytest.approx(base.urgency + 0.1)
        assert nudged.importance == pytest.approx(base.importance + 0.1)


class TestDateExtraction:
    """Tests for date and time extraction."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("do it today", "2026-02-10"),
            ("do it tomorrow", "2026-02-11"),
            ("the day after tomorrow", "2026-02-12"),
            ("in 3 days", "2026-02-13"),
            ("next week", "2026-02-17"),
            ("by Friday", "2026-02-13"),
            ("on Tuesday", "2026-02-17"),
            ("on 2026-04-15", "2026-04-15"),
        ],
    )
    def test_due_date(self, text, expected):
        """Relative phrases resolve against the reference time."""
        due = extract_due_date(text, datetime.fromisoformat(NOW))
        assert due is not None
        assert due.isoformat() == expected

    def test_no_date(self):
        """Text without a date yields None."""
        assert extract_due_date("buy milk", datetime.fromisoformat(NOW)) is None

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("at 5pm", "17:00"),
            ("14:30", "14:30"),
            ("at 9:15 am", "09:15"),
            ("12am", "00:00"),
            ("12pm", "12:00"),
            ("lunch at noon", "12:00"),
        ],
    )
    def test_due_time(self, text, expected):
        """Clock times normalize to 24-hour HH:MM."""
        assert extract_due_time(text) == expected


class TestParseTask:
    """Tests for rule-based task parsing."""

    def test_call_mom(self):
        """Date and time words are stripped from the title."""
        task = parse_task("Call mom tomorrow at 5pm", AiContext(current_time=NOW))
        assert task.title == "Call mom"
        assert task.due_date == "2026-02-11"
        assert task.due_time == "17:00"

    def test_prefix_and_priority(self):
        """Command prefixes and priority phrases are removed."""
        task = parse_task(
            "Remind me to submit report by Friday high priority", AiContext(current_time=NOW)
        )
        assert task.title == "Submit report"
        assert task.due_date == "2026-02-13"
        assert task.priority == "high"

    def test_urgent_marker(self):
        """'urgent' implies high priority."""
        task = parse_task("urgent: finish slides at 14:30", AiContext(current_time=NOW))
        assert task.title == "Finish slides"
        assert task.priority == "high"
        assert task.due_time == "14:30"

    def test_suggests_quadrant(self):
        """Parsed tasks carry a suggested quadrant."""
        task = parse_task("Buy groceries")
        assert task.suggested_quadrant is not None
        assert task.due_date is None


class TestOtherOperations:
    """Tests for action items, summaries, goals and briefings."""

    def test_extract_action_items(self):
        """Bullets and modal sentences become action items."""
        text = (
            "Meeting notes.\n"
            "- Send the deck to @maria by Friday\n"
            "- Update roadmap\n"
            "Bob will book the venue tomorrow.\n"
            "The weather was nice."
        )
        result = extract_action_items(text, AiContext(current_time=NOW))
        assert len(result.items) == 3
        assert result.items[0].assignee == "maria"
        assert result.items[0].due_date == "2026-02-13"
        assert result.items[1].description == "Update roadmap"
        assert result.items[2].assignee == "Bob"
        assert result.items[2].due_date == "2026-02-11"

    def test_extract_action_items_none(self):
        """No actionable lines means no items and low confidence."""
        result = extract_action_items("It was a sunny day.")
        assert result.items == []
        assert result.confidence == pytest.approx(0.3)

    def test_summarize_short_text(self):
        """Short texts are kept whole."""
        summary = summarize("First point here. Second one follows. Third is last.")
        assert summary.text == "First point here. Second one follows. Third is last."
        assert len(summary.key_points) == 3

    def test_summarize_truncates(self):
        """Long texts are cut at a sentence boundary."""
        text = " ".join(f"Sentence number {i} is here." for i in range(50))
        summary = summarize(text)
        assert summary.text.startswith("Sentence number 0 is here.")
        assert len(summary.text) < len(text)
        assert summary.text.endswith(".")

    def test_suggest_goal(self):
        """Goals get a 90-day deadline and milestones by default."""
        goal = suggest_goal("Run 10km", AiContext(current_time=NOW))
        assert goal.refined_goal == "Run 10km by 2026-05-11"
        assert "10km" in goal.measurable
        assert len(goal.suggested_milestones) == 4
        assert goal.confidence == pytest.approx(0.4)

    def test_generate_briefing_ranks_tasks(self):
        """Briefings rank recent tasks by quadrant."""
        context = AiContext(
            current_time="2026-02-10T08:00:00",
            recent_tasks=[
                "Browse social media feeds",
                "URGENT EMERGENCY: Production server down NOW!",
                "Learn Kotlin for career growth",
            ],
            existing_goals=["Ship v2"],
        )
        briefing = generate_briefing("", context)
        assert briefing.greeting == "Good morning!"
        assert briefing.top_priorities[0].startswith("URGENT EMERGENCY")
        assert briefing.top_priorities[1].startswith("Learn Kotlin")
        assert any("Ship v2" in insight for insight in briefing.insights)
        assert briefing.motivational_quote

    def test_generate_briefing_empty(self):
        """No tasks still yields a briefing."""
        briefing = generate_briefing("", AiContext(current_time="2026-02-10T20:00:00"))
        assert briefing.greeting == "Good evening!"
        assert briefing.top_priorities == []


class TestRuleBasedFallbackProvider:
    """Tests for the provider wrapper."""

    def test_always_available(self):
        """The provider is available from construction."""
        assert RuleBasedFallbackProvider().is_available

    @pytest.mark.asyncio
    async def test_complete_classification(self):
        """complete() returns a tagged rule-based response."""
        provider = RuleBasedFallbackProvider()
        request = AiRequest.classify("Pay rent today")
        response = await provider.complete(request)
        assert response.success
        assert response.request_id == request.id
        assert response.metadata.provider == "rule-based"
        assert response.metadata.was_rule_based is True

    @pytest.mark.asyncio
    async def test_complete_every_operation(self):
        """Every operation type yields a result."""
        provider = RuleBasedFallbackProvider()
        for request_type in AiRequestType:
            request = AiRequest(type=request_type, input="Send the report tomorrow. It matters.")
            response = await provider.complete(request)
            assert response.success, request_type

    @pytest.mark.asyncio
    async def test_chat_is_low_confidence(self):
        """Chat replies are canned and low confidence."""
        response = await RuleBasedFallbackProvider().complete(
            AiRequest(type=AiRequestType.CHAT, input="How are you?")
        )
        assert isinstance(response.result, ChatReply)
        assert response.confidence == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_parse_task_request(self):
        """PARSE_TASK requests return ParsedTask."""
        response = await RuleBasedFallbackProvider().complete(
            AiRequest(type=AiRequestType.PARSE_TASK, input="Call mom tomorrow at 5pm")
        )
        assert isinstance(response.result, ParsedTask)

    @pytest.mark.asyncio
    async def test_handler_error_becomes_failure(self, monkeypatch):
        """An internal error is returned as a typed failure."""
        provider = RuleBasedFallbackProvider()

        def boom(request):
            raise RuntimeError("regex exploded")

        monkeypatch.setattr(provider, "handle", boom)
        response = await provider.complete(AiRequest.classify("x"))
        assert not response.success
        assert response.error_code == ErrorCode.PROVIDER_ERROR

    @pytest.mark.asyncio
    async def test_release_keeps_available(self):
        """Releasing a stateless provider leaves it available."""
        provider = RuleBasedFallbackProvider()
        await provider.release()
        assert provider.is_available
        assert await provider.initialize() is True

    def test_model_info(self):
        """Model info reports the rule-based model."""
        info = RuleBasedFallbackProvider().get_model_info()
        assert info.model_id == "rule-based"
        assert info.is_loaded
