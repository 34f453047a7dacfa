"""
Unit tests for model output parsing.
"""

import pytest

from prio_ai.response_parser import (
    DEFAULT_MODEL_CONFIDENCE,
    ResponseParseError,
    extract_json,
    parse_model_output,
)
from prio_ai.types import (
    ActionItems,
    AiRequestType,
    BriefingContent,
    ChatReply,
    EisenhowerQuadrant,
    ParsedTask,
    PriorityClassification,
    SmartGoalSuggestion,
    Summary,
)


class TestExtractJson:
    """Tests for extract_json."""

    def test_json_wrapped_in_prose(self):
        """Prose around the object is ignored."""
        text = 'Sure! Here you go: {"quadrant": "DO", "confidence": 0.8} Hope that helps.'
        assert extract_json(text) == {"quadrant": "DO", "confidence": 0.8}

    def test_nested_object(self):
        """Nested braces are kept intact."""
        text = '{"items": [{"description": "a"}], "confidence": 0.6}'
        assert extract_json(text)["items"][0]["description"] == "a"

    @pytest.mark.parametrize("text", ["no json here", "} backwards {", '{"broken": }'])
    def test_malformed(self, text):
        """Missing or broken objects raise ResponseParseError."""
        with pytest.raises(ResponseParseError):
            extract_json(text)


class TestClassification:
    """Tests for classification output."""

    def test_parses_quadrant_alias(self):
        """The prompt's DO alias maps to DO_FIRST and flags are derived."""
        result = parse_model_output(
            AiRequestType.CLASSIFY_PRIORITY,
            '{"quadrant": "DO", "confidence": 0.9, "reasoning": "deadline today"}',
        )
        assert isinstance(result, PriorityClassification)
        assert result.quadrant == EisenhowerQuadrant.DO_FIRST
        assert result.is_urgent and result.is_important
        assert result.explanation == "deadline today"
        assert result.confidence == pytest.approx(0.9)

    def test_contradicting_flags_follow_quadrant(self):
        """Model flags that disagree with the quadrant are ignored."""
        result = parse_model_output(
            AiRequestType.CLASSIFY_PRIORITY,
            '{"quadrant": "ELIMINATE", "is_urgent": true, "is_important": true}',
        )
        assert result.quadrant == EisenhowerQuadrant.ELIMINATE
        assert not result.is_urgent
        assert not result.is_important

    def test_confidence_clamped(self):
        """Out-of-range confidences are clamped."""
        result = parse_model_output(
            AiRequestType.CLASSIFY_PRIORITY, '{"quadrant": "SCHEDULE", "confidence": 3}'
        )
        assert result.confidence == 1.0

    def test_default_confidence(self):
        """Missing confidence uses the model default."""
        result = parse_model_output(AiRequestType.CLASSIFY_PRIORITY, '{"quadrant": "Q4"}')
        assert result.quadrant == EisenhowerQuadrant.ELIMINATE
        assert result.confidence == pytest.approx(DEFAULT_MODEL_CONFIDENCE)

    def test_missing_quadrant(self):
        """A missing quadrant names the failing field."""
        with pytest.raises(ResponseParseError, match="quadrant"):
            parse_model_output(AiRequestType.CLASSIFY_PRIORITY, '{"confidence": 0.5}')

    def test_unknown_quadrant(self):
        """Unknown quadrant names fail to parse."""
        with pytest.raises(ResponseParseError):
            parse_model_output(AiRequestType.CLASSIFY_PRIORITY, '{"quadrant": "LATER"}')


class TestOtherOperations:
    """Tests for the remaining operation parsers."""

    def test_parse_task(self):
        """Task JSON becomes ParsedTask."""
        result = parse_model_output(
            AiRequestType.PARSE_TASK,
            '{"title": " Call mom ", "due_date": "2026-02-11", "due_time": "17:00", '
            '"priority": "HIGH", "quadrant": "SCHEDULE", "confidence": 0.8}',
        )
        assert isinstance(result, ParsedTask)
        assert result.title == "Call mom"
        assert result.priority == "high"
        assert result.suggested_quadrant == EisenhowerQuadrant.SCHEDULE

    def test_parse_task_empty_title(self):
        """A blank title is rejected."""
        with pytest.raises(ResponseParseError):
            parse_model_output(AiRequestType.PARSE_TASK, '{"title": "  "}')

    def test_goal(self):
        """Goal JSON becomes SmartGoalSuggestion."""
        result = parse_model_output(
            AiRequestType.SUGGEST_GOAL,
            '{"refined_goal": "Run 10km by June", "milestones": ["5km", "8km"]}',
        )
        assert isinstance(result, SmartGoalSuggestion)
        assert result.suggested_milestones == ["5km", "8km"]

    def test_briefing(self):
        """Briefing JSON becomes BriefingContent."""
        result = parse_model_output(
            AiRequestType.GENERATE_BRIEFING,
            '{"greeting": "Hi", "summary": "Busy day", "quote": "Go."}',
        )
        assert isinstance(result, BriefingContent)
        assert result.motivational_quote == "Go."

    def test_action_items(self):
        """Action item JSON becomes ActionItems."""
        result = parse_model_output(
            AiRequestType.EXTRACT_ACTION_ITEMS,
            '{"items": [{"description": "Send deck", "assignee": "Ana"}]}',
        )
        assert isinstance(result, ActionItems)
        assert result.items[0].assignee == "Ana"

    def test_summary_json(self):
        """Summaries accept JSON."""
        result = parse_model_output(
            AiRequestType.SUMMARIZE, '{"summary": "Short.", "key_points": ["a"]}'
        )
        assert isinstance(result, Summary)
        assert result.text == "Short."
        assert result.key_points == ["a"]

    def test_summary_free_text(self):
        """Summaries fall back to the free text."""
        result = parse_model_output(AiRequestType.SUMMARIZE, '  "The team shipped v2."  ')
        assert result.text == "The team shipped v2."

    def test_chat(self):
        """Chat output is taken verbatim."""
        result = parse_model_output(AiRequestType.CHAT, "Hello there!\n")
        assert isinstance(result, ChatReply)
        assert result.message == "Hello there!"

    @pytest.mark.parametrize("request_type", [AiRequestType.CHAT, AiRequestType.SUMMARIZE])
    def test_empty_free_text(self, request_type):
        """Empty free-text output is a parse failure."""
        with pytest.raises(ResponseParseError):
            parse_model_output(request_type, "   ")
