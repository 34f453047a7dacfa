"""
Prompt construction for model-backed tiers.

Each model family expects its own chat delimiters. ``format_prompt`` wraps a
system/user pair in the right scheme, and ``build_prompt`` renders a request
into that pair for every operation type.
"""

from __future__ import annotations

from enum import Enum

from .types import AiRequest, AiRequestType


class PromptTemplate(Enum):
    """Chat delimiter schemes by model family."""

    PHI3 = "phi3"
    MISTRAL = "mistral"
    CHATML = "chatml"
    LLAMA2 = "llama2"
    LLAMA3 = "llama3"
    GEMMA = "gemma"
    RAW = "raw"


def _joined(system: str | None, user: str) -> str:
    return f"{system}\n\n{user}" if system else user


def format_prompt(template: PromptTemplate, system: str | None, user: str) -> str:
    """Wrap a system/user prompt pair in the template's delimiters."""
    if template == PromptTemplate.PHI3:
        # Phi-3 has no system role; the system text leads the user turn
        return f"<|user|>\n{_joined(system, user)}<|end|>\n<|assistant|>\n"

    if template == PromptTemplate.MISTRAL:
        return f"<s>[INST] {_joined(system, user)} [/INST]"

    if template == PromptTemplate.CHATML:
        parts = []
        if system:
            parts.append(f"<|im_start|>system\n{system}<|im_end|>\n")
        parts.append(f"<|im_start|>user\n{user}<|im_end|>\n")
        parts.append("<|im_start|>assistant\n")
        return "".join(parts)

    if template == PromptTemplate.LLAMA2:
        if system:
            return f"<s>[INST] <<SYS>>\n{system}\n<</SYS>>\n\n{user} [/INST]"
        return f"<s>[INST] {user} [/INST]"

    if template == PromptTemplate.LLAMA3:
        parts = ["<|begin_of_text|>"]
        if system:
            parts.append(f"<|start_header_id|>system<|end_header_id|>\n\n{system}<|eot_id|>")
        parts.append(f"<|start_header_id|>user<|end_header_id|>\n\n{user}<|eot_id|>")
        parts.append("<|start_header_id|>assistant<|end_header_id|>\n\n")
        return "".join(parts)

    if template == PromptTemplate.GEMMA:
        return (
            f"<start_of_turn>user\n{_joined(system, user)}<end_of_turn>\n"
            "<start_of_turn>model\n"
        )

    return user


_STOP_SEQUENCES: dict[PromptTemplate, list[str]] = {
    PromptTemplate.PHI3: ["<|end|>", "<|user|>"],
    PromptTemplate.MISTRAL: ["</s>", "[INST]"],
    PromptTemplate.CHATML: ["<|im_end|>", "<|im_start|>"],
    PromptTemplate.LLAMA2: ["</s>", "[INST]"],
    PromptTemplate.LLAMA3: ["<|eot_id|>", "<|start_header_id|>"],
    PromptTemplate.GEMMA: ["<end_of_turn>", "<start_of_turn>"],
    PromptTemplate.RAW: [],
}


def stop_sequences(template: PromptTemplate) -> list[str]:
    """Sequences that end generation for a template."""
    return list(_STOP_SEQUENCES[template])


# =============================================================================
# System prompts
# =============================================================================

CLASSIFY_SYSTEM_PROMPT = """You are a productivity assistant that classifies tasks using the Eisenhower Matrix.

The Eisenhower Matrix has 4 quadrants:
- DO (Urgent + Important): Tasks with imminent deadlines that directly impact key goals. Do these first.
- SCHEDULE (Important, Not Urgent): Tasks that matter for long-term goals but have no immediate deadline. Schedule time for these.
- DELEGATE (Urgent, Not Important): Time-sensitive but routine tasks that don't require your expertise. Consider delegating.
- ELIMINATE (Not Urgent, Not Important): Low-value activities that waste time. Minimize or eliminate.

URGENCY signals: deadlines, "today", "ASAP", "urgent", time pressure, "by [date]", "due", "deadline"
IMPORTANCE signals: impacts goals, career, health, key relationships, client/customer, strategic value, learning

Respond with ONLY a JSON object in this exact format:
{"quadrant": "DO|SCHEDULE|DELEGATE|ELIMINATE", "confidence": 0.0-1.0, "reasoning": "brief explanation"}"""

PARSE_TASK_SYSTEM_PROMPT = """You are a task parser. Extract structured information from natural language task descriptions.

Fields:
- title: short imperative task title, without date/time words
- due_date: YYYY-MM-DD or null
- due_time: HH:MM (24-hour) or null
- priority: "high", "medium", "low" or null
- quadrant: DO|SCHEDULE|DELEGATE|ELIMINATE or null

Respond with ONLY valid JSON, no explanation:
{"title": "...", "due_date": null, "due_time": null, "priority": null, "quadrant": null, "confidence": 0.0-1.0}"""

SUGGEST_GOAL_SYSTEM_PROMPT = """You are a goal-setting coach. Rewrite the user's goal as a SMART goal.

Respond with ONLY a JSON object:
{"refined_goal": "...", "specific": "...", "measurable": "...", "achievable": "...", "relevant": "...", "time_bound": "...", "milestones": ["..."], "confidence": 0.0-1.0}"""

BRIEFING_SYSTEM_PROMPT = """You are a supportive productivity assistant. Generate a concise morning briefing.

Respond with ONLY a JSON object:
{"greeting": "...", "summary": "...", "top_priorities": ["..."], "insights": ["..."], "quote": "..." or null, "confidence": 0.0-1.0}"""

ACTION_ITEMS_SYSTEM_PROMPT = """Extract every action item from the text.

Respond with ONLY a JSON object:
{"items": [{"description": "...", "assignee": "..." or null, "due_date": "..." or null}], "confidence": 0.0-1.0}"""

SUMMARIZE_SYSTEM_PROMPT = """Summarize the text in two or three sentences, then list the key points.

Respond with a JSON object {"summary": "...", "key_points": ["..."], "confidence": 0.0-1.0} or plain text."""

CHAT_SYSTEM_PROMPT = """You are Prio, a concise and friendly productivity assistant. Answer in a few sentences."""

SYSTEM_PROMPTS: dict[AiRequestType, str] = {
    AiRequestType.CLASSIFY_PRIORITY: CLASSIFY_SYSTEM_PROMPT,
    AiRequestType.PARSE_TASK: PARSE_TASK_SYSTEM_PROMPT,
    AiRequestType.SUGGEST_GOAL: SUGGEST_GOAL_SYSTEM_PROMPT,
    AiRequestType.GENERATE_BRIEFING: BRIEFING_SYSTEM_PROMPT,
    AiRequestType.EXTRACT_ACTION_ITEMS: ACTION_ITEMS_SYSTEM_PROMPT,
    AiRequestType.SUMMARIZE: SUMMARIZE_SYSTEM_PROMPT,
    AiRequestType.CHAT: CHAT_SYSTEM_PROMPT,
}

# Operations whose answer must be a JSON object
JSON_OPERATIONS = frozenset(
    {
        AiRequestType.CLASSIFY_PRIORITY,
        AiRequestType.PARSE_TASK,
        AiRequestType.SUGGEST_GOAL,
        AiRequestType.GENERATE_BRIEFING,
        AiRequestType.EXTRACT_ACTION_ITEMS,
    }
)


def _context_lines(request: AiRequest) -> list[str]:
    ctx = request.context
    lines = []
    if ctx.current_time:
        lines.append(f"Current time: {ctx.current_time}")
    if ctx.deadline:
        lines.append(f"Deadline: {ctx.deadline}")
    if ctx.previous_quadrant is not None:
        lines.append(f"Previously classified as: {ctx.previous_quadrant.value}")
    if ctx.existing_goals:
        lines.append("Goals:\n" + "\n".join(f"- {g}" for g in ctx.existing_goals))
    if ctx.recent_tasks:
        lines.append("Tasks:\n" + "\n".join(f"- {t}" for t in ctx.recent_tasks))
    return lines


def build_prompt(request: AiRequest) -> tuple[str, str]:
    """
    Render a request into a (system, user) prompt pair.

    ``request.system_prompt`` overrides the default system prompt.
    """
    system = request.system_prompt or SYSTEM_PROMPTS[request.type]
    text = request.input.strip()

    if request.type == AiRequestType.CLASSIFY_PRIORITY:
        user = f'Classify this task into the Eisenhower Matrix:\n"{text}"'
    elif request.type == AiRequestType.PARSE_TASK:
        user = f'Parse this task: "{text}"'
    elif request.type == AiRequestType.SUGGEST_GOAL:
        user = f'Goal: "{text}"'
    elif request.type == AiRequestType.GENERATE_BRIEFING:
        user = text or "Generate my morning briefing."
    elif request.type == AiRequestType.EXTRACT_ACTION_ITEMS:
        user = f"Text:\n{text}"
    elif request.type == AiRequestType.SUMMARIZE:
        user = f"Text:\n{text}"
    else:
        user = text

    context = _context_lines(request)
    if context:
        user = "\n".join(context) + "\n\n" + user
    if request.type in JSON_OPERATIONS:
        user += "\nJSON:"
    return system, user


__all__ = [
    "CLASSIFY_SYSTEM_PROMPT",
    "JSON_OPERATIONS",
    "PromptTemplate",
    "SYSTEM_PROMPTS",
    "build_prompt",
    "format_prompt",
    "stop_sequences",
]
