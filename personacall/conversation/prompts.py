"""
Prompt Assembly

Builds the completion prompt from a persona template, a bounded slice of
conversation history and the new user input, and cleans raw completions.
"""

import re
from typing import Iterable, List, Optional, Protocol

# Truncation points for raw completions; anything after them is the model
# inventing further turns.
STOP_MARKERS = ("<end>", "User:", "Human:")

_ASSISTANT_LABEL = re.compile(r"^assistant:?\s*", re.IGNORECASE)

_ROLE_LABELS = {
    "user": "User",
    "assistant": "Assistant",
}


class HistoryEntry(Protocol):
    role: str
    content: str


def format_history(history: Iterable[HistoryEntry]) -> str:
    """Render messages as ``User:``/``Assistant:`` lines, in the given order."""
    lines: List[str] = []
    for message in history:
        label = _ROLE_LABELS.get(message.role, "Assistant")
        lines.append(f"\n{label}: {message.content}")
    return "\n".join(lines)


def build_prompt(
    user_input: str,
    persona_template: Optional[str],
    history: Iterable[HistoryEntry],
    include_context: bool,
) -> str:
    """
    Assemble the completion prompt.

    Args:
        user_input: The new user utterance
        persona_template: Persona instructions, prefixed when include_context
        history: Prior messages, oldest first
        include_context: Whether to prefix the persona template

    Returns:
        Prompt ending with a ``User:`` line and an ``Assistant:`` cue
    """
    body = (
        f"Conversation history:{format_history(history)}"
        f"\n\nUser: {user_input}\nAssistant:"
    )
    if include_context:
        return f"{persona_template or ''}\n\n{body}"
    return body


def clean_response(raw: Optional[str]) -> str:
    """
    Normalize a raw completion.

    Strips a leading ``Assistant:`` label, trims whitespace and cuts the
    text at the first stop marker.
    """
    text = (raw or "").strip()
    text = _ASSISTANT_LABEL.sub("", text)

    cut = len(text)
    for marker in STOP_MARKERS:
        index = text.find(marker)
        if index != -1:
            cut = min(cut, index)
    return text[:cut].strip()


__all__ = [
    "STOP_MARKERS",
    "format_history",
    "build_prompt",
    "clean_response",
]
