"""
Prompt encoding: flatten a structured conversation into a completion prompt.

/api/generate takes one prompt string, so role structure is carried as
"System: ", "User: " and "Assistant: " prefixes with a blank line between turns.
"""

import json
from typing import Any, Iterable, Sequence

from ollama_bridge.config import TURN_SEPARATOR, UNSUPPORTED_FRAGMENT_MARKER
from ollama_bridge.schema import (
    ConversationTurn,
    FunctionCallFragment,
    FunctionResponseFragment,
    TextFragment,
)

ROLE_PREFIXES: dict[str, str] = {
    "system": "System: ",
    "user": "User: ",
    "model": "Assistant: ",
}


def _serialize_payload(payload: Any) -> str:
    try:
        return json.dumps(payload)
    except (TypeError, ValueError):
        return str(payload)


def render_fragment(fragment: Any) -> str:
    """Render one content fragment. Unknown kinds become a placeholder marker."""
    if isinstance(fragment, TextFragment):
        return fragment.text
    if isinstance(fragment, FunctionCallFragment):
        return f"[Function Call: {fragment.name}]"
    if isinstance(fragment, FunctionResponseFragment):
        return f"[Function Response: {_serialize_payload(fragment.response)}]"
    return UNSUPPORTED_FRAGMENT_MARKER


def render_parts(parts: Iterable[Any]) -> str:
    return " ".join(render_fragment(part) for part in parts)


def encode(turns: Sequence[ConversationTurn]) -> str:
    """
    Serialize a conversation into a flat text prompt.

    Args:
        turns: Ordered conversation turns

    Returns:
        One role-prefixed line per turn, turns separated by a blank line.
        An empty conversation encodes to "".
    """
    return TURN_SEPARATOR.join(
        ROLE_PREFIXES[turn.role] + render_parts(turn.parts) for turn in turns
    )
