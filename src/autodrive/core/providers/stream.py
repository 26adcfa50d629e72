"""Translate raw agent stream messages into typed stream events."""

from __future__ import annotations

from typing import Any, Dict, List

from autodrive.core.observability.redaction import redact_data, redact_secrets

from .base import StreamEvent, TextEvent, ToolUseEvent

_EDIT_TOOLS = frozenset({"Edit", "Write", "MultiEdit", "NotebookEdit"})
_SEARCH_TOOLS = frozenset({"Glob", "Grep"})


def format_tool_use(name: str, tool_input: Dict[str, Any]) -> str:
    """Render a tool call as a single display line.

    ``Bash`` shows the command, ``Read`` / ``Edit`` / ``Write`` show the
    path, ``Glob`` / ``Grep`` are summarized, anything else is named.
    """
    if name == "Bash":
        return f"$ {tool_input.get('command', '')}"
    if name == "Read":
        return f"Reading {tool_input.get('file_path', '')}..."
    if name in _EDIT_TOOLS:
        return f"Editing {tool_input.get('file_path') or tool_input.get('notebook_path', '')}..."
    if name in _SEARCH_TOOLS:
        return "Searching..."
    return f"Using {name}..."


def adapt_message(message: Dict[str, Any]) -> List[StreamEvent]:
    """Convert one agent stream message into zero or more events.

    Only ``assistant`` messages produce events; system, user (tool result)
    and result messages are consumed elsewhere.
    """
    if message.get("type") != "assistant":
        return []

    body = message.get("message") or {}
    content = body.get("content") if isinstance(body, dict) else None
    if isinstance(content, str):
        return [TextEvent(text=content)] if content else []

    events: List[StreamEvent] = []
    for block in content or []:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text" and block.get("text"):
            events.append(TextEvent(text=str(block["text"])))
        elif block_type == "tool_use":
            name = str(block.get("name", "tool"))
            tool_input = block.get("input") or {}
            if not isinstance(tool_input, dict):
                tool_input = {"value": tool_input}
            events.append(ToolUseEvent(name=name, input=tool_input, display=format_tool_use(name, tool_input)))
    return events


def render_event(event: StreamEvent) -> str:
    """Display text for an event."""
    if isinstance(event, TextEvent):
        return event.text
    if isinstance(event, ToolUseEvent):
        return event.display
    raise TypeError(f"Unknown stream event: {type(event).__name__}")


def redact_event(event: StreamEvent) -> StreamEvent:
    """Copy of ``event`` with secrets removed from its text, display and tool input."""
    if isinstance(event, TextEvent):
        return TextEvent(text=redact_secrets(event.text))
    if isinstance(event, ToolUseEvent):
        return ToolUseEvent(name=event.name, input=redact_data(event.input), display=redact_secrets(event.display))
    return event
