"""Agent execution providers."""

from .base import (
    AgentExecutor,
    CostSnapshot,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    StreamEvent,
    TextEvent,
    ToolUseEvent,
)
from .claude import ClaudeCodeExecutor, StreamRunOutcome, default_stream_runner
from .stream import adapt_message, format_tool_use, render_event

__all__ = [
    "AgentExecutor",
    "ClaudeCodeExecutor",
    "CostSnapshot",
    "ExecutionOptions",
    "ExecutionResult",
    "ExecutionStatus",
    "StreamEvent",
    "StreamRunOutcome",
    "TextEvent",
    "ToolUseEvent",
    "adapt_message",
    "default_stream_runner",
    "format_tool_use",
    "render_event",
]
