"""
Agent execution contract.

The engine treats the coding agent as a black box behind
:class:`AgentExecutor`: it sends a prompt plus :class:`ExecutionOptions`
and receives an :class:`ExecutionResult`. Streaming output arrives as a
tagged union of :class:`TextEvent` and :class:`ToolUseEvent`.

Design principles:
- Frozen dataclasses for immutability
- Invocation failures that prevent a result (binary missing, timeout,
  abort) raise ``AgentInvocationError`` subclasses; a run that completed
  but failed returns ``success=False`` with ``errors``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union


class ExecutionStatus(Enum):
    """
    Normalized outcome of one agent invocation.

    Values:
        SUCCESS: Agent finished and reported success
        ERROR: Agent finished but reported an error (retryable)
        TIMEOUT: Invocation exceeded its time limit (retryable)
        NOT_FOUND: Agent binary is not available (not retryable)
        CANCELED: Invocation was aborted by the session (not retryable)
    """

    SUCCESS = "success"
    ERROR = "error"
    TIMEOUT = "timeout"
    NOT_FOUND = "not_found"
    CANCELED = "canceled"


@dataclass(frozen=True)
class CostSnapshot:
    """Cost and token usage reported by the agent for one invocation."""

    total_cost_usd: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    model_usage: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TextEvent:
    """Assistant text streamed from the agent."""

    text: str
    kind: str = "text"


@dataclass(frozen=True)
class ToolUseEvent:
    """A tool invocation by the agent, with a one-line display rendering."""

    name: str
    input: Dict[str, Any]
    display: str
    kind: str = "tool_use"


StreamEvent = Union[TextEvent, ToolUseEvent]


class AbortSignalLike(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class ExecutionOptions:
    """Per-invocation options.

    Attributes:
        cwd: Working directory for the agent (the project root)
        resume_session_id: Opaque token continuing a prior agent conversation
        max_budget_usd: Optional per-invocation spend ceiling passed to the agent
        allowed_tools: Tool allow-list; None keeps the agent's defaults
        env: Extra environment variables for the agent process
        on_stream_event: Callback receiving every StreamEvent
        on_cost_update: Callback receiving the final CostSnapshot
        abort_signal: Session abort flag; the invocation is killed when set
        timeout: Seconds before the invocation is killed
        model: Model override
        system_prompt: Text appended to the agent's system prompt
    """

    cwd: str
    resume_session_id: Optional[str] = None
    max_budget_usd: Optional[float] = None
    allowed_tools: Optional[Sequence[str]] = None
    env: Optional[Dict[str, str]] = None
    on_stream_event: Optional[Callable[[StreamEvent], None]] = None
    on_cost_update: Optional[Callable[[CostSnapshot], None]] = None
    abort_signal: Optional[AbortSignalLike] = None
    timeout: Optional[float] = None
    model: Optional[str] = None
    system_prompt: Optional[str] = None


@dataclass(frozen=True)
class ExecutionResult:
    """Outcome of one agent invocation."""

    success: bool
    output: str = ""
    session_id: Optional[str] = None
    cost: CostSnapshot = field(default_factory=CostSnapshot)
    num_turns: int = 0
    duration_ms: int = 0
    errors: List[str] = field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.SUCCESS


class AgentExecutor(Protocol):
    """Anything that can run a prompt against a coding agent."""

    name: str

    def execute(self, prompt: str, options: ExecutionOptions) -> ExecutionResult: ...
