"""Agent invocation error classes."""

from typing import Optional


class AgentInvocationError(RuntimeError):
    """Base exception for failures while invoking the coding agent."""

    def __init__(self, message: str, *, agent: Optional[str] = None):
        self.agent = agent
        super().__init__(message)


class AgentUnavailableError(AgentInvocationError):
    """Raised when the agent binary cannot be started (missing, not executable)."""


class AgentTimeoutError(AgentInvocationError):
    """Raised when an agent invocation exceeds its allotted time.

    Attributes:
        agent: Agent that timed out
        elapsed: Actual elapsed time in seconds before the process was killed
        timeout: Configured timeout value in seconds
    """

    def __init__(
        self,
        message: str,
        *,
        agent: Optional[str] = None,
        elapsed: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(message, agent=agent)
        self.elapsed = elapsed
        self.timeout = timeout


class AgentAbortedError(AgentInvocationError):
    """Raised when an invocation was cancelled through the session abort signal."""
