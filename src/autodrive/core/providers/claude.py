"""Claude Code CLI executor.

Runs ``claude -p --verbose --output-format stream-json`` as a subprocess,
reads its newline-delimited JSON stream as it arrives, dispatches stream
events, and parses the final ``result`` message into an
:class:`ExecutionResult`.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from autodrive.core.errors.provider import (
    AgentAbortedError,
    AgentTimeoutError,
    AgentUnavailableError,
)
from autodrive.core.observability.redaction import redact_secrets

from .base import (
    AbortSignalLike,
    CostSnapshot,
    ExecutionOptions,
    ExecutionResult,
    ExecutionStatus,
    TextEvent,
)
from .stream import adapt_message, redact_event

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 1800
_WATCHDOG_POLL_SECONDS = 0.2


# ── Runner protocol ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StreamRunOutcome:
    returncode: int
    stderr: str = ""
    elapsed: float = 0.0
    aborted: bool = False


class StreamRunnerProtocol(Protocol):
    """Callable that runs a command and feeds each stdout line to ``on_line``."""

    def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        on_line: Optional[Callable[[str], None]] = None,
        abort_signal: Optional[AbortSignalLike] = None,
    ) -> StreamRunOutcome:
        raise NotImplementedError


def default_stream_runner(
    command: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    on_line: Optional[Callable[[str], None]] = None,
    abort_signal: Optional[AbortSignalLike] = None,
) -> StreamRunOutcome:
    """Invoke a CLI binary via subprocess, streaming stdout line by line.

    A watchdog thread kills the process when ``timeout`` elapses or
    ``abort_signal`` is set.

    Raises:
        FileNotFoundError: If the binary does not exist
        subprocess.TimeoutExpired: If the process was killed for timing out
    """
    start = time.monotonic()
    proc = subprocess.Popen(  # noqa: S603 - intentional CLI invocation
        list(command),
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        bufsize=1,
    )
    finished = threading.Event()
    stop_reason: Dict[str, str] = {}
    stderr_lines: List[str] = []

    def _drain_stderr() -> None:
        assert proc.stderr is not None
        for line in proc.stderr:
            stderr_lines.append(line)

    def _watchdog() -> None:
        deadline = start + timeout if timeout else None
        while not finished.wait(_WATCHDOG_POLL_SECONDS):
            if abort_signal is not None and abort_signal.is_set():
                stop_reason["reason"] = "aborted"
            elif deadline is not None and time.monotonic() >= deadline:
                stop_reason["reason"] = "timeout"
            else:
                continue
            proc.kill()
            return

    threads = [
        threading.Thread(target=_drain_stderr, daemon=True),
        threading.Thread(target=_watchdog, daemon=True),
    ]
    for thread in threads:
        thread.start()

    try:
        assert proc.stdout is not None
        for line in proc.stdout:
            if on_line is not None:
                on_line(line.rstrip("\n"))
        proc.wait()
    finally:
        finished.set()
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        for thread in threads:
            thread.join(timeout=5)

    elapsed = time.monotonic() - start
    if stop_reason.get("reason") == "timeout":
        raise subprocess.TimeoutExpired(list(command), timeout or elapsed)
    return StreamRunOutcome(
        returncode=proc.returncode,
        stderr="".join(stderr_lines),
        elapsed=elapsed,
        aborted=stop_reason.get("reason") == "aborted",
    )


# ── Stream accumulation ────────────────────────────────────────────────────


class _StreamState:
    """Accumulates one invocation's stream into result fields."""

    def __init__(self, options: ExecutionOptions) -> None:
        self.options = options
        self.text_parts: List[str] = []
        self.session_id: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()
        if not line:
            return
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            # Non-JSON output (warnings, progress) is kept verbatim
            self._emit_text(raw_line)
            return
        if not isinstance(message, dict):
            return

        if message.get("session_id"):
            self.session_id = str(message["session_id"])

        if message.get("type") == "result":
            self.result = message
            return

        for event in adapt_message(message):
            if isinstance(event, TextEvent):
                self._emit_text(event.text)
            elif self.options.on_stream_event is not None:
                self.options.on_stream_event(redact_event(event))

    def _emit_text(self, text: str) -> None:
        safe = redact_secrets(text)
        self.text_parts.append(safe)
        if self.options.on_stream_event is not None:
            self.options.on_stream_event(TextEvent(text=safe))


def _extract_cost(payload: Dict[str, Any]) -> CostSnapshot:
    usage = payload.get("usage") or {}
    return CostSnapshot(
        total_cost_usd=float(payload.get("total_cost_usd") or 0.0),
        input_tokens=int(usage.get("input_tokens") or 0),
        output_tokens=int(usage.get("output_tokens") or 0),
        model_usage=dict(payload.get("modelUsage") or {}),
    )


# ── Executor ───────────────────────────────────────────────────────────────


class ClaudeCodeExecutor:
    """Runs prompts through the Claude Code CLI."""

    name = "claude"

    def __init__(
        self,
        *,
        binary: Optional[str] = None,
        runner: Optional[StreamRunnerProtocol] = None,
        timeout: Optional[float] = None,
        model: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        custom_binary_env: str = "CLAUDE_CLI_BINARY",
    ) -> None:
        self._runner = runner or default_stream_runner
        self._binary = binary or os.environ.get(custom_binary_env, "claude")
        self._timeout = timeout or DEFAULT_TIMEOUT_SECONDS
        self._model = model
        self._env = env

    def build_command(self, prompt: str, options: ExecutionOptions) -> List[str]:
        command = [self._binary, "-p", "--verbose", "--output-format", "stream-json"]
        if options.resume_session_id:
            command.extend(["--resume", options.resume_session_id])
        model = options.model or self._model
        if model:
            command.extend(["--model", model])
        if options.max_budget_usd is not None:
            command.extend(["--max-budget-usd", f"{options.max_budget_usd:.2f}"])
        if options.allowed_tools:
            command.extend(["--allowed-tools", *options.allowed_tools])
        if options.system_prompt:
            command.extend(["--append-system-prompt", options.system_prompt])
        command.append(prompt)
        return command

    def _build_env(self, options: ExecutionOptions) -> Dict[str, str]:
        env = dict(os.environ)
        if self._env:
            env.update(self._env)
        if options.env:
            env.update(options.env)
        env["FORCE_COLOR"] = "0"
        return env

    def execute(self, prompt: str, options: ExecutionOptions) -> ExecutionResult:
        """Run ``prompt`` and return the parsed result.

        Raises:
            AgentUnavailableError: Binary missing
            AgentTimeoutError: Invocation exceeded its timeout
            AgentAbortedError: Session abort signal was set
        """
        command = self.build_command(prompt, options)
        timeout = options.timeout or self._timeout
        stream = _StreamState(options)

        try:
            outcome = self._runner(
                command,
                cwd=options.cwd,
                env=self._build_env(options),
                timeout=timeout,
                on_line=stream.feed,
                abort_signal=options.abort_signal,
            )
        except FileNotFoundError as exc:
            raise AgentUnavailableError(
                f"Claude CLI '{self._binary}' is not available on PATH.",
                agent=self.name,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise AgentTimeoutError(
                f"Agent timed out after {exc.timeout} seconds",
                agent=self.name,
                elapsed=float(exc.timeout) if exc.timeout else None,
                timeout=float(timeout),
            ) from exc

        if outcome.aborted:
            raise AgentAbortedError("Agent invocation aborted", agent=self.name)

        payload = stream.result or {}
        cost = _extract_cost(payload)
        if stream.result is not None and options.on_cost_update is not None:
            options.on_cost_update(cost)

        session_id = str(payload.get("session_id") or stream.session_id or "") or None
        output = redact_secrets(str(payload.get("result") or "")) or "\n".join(stream.text_parts)

        errors: List[str] = [redact_secrets(str(e)) for e in payload.get("errors") or []]
        success = (
            outcome.returncode == 0
            and stream.result is not None
            and payload.get("subtype") == "success"
            and not payload.get("is_error")
        )
        if not success and not errors:
            stderr = redact_secrets(outcome.stderr.strip())
            message = f"Claude CLI exited with code {outcome.returncode}"
            if stream.result is None:
                message += " without a result message"
            if stderr:
                message += f": {stderr[:500]}"
            errors.append(message)
            logger.debug("Claude CLI stderr: %s", stderr or "no stderr")

        return ExecutionResult(
            success=success,
            output=output,
            session_id=session_id,
            cost=cost,
            num_turns=int(payload.get("num_turns") or 0),
            duration_ms=int(payload.get("duration_ms") or outcome.elapsed * 1000),
            errors=errors,
            status=ExecutionStatus.SUCCESS if success else ExecutionStatus.ERROR,
        )
