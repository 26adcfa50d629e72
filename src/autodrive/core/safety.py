"""Command and path safety analysis for autonomous execution.

Detects dangerous shell commands (remote code execution, destructive
deletes, privilege escalation, exfiltration, forced git operations,
destructive SQL) and access to forbidden or out-of-project paths.

Detection is heuristic and best-effort. It catches accidents and obvious
obfuscation attempts (empty quote pairs, backslash escapes, line
continuations, ``$IFS`` word splitting); it is not a sandbox and a
determined adversary can evade it.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Final, List, Optional, Pattern, Tuple

# =============================================================================
# Normalization
# =============================================================================


def _strip_control_sequences(command: str) -> str:
    """Strip NUL bytes, ANSI escape sequences, and non-printable controls."""
    command = command.replace("\x00", "")
    # CSI sequences (e.g. \x1b[31m)
    command = re.sub(r"\x1b\[[\x20-\x3f]*[0-9;]*[\x40-\x7e]", "", command)
    # OSC sequences, BEL or ST terminated
    command = re.sub(r"\x1b\].*?(?:\x1b\\|\x07)", "", command)
    # Two-character escapes (e.g. \x1bM)
    command = re.sub(r"\x1b[\x20-\x7e]", "", command)
    # 8-bit C1 controls
    command = re.sub(r"[\x80-\x9f]", "", command)
    return re.sub(r"[\x01-\x08\x0b\x0c\x0e-\x1f\x7f]", "", command)


def normalize_command(text: str) -> str:
    """Normalize shell text so trivially obfuscated commands match rules.

    Steps, in order:
    - strip control and ANSI escape sequences
    - drop line continuations (backslash-newline)
    - drop empty quote pairs (``cu""rl`` -> ``curl``)
    - expand ``$IFS`` / ``${IFS}`` to a space and drop empty ``$@`` / ``$*``
    - drop backslash escapes in front of ordinary characters (``r\\m`` -> ``rm``)
    - collapse whitespace runs to a single space

    Args:
        text: Raw command or prompt text

    Returns:
        Normalized text (case preserved)
    """
    text = _strip_control_sequences(text)
    text = re.sub(r"\\\r?\n", "", text)
    text = text.replace('""', "").replace("''", "")
    text = re.sub(r"\$\{IFS\}|\$IFS\b", " ", text)
    text = re.sub(r"\$[@*]", "", text)
    text = re.sub(r"\\([^\s\\])", r"\1", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def _unquoted(text: str) -> str:
    return text.replace('"', "").replace("'", "")


# =============================================================================
# Dangerous command rules
# =============================================================================

DANGEROUS_RULES: Final[List[Tuple[str, str]]] = [
    # Remote code execution
    ("remote_code_execution", r"\b(?:curl|wget)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da|k)?sh\b"),
    ("remote_code_execution", r"\bcurl\b.*\s-o\s*-\s*\|"),
    ("remote_code_execution", r"\b(?:ba|z)?sh\s+<\(\s*(?:curl|wget)\b"),
    ("encoded_execution", r"\bbase64\s+(?:-d|--decode|-D)\b[^|]*\|\s*(?:sudo\s+)?(?:ba|z|da|k)?sh\b"),
    ("dynamic_eval", r"(?:^|[;&|(`]\s*|\$\(\s*)eval\s+\S"),
    # Destructive deletes
    (
        "destructive_delete",
        r"\brm\s+(?:-[a-zA-Z]+\s+)*-[a-zA-Z]*[rRf][a-zA-Z]*\s+(?:-[a-zA-Z]+\s+)*(?:/|~|\.\.|\$HOME)",
    ),
    ("destructive_delete", r"\brmdir\s+(?:-[a-zA-Z]+\s+)*[/~]"),
    ("destructive_delete", r"\bfind\b.*\s-delete\b"),
    ("destructive_delete", r"\bfind\b.*\s-exec\s+rm\b"),
    ("destructive_delete", r"\bmkfs(?:\.\w+)?\b"),
    ("destructive_delete", r"\bdd\b.*\bof=/dev/"),
    # Privilege escalation
    ("privilege_escalation", r"(?:^|[;&|(]\s*|\s)sudo\s"),
    ("privilege_escalation", r"\bchmod\s+(?:-R\s+)?0?777\b"),
    ("privilege_escalation", r"\bchown\s+-R\b"),
    # Sensitive file reads and copies
    (
        "sensitive_file_access",
        r"\b(?:cat|cp|less|more|head|tail|scp|base64)\b.*[/~]\.(?:ssh|aws|gnupg|env)\b",
    ),
    ("sensitive_file_access", r"\b(?:cat|cp|less|more|head|tail)\b.*/etc/(?:passwd|shadow|sudoers)\b"),
    # Exfiltration and reverse shells
    ("exfiltration", r"\bcurl\b.*\s(?:-d|--data(?:-binary|-raw)?|-F|--form|-T|--upload-file)\s*\S*@"),
    ("reverse_shell", r"\bnc\b.*\s-e\s"),
    ("reverse_shell", r"\bbash\s+-i\s*>&"),
    ("reverse_shell", r"/dev/tcp/"),
    # Forced git operations
    ("forced_git_operation", r"\bgit\s+push\b.*\s(?:--force(?:-with-lease)?|-f)\b"),
    ("forced_git_operation", r"\bgit\s+reset\s+--hard\b"),
    # Destructive SQL
    ("destructive_sql", r"\bdrop\s+database\b"),
    ("destructive_sql", r"\bdrop\s+table\b"),
    ("destructive_sql", r"\btruncate\s+table\b"),
]
"""Ordered (label, regex) rules. The first matching rule wins."""

_COMPILED_RULES: List[Tuple[str, Pattern[str]]] = [
    (label, re.compile(pattern, re.IGNORECASE)) for label, pattern in DANGEROUS_RULES
]


@dataclass(frozen=True)
class DangerCheck:
    """Outcome of :func:`is_dangerous_command`."""

    dangerous: bool
    label: Optional[str] = None
    pattern: Optional[str] = None


def is_dangerous_command(text: str) -> DangerCheck:
    """Check raw and normalized text against the dangerous rule list.

    Args:
        text: Command, prompt, or free text

    Returns:
        DangerCheck with the label of the first matching rule
    """
    normalized = normalize_command(text)
    candidates = [text, normalized, _unquoted(normalized)]
    for label, pattern in _COMPILED_RULES:
        for candidate in candidates:
            if pattern.search(candidate):
                return DangerCheck(dangerous=True, label=label, pattern=pattern.pattern)
    return DangerCheck(dangerous=False)


# =============================================================================
# Path rules
# =============================================================================

FORBIDDEN_PATHS: Final[Tuple[str, ...]] = (
    "~/.ssh",
    "~/.aws",
    "~/.gnupg",
    "~/.config/gh",
    "~/.docker/config.json",
    "~/.netrc",
    "/etc/passwd",
    "/etc/shadow",
    "/etc/sudoers",
)
"""Paths the agent must never read or write, regardless of project root."""

ALLOWED_SCRATCH_ROOTS: Final[Tuple[str, ...]] = ("/tmp",)


def _normalize_path(path: str, base: Optional[str] = None) -> str:
    expanded = os.path.expanduser(path)
    if base is not None and not os.path.isabs(expanded):
        expanded = os.path.join(base, expanded)
    return os.path.normpath(expanded)


def _is_under(path: str, root: str) -> bool:
    return PurePath(path).is_relative_to(PurePath(root))


def is_forbidden_path(path: str) -> bool:
    """Return True if ``path`` is, or lies beneath, a forbidden location."""
    normalized = _normalize_path(path)
    return any(_is_under(normalized, _normalize_path(forbidden)) for forbidden in FORBIDDEN_PATHS)


def is_path_within_project(path: str, project_root: str) -> bool:
    """Return True if ``path`` resolves inside ``project_root``.

    Relative paths resolve against the project root. Comparison is by path
    components, so ``/work/app-evil`` is not inside ``/work/app``.
    """
    root = _normalize_path(project_root)
    return _is_under(_normalize_path(path, base=root), root)


_PATH_PATTERNS: Final[List[Pattern[str]]] = [
    re.compile(r"(?:^|\s)(/[^\s\"']+)"),
    re.compile(r"(?:^|\s)(~/[^\s\"']+)"),
    re.compile(r"(?:^|\s)(\.\./[^\s\"']+)"),
    re.compile(r"\"([^\"]+\.[a-z]+)\"", re.IGNORECASE),
    re.compile(r"'([^']+\.[a-z]+)'", re.IGNORECASE),
]


def extract_paths(text: str) -> List[str]:
    """Extract absolute, home-relative, parent-relative, and quoted file paths.

    Returns:
        Unique paths in first-seen order
    """
    paths: List[str] = []
    for pattern in _PATH_PATTERNS:
        for match in pattern.finditer(text):
            candidate = match.group(1)
            if candidate not in paths:
                paths.append(candidate)
    return paths


# =============================================================================
# Combined analysis
# =============================================================================


@dataclass(frozen=True)
class SafetyCheckResult:
    """Outcome of :func:`analyze_safety`."""

    safe: bool
    reason: Optional[str] = None
    requires_approval: bool = False
    label: Optional[str] = None


def analyze_safety(
    text: str,
    project_root: str,
    *,
    check_project_bounds: bool = True,
) -> SafetyCheckResult:
    """Analyze text for dangerous commands and out-of-bounds paths.

    Args:
        text: Command or free text to analyze
        project_root: Absolute project root
        check_project_bounds: Also flag paths outside the project root
            (``/tmp`` is always allowed). Disable for prose that routinely
            mentions URL paths, such as milestone descriptions.

    Returns:
        SafetyCheckResult; unsafe results always require approval
    """
    danger = is_dangerous_command(text)
    if danger.dangerous:
        return SafetyCheckResult(
            safe=False,
            reason=f"Dangerous command pattern detected: {danger.label}",
            requires_approval=True,
            label=danger.label,
        )

    for path in extract_paths(text):
        if is_forbidden_path(path):
            return SafetyCheckResult(
                safe=False,
                reason=f"Access to sensitive path: {path}",
                requires_approval=True,
                label="forbidden_path",
            )
        if not check_project_bounds:
            continue
        if is_path_within_project(path, project_root):
            continue
        if any(_is_under(_normalize_path(path), root) for root in ALLOWED_SCRATCH_ROOTS):
            continue
        return SafetyCheckResult(
            safe=False,
            reason=f"Path outside project root: {path}",
            requires_approval=True,
            label="outside_project",
        )

    return SafetyCheckResult(safe=True)


def get_safety_rules(project_root: str) -> str:
    """Return the fixed safety rule block injected into every agent prompt."""
    return f"""
## SAFETY RULES (MANDATORY)

Project root: {project_root}

FILE SYSTEM RESTRICTIONS:
- You may ONLY access files within the project root
- Access to ~/.ssh, ~/.aws, ~/.gnupg, ~/.config/gh and /etc is FORBIDDEN
- Parent directory traversal (../) outside the project is FORBIDDEN
- If you need to access files outside the project, STOP and ask the user

COMMAND RESTRICTIONS:
The following commands require EXPLICIT user approval:
- curl/wget piped to bash/sh (remote code execution)
- eval of dynamic strings, base64-decoded scripts piped to a shell
- rm -rf with absolute paths, ~ or ..
- sudo anything
- git push --force, git reset --hard
- Any command that could delete or modify system files

If you need to run a restricted command, explain WHY and ask permission first.

NETWORK RESTRICTIONS:
- Do not send files to external URLs
- Do not download and execute scripts from the internet
- If you need to fetch external resources, describe what and why
"""
