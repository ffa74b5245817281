"""Command safety filter for the run_command action.

A text filter over the free-form command string: a fixed set of forbidden
patterns is checked against the raw input first, then the trimmed, lower-cased
command must start with one of the allowed prefixes. This is not a shell
parser; prefix matching is literal (``lsblk`` passes because it starts with
``ls``) and only the patterns below are caught.
"""

import re

from claw_workflows.app.models.workflow import ActionValidationResult

FORBIDDEN_PATTERN_ERROR = "Command contains forbidden pattern"
NOT_ALLOWED_ERROR = "Command not in allowed list"

ALLOWED_COMMANDS = [
    "openclaw",
    "git status",
    "git log",
    "ls",
    "pwd",
    "date",
    "echo",
    "cat",
    "head",
    "tail",
    "wc",
    "curl",
    "wget",
]

FORBIDDEN_PATTERNS = [
    re.compile(r"rm\s+(-rf?|--recursive)", re.IGNORECASE),
    re.compile(r"rmdir", re.IGNORECASE),
    re.compile(r"mkfs", re.IGNORECASE),
    re.compile(r"dd\s+if=", re.IGNORECASE),
    re.compile(r">\s*/dev/", re.IGNORECASE),
    re.compile(r"chmod\s+777", re.IGNORECASE),
    re.compile(r"sudo", re.IGNORECASE),
    re.compile(r"eval", re.IGNORECASE),
    re.compile(r"exec", re.IGNORECASE),
    re.compile(r"\$\("),
    re.compile(r"`[^`]+`"),
    re.compile(r"&&"),
    re.compile(r"\|\|"),
    re.compile(r";"),
    re.compile(r"\|"),
    re.compile(r">"),
    re.compile(r">>"),
    re.compile(r"<"),
]


def has_forbidden_pattern(command: str) -> bool:
    return any(pattern.search(command) for pattern in FORBIDDEN_PATTERNS)


def is_allowed_command(command: str) -> bool:
    normalized = command.strip().lower()
    return any(normalized.startswith(allowed.lower()) for allowed in ALLOWED_COMMANDS)


def validate_command(command: str) -> ActionValidationResult:
    """Check a command string against the forbidden patterns and the allow-list."""
    if has_forbidden_pattern(command):
        return ActionValidationResult(valid=False, error=FORBIDDEN_PATTERN_ERROR)

    if not is_allowed_command(command):
        return ActionValidationResult(valid=False, error=NOT_ALLOWED_ERROR)

    return ActionValidationResult(valid=True)
