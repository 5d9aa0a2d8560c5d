# src/beads_ralph/ralph/response_parser.py

"""
Heuristics applied to the model's free-text answer.

Both are intentionally shallow: no attempt is made to verify the model's
claims. They are kept as named functions so a stricter parser can replace them.
"""

from __future__ import annotations

import re

MAX_MODIFIED_FILES = 20

FAILURE_KEYWORDS: tuple[str, ...] = ("error", "cannot", "impossible")
ISSUES_MESSAGE = "Task may have issues - review AI analysis"

KNOWN_EXTENSIONS: tuple[str, ...] = (
    "tsx",
    "ts",
    "jsx",
    "js",
    "json",
    "mdc",
    "md",
    "py",
    "toml",
    "yaml",
    "yml",
)

_BACKTICK_PATH_RE = re.compile(r"`([^`]+\.[a-z]+)`", re.IGNORECASE)
_BARE_PATH_RE = re.compile(
    r"(?:^|\s)([\w./\\-]+\.(?:" + "|".join(KNOWN_EXTENSIONS) + r"))\b",
    re.IGNORECASE | re.MULTILINE,
)


def extract_modified_files(text: str, *, limit: int = MAX_MODIFIED_FILES) -> list[str]:
    """
    Candidate file paths mentioned in a response.

    Backtick-quoted paths first, then bare paths with a known extension.
    Paths containing "example" are dropped; the result is de-duplicated and capped.
    """
    files: list[str] = []
    for pattern in (_BACKTICK_PATH_RE, _BARE_PATH_RE):
        for match in pattern.finditer(text or ""):
            path = match.group(1).strip()
            if path and "example" not in path and path not in files:
                files.append(path)
    return files[:limit]


def has_reported_issues(text: str) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in FAILURE_KEYWORDS)
