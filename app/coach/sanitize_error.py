"""Error message cleanup before showing server errors to users."""

import re

_PREFIX_RE = re.compile(r"^\[[A-Z]+ [A-Z]\([^\)]+\)\]\s*")
_PATH_RE = re.compile(r"\b(?:app|cli|src|site-packages)/[\w/.@-]+\.py(?::\d+(?::\d+)?)?")
_TRACEBACK_HEADER_RE = re.compile(r"^Traceback \(most recent call last\):\s*$", re.MULTILINE)
_STACK_FRAME_RE = re.compile(r"^\s*File \".+\", line \d+.*$", re.MULTILINE)
_REPEATED_NEWLINES_RE = re.compile(r"\n{2,}")

DEFAULT_MESSAGE = "Something went wrong. Please try again."
PASS_THROUGH_MAX_CHARS = 200


def sanitize_error(raw: object) -> str:
    """Strip internal paths, tracebacks and noisy prefixes from an error message.

    Short messages with nothing to strip are user-facing validation errors and
    pass through unchanged.
    """
    if not isinstance(raw, str) or not raw.strip():
        return DEFAULT_MESSAGE

    text = raw.strip()
    cleaned = _PREFIX_RE.sub("", text)
    cleaned = _TRACEBACK_HEADER_RE.sub("", cleaned)
    cleaned = _STACK_FRAME_RE.sub("", cleaned)
    cleaned = _PATH_RE.sub("", cleaned)
    cleaned = _REPEATED_NEWLINES_RE.sub("\n", cleaned).strip()

    if cleaned == text and len(text) < PASS_THROUGH_MAX_CHARS:
        return text

    return cleaned or DEFAULT_MESSAGE
