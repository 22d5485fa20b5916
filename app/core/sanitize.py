import re
from typing import Any

DEFAULT_ERROR_MESSAGE = "Something went wrong. Please try again."

_ERROR_PREFIX_RE = re.compile(r"^\[[A-Z]+ [A-Z]\([^)]+\)\]\s*")
_TRACEBACK_HEADER_RE = re.compile(r"^Traceback \(most recent call last\):\s*$", re.MULTILINE)
_FRAME_RE = re.compile(r'^\s*File "[^"]+", line \d+.*$(?:\n^\s{4,}\S.*$)?', re.MULTILINE)
_JS_FRAME_RE = re.compile(r"^\s*at\s+\S+.+$", re.MULTILINE)
_SOURCE_PATH_RE = re.compile(r"/?(?:[\w.@-]+/)+[\w.@-]+\.(?:py|ts|js|mjs)(?::\d+(?::\d+)?)?")


def sanitize_error(raw: Any) -> str:
    """Strip prefixes, stack frames and source paths from an error before showing it.

    Short messages that carry none of that noise pass through unchanged.
    """
    if not isinstance(raw, str) or not raw.strip():
        return DEFAULT_ERROR_MESSAGE

    text = raw.strip()
    cleaned = _ERROR_PREFIX_RE.sub("", text)
    cleaned = _TRACEBACK_HEADER_RE.sub("", cleaned)
    cleaned = _FRAME_RE.sub("", cleaned)
    cleaned = _JS_FRAME_RE.sub("", cleaned)
    cleaned = _SOURCE_PATH_RE.sub("", cleaned)
    cleaned = re.sub(r"\n{2,}", "\n", cleaned).strip()

    if cleaned == text and len(text) < 200:
        return text
    return cleaned or DEFAULT_ERROR_MESSAGE
