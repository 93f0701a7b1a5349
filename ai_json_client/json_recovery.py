"""
JSON recovery pipeline: raw model output text -> parsed JSON value.

Stages, each tried only when the previous one fails to parse:
  1. extraction        strip markdown fences, cut the first balanced {...} / [...]
  2. direct parse      json.loads on the candidate
  3. sanitization      escape stray quotes and control chars inside strings,
                       normalize curly quotes, drop trailing commas
  4. truncation repair close an output that was cut off mid-generation,
                       trimming up to a bounded number of trailing chars

parse_model_json raises ModelJSONParseError and nothing else.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

import structlog

from ai_json_client.config import get_settings
from ai_json_client.errors import ModelJSONParseError
from ai_json_client.observability import metrics as obs_metrics

logger = structlog.get_logger()

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_CLOSER = {"{": "}", "[": "]"}
_PARSE_ERRORS = (ValueError, RecursionError)

_QUOTE_TABLE = str.maketrans({
    "\u201c": '"',
    "\u201d": '"',
    "\u2018": "'",
    "\u2019": "'",
})
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}
# A quote followed by one of these (or end of text) closes the string.
_STRING_TERMINATORS = frozenset({",", "}", "]", ":", ""})

_PREVIEW_CHARS = 500

# Scanner state after a prefix: (in_string, escaped, open closers innermost-last)
_ScanState = tuple[bool, bool, tuple[str, ...]]


def find_json_boundary(text: str, start: int) -> int:
    """Index of the bracket closing the container opened at ``start``, or -1."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        c = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c in _CLOSER:
            stack.append(_CLOSER[c])
        elif c in ("}", "]"):
            if not stack or stack.pop() != c:
                return -1
            if not stack:
                return i
    return -1


def _first_container(text: str) -> int:
    starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
    return min(starts) if starts else -1


def extract_json_candidate(text: str) -> str:
    """Strip fences and return the first balanced JSON container, else the whole trimmed text."""
    trimmed = _FENCE_RE.sub("", text).strip()
    start = _first_container(trimmed)
    if start >= 0:
        end = find_json_boundary(trimmed, start)
        if end > start:
            return trimmed[start : end + 1]
    return trimmed


def _next_significant_chars(text: str) -> list[str]:
    """For each index, the first non-space char after it ("" at end of text)."""
    following = [""] * len(text)
    nxt = ""
    for i in range(len(text) - 1, -1, -1):
        following[i] = nxt
        if not text[i].isspace():
            nxt = text[i]
    return following


def sanitize_json_candidate(candidate: str) -> str:
    """Fix the string-level defects models produce most often."""
    raw = candidate.removeprefix("\ufeff").translate(_QUOTE_TABLE)
    following = _next_significant_chars(raw)
    out: list[str] = []
    in_string = False
    escaped = False

    for i, c in enumerate(raw):
        if in_string:
            if escaped:
                out.append(c)
                escaped = False
            elif c == "\\":
                out.append(c)
                escaped = True
            elif c == '"':
                if following[i] in _STRING_TERMINATORS:
                    out.append(c)
                    in_string = False
                else:
                    # Quote inside the content, e.g. "explain "keyword" here"
                    out.append('\\"')
            elif c in _CONTROL_ESCAPES:
                out.append(_CONTROL_ESCAPES[c])
            elif ord(c) < 0x20:
                out.append(f"\\u{ord(c):04x}")
            else:
                out.append(c)
            continue

        if c == '"':
            in_string = True
        elif c == "," and following[i] in ("}", "]"):
            continue
        out.append(c)

    return "".join(out)


def _prefix_states(body: str, record_from: int) -> dict[int, _ScanState]:
    """Replay the string-aware scanner over ``body`` once.

    Returns the scanner state after every prefix length >= ``record_from``.
    Prefixes past a mismatched closer are unrepairable and left out.
    """
    states: dict[int, _ScanState] = {}
    stack: list[str] = []
    in_string = False
    escaped = False

    for i, c in enumerate(body):
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c == '"':
                in_string = False
        elif c == '"':
            in_string = True
        elif c in _CLOSER:
            stack.append(_CLOSER[c])
        elif c in ("}", "]"):
            if not stack or stack[-1] != c:
                break
            stack.pop()
        if i + 1 >= record_from:
            states[i + 1] = (in_string, escaped, tuple(stack))
    return states


def _close_prefix(prefix: str, state: _ScanState) -> str:
    in_string, escaped, stack = state
    text = prefix
    if in_string:
        if escaped:
            text = text[:-1]
        text += '"'
    else:
        text = text.rstrip()
        if text.endswith((",", ":")):
            text = text[:-1].rstrip()
    return text + "".join(reversed(stack))


def looks_truncated(candidate: str) -> bool:
    """True when the candidate ends inside a string or with containers still open."""
    start = _first_container(candidate)
    if start < 0:
        return False
    body = candidate[start:].rstrip()
    state = _prefix_states(body, len(body)).get(len(body))
    if state is None:
        return False
    in_string, _, stack = state
    return in_string or bool(stack)


def repair_truncated_json(candidate: str, max_trim_chars: Optional[int] = None) -> Any:
    """Close a cut-off JSON document and parse it.

    Tries the untrimmed text first, then trims one more trailing char per try,
    up to ``max_trim_chars``. Raises the last parse error when nothing parses.
    Well-formed input parses unchanged on the first try.
    """
    if max_trim_chars is None:
        max_trim_chars = get_settings().ai.json_repair_max_trim_chars
    max_trim_chars = max(0, max_trim_chars)

    try:
        return json.loads(candidate)
    except _PARSE_ERRORS:
        pass

    start = _first_container(candidate)
    if start < 0:
        raise json.JSONDecodeError("No JSON container to repair", candidate, 0)
    body = candidate[start:].rstrip()
    shortest = max(1, len(body) - max_trim_chars)
    states = _prefix_states(body, shortest)

    last_error: Optional[Exception] = None
    for end in range(len(body), shortest - 1, -1):
        state = states.get(end)
        if state is None:
            continue
        try:
            return json.loads(_close_prefix(body[:end], state))
        except _PARSE_ERRORS as e:
            last_error = e
    if last_error is None:
        raise json.JSONDecodeError("Unbalanced closing bracket in JSON", body, 0)
    raise last_error


def parse_model_json(raw_text: Any, *, max_trim_chars: Optional[int] = None) -> Any:
    """Parse model output into a JSON value, recovering from common defects.

    Raises:
        ModelJSONParseError: no stage produced a parseable value. Carries a
            bounded preview of the candidate; the last syntax error is chained.
    """
    if raw_text is None:
        text = ""
    elif isinstance(raw_text, str):
        text = raw_text
    else:
        text = str(raw_text)

    candidate = extract_json_candidate(text)
    try:
        data = json.loads(candidate)
        obs_metrics.record_json_recovery(stage="direct")
        return data
    except _PARSE_ERRORS as e:
        last_error: BaseException = e

    sanitized = sanitize_json_candidate(candidate)
    try:
        data = json.loads(sanitized)
        logger.debug("json_recovered", stage="sanitized", original_error=str(last_error))
        obs_metrics.record_json_recovery(stage="sanitized")
        return data
    except _PARSE_ERRORS as e:
        last_error = e

    if looks_truncated(sanitized):
        try:
            data = repair_truncated_json(sanitized, max_trim_chars)
            logger.debug("json_recovered", stage="truncation_repair", original_error=str(last_error))
            obs_metrics.record_json_recovery(stage="truncation_repair")
            return data
        except _PARSE_ERRORS as e:
            last_error = e

    obs_metrics.record_json_recovery(stage="failed")
    logger.debug(
        "json_parse_failed",
        preview=candidate[:200],
        decode_error=str(last_error),
        position=getattr(last_error, "pos", None),
    )
    raise ModelJSONParseError(
        f"Failed to parse model JSON: {last_error}",
        raw_preview=candidate[:_PREVIEW_CHARS],
    ) from last_error
