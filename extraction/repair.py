"""Recovery of JSON records from raw model replies.

Replies are tried in order, stopping at the first that parses:

1. the text as-is
2. the text with surrounding code fences removed
3. the outermost ``{...}`` / ``[...]`` span
4. truncation repair: the text is cut back to its last complete value and
   every scope still open at that point is closed in reverse order

Step 4 walks the candidate with a small state machine that tracks string
literals, escapes and bracket depth, so brackets inside strings never count.
"""
import json
import re
from typing import Any, List, Optional, Tuple

from utils.logger import setup_logger

logger = setup_logger(__name__)

_FENCE_OPEN = re.compile(r'^\s*```[a-zA-Z0-9_-]*\s*')
_FENCE_CLOSE = re.compile(r'\s*```\s*$')
_CLOSERS = {'{': '}', '[': ']'}
_TOKEN_END = set(',]}:') | set(' \t\r\n')


class ResponseParseError(Exception):
    """Raised when a model reply cannot be turned into structured data.

    Attributes:
        original_error: Why the reply failed to parse as-is
        repair_error: Why the last repair attempt failed
    """

    def __init__(self, message: str, original_error: Optional[str] = None, repair_error: Optional[str] = None):
        super().__init__(message)
        self.original_error = original_error
        self.repair_error = repair_error


class ResponseValidationError(ResponseParseError):
    """Raised when a reply parses but is missing load-bearing data."""
    pass


class IncompleteResponseError(ResponseParseError):
    """Raised when a truncated reply is still unusable after continuations."""

    def __init__(self, label: str, continuations: int, original_error: Exception, last_error: Exception):
        super().__init__(
            f"{label}: reply still unparseable after {continuations} continuation(s). "
            f"Last error: {last_error}. Original error: {original_error}",
            str(original_error),
            str(last_error),
        )
        self.continuations = continuations


def strip_code_fences(text: str) -> str:
    """Remove a leading ```lang fence and a trailing ``` fence."""
    return _FENCE_CLOSE.sub('', _FENCE_OPEN.sub('', text.strip(), count=1), count=1)


def outermost_span(text: str) -> Optional[str]:
    """Return text from the first opening delimiter to its last matching closer."""
    start = _first_opener(text)
    if start is None:
        return None
    end = text.rfind(_CLOSERS[text[start]])
    if end <= start:
        return None
    return text[start:end + 1]


def close_truncated(text: str) -> Optional[str]:
    """Cut text back to its last complete value and close open scopes.

    Args:
        text: JSON text that was cut off, starting at its first delimiter

    Returns:
        Repaired JSON text, or None if no complete value was ever seen
    """
    # Each frame is [bracket, expecting_key]
    stack: List[List[Any]] = []
    in_string = False
    escaped = False
    string_is_key = False
    token_start: Optional[int] = None
    safe: Optional[Tuple[int, List[str]]] = None

    def mark(end: int) -> Tuple[int, List[str]]:
        return end, [frame[0] for frame in stack]

    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
                if not string_is_key:
                    safe = mark(i + 1)
            continue

        if token_start is not None and ch in _TOKEN_END:
            if _is_literal(text[token_start:i]):
                safe = mark(i)
            token_start = None

        if ch == '"':
            in_string = True
            string_is_key = bool(stack) and stack[-1][0] == '{' and stack[-1][1]
            if string_is_key:
                stack[-1][1] = False
        elif ch in _CLOSERS:
            stack.append([ch, ch == '{'])
            safe = mark(i + 1)
        elif ch in '}]':
            if not stack or _CLOSERS[stack[-1][0]] != ch:
                break
            stack.pop()
            safe = mark(i + 1)
            if not stack:
                break
        elif ch == ',':
            if stack and stack[-1][0] == '{':
                stack[-1][1] = True
        elif ch == ':' or ch.isspace():
            pass
        elif token_start is None:
            token_start = i

    if not in_string and token_start is not None and _is_literal(text[token_start:]):
        safe = mark(len(text))

    if safe is None:
        return None

    end, open_scopes = safe
    closers = ''.join(_CLOSERS[bracket] for bracket in reversed(open_scopes))
    return text[:end].rstrip() + closers


def parse_model_json(text: str, allow_truncation_repair: bool = True) -> Any:
    """Parse a model reply into JSON, repairing common damage.

    Args:
        text: Raw reply content
        allow_truncation_repair: Whether step 4 (lossy bracket closing) may run

    Returns:
        Parsed JSON value. A reply that parses cleanly is returned unchanged.

    Raises:
        ResponseParseError: If every step fails
    """
    if text is None:
        raise ResponseParseError("Empty model reply", "no content", None)

    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        original_error = str(e)

    logger.debug("Direct JSON parse failed, attempting repair...")
    repair_error = original_error

    unfenced = strip_code_fences(text)
    candidates = [unfenced, outermost_span(unfenced)]
    for candidate in candidates:
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as e:
            repair_error = str(e)

    if allow_truncation_repair:
        start = _first_opener(unfenced)
        repaired = close_truncated(unfenced[start:]) if start is not None else None
        if repaired is None:
            repair_error = "no complete JSON value found"
        else:
            try:
                value = json.loads(repaired)
                logger.debug(f"Truncation repair recovered {len(repaired)} of {len(unfenced)} chars")
                return value
            except json.JSONDecodeError as e:
                repair_error = str(e)

    raise ResponseParseError(
        f"Failed to parse AI response: {repair_error} (original error: {original_error})",
        original_error,
        repair_error,
    )


def _first_opener(text: str) -> Optional[int]:
    positions = [p for p in (text.find('{'), text.find('[')) if p != -1]
    return min(positions) if positions else None


def _is_literal(token: str) -> bool:
    token = token.strip()
    if not token:
        return False
    try:
        json.loads(token)
    except json.JSONDecodeError:
        return False
    return True
