"""Heuristic repair of near-valid JSON text.

Architectural role:
    Last structured step of the recoverer. Every function here is pure
    (string in, string out) so each malformation class can be tested alone.

Repair pipeline (`repair_json`):
    1. Strip an opening fence line, a closing fence line and leading prose.
    2. Isolate the first `{` .. last `}` (or first `{` .. end when truncated).
    3. Escape quotes that cannot be string terminators and raw control
       characters inside strings.
    4. Drop stray fences left between tokens (e.g. after truncated output).
    5. Remove trailing commas before `}` / `]`.
    6. Quote bare object keys.
    7. Close an unterminated string and append missing `]` / `}` in nesting
       order.
    8. Remove trailing commas exposed by step 7.

String safety:
    Steps 4-7 only rewrite text outside string literals, so fences, commas,
    colons and braces inside values are preserved.

Idempotency:
    Running `repair_json` on its own successful output returns it unchanged.
"""

import re


_OPENING_FENCE_RE = re.compile(r"\A\s*```[A-Za-z0-9_-]*[ \t]*\n?")
_CLOSING_FENCE_RE = re.compile(r"\n[ \t]*```\s*\Z")
_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")
_LEADING_PROSE_RE = re.compile(
    r"^\s*(?:here(?:'s| is)\b[^\n{]*?:|response\s*:)\s*",
    re.IGNORECASE,
)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([A-Za-z_$][A-Za-z0-9_$]*)(\s*:)")

_CLOSERS = {"{": "}", "[": "]"}
_TERMINATOR_FOLLOWERS = ",:}]"
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _split_segments(text: str) -> list[tuple[bool, str]]:
    """Split text into `(is_string_literal, chunk)` segments.

    String chunks keep their quotes. A trailing unterminated string is returned
    as a string chunk without a closing quote.
    """
    segments: list[tuple[bool, str]] = []
    buf: list[str] = []
    in_string = False
    i = 0

    while i < len(text):
        ch = text[i]
        if in_string:
            buf.append(ch)
            if ch == "\\" and i + 1 < len(text):
                buf.append(text[i + 1])
                i += 2
                continue
            if ch == '"':
                segments.append((True, "".join(buf)))
                buf = []
                in_string = False
        elif ch == '"':
            if buf:
                segments.append((False, "".join(buf)))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)
        i += 1

    if buf:
        segments.append((in_string, "".join(buf)))
    return segments


def _map_outside_strings(text: str, fn) -> str:
    return "".join(
        chunk if is_string else fn(chunk)
        for is_string, chunk in _split_segments(text)
    )


def strip_wrapping(text: str) -> str:
    """Remove a leading prose preamble and the fence lines around a block.

    Only a fence opening the text and a fence on the last line are removed;
    backticks elsewhere may be document content.
    """
    cleaned = _LEADING_PROSE_RE.sub("", text, count=1)
    cleaned = _OPENING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def strip_stray_fences(text: str) -> str:
    """Drop fence markers that sit between tokens, never inside strings."""
    return _map_outside_strings(text, lambda chunk: _FENCE_RE.sub("", chunk))


def isolate_object(text: str) -> str | None:
    """Return the substring from the first `{` to the last `}`.

    When no `}` follows the first `{` (truncated output) the remainder of the
    text is returned so the balancing step can close it.
    """
    start = text.find("{")
    if start == -1:
        return None
    end = text.rfind("}")
    if end > start:
        return text[start:end + 1]
    return text[start:].rstrip()


def _next_significant(text: str, index: int) -> str:
    j = index
    while j < len(text) and text[j].isspace():
        j += 1
    return text[j] if j < len(text) else ""


def escape_inner_quotes(text: str) -> str:
    """Escape quotes inside strings that cannot terminate the string.

    A quote inside a string literal terminates it only when the next
    non-whitespace character is `,`, `:`, `}`, `]` or the end of text. Any other
    quote is treated as content and escaped. Raw newlines, carriage returns and
    tabs inside strings are escaped too.
    """
    out: list[str] = []
    in_string = False
    i = 0

    while i < len(text):
        ch = text[i]
        if not in_string:
            out.append(ch)
            if ch == '"':
                in_string = True
            i += 1
            continue

        if ch == "\\" and i + 1 < len(text):
            out.append(text[i:i + 2])
            i += 2
            continue

        if ch == '"':
            follower = _next_significant(text, i + 1)
            if follower == "" or follower in _TERMINATOR_FOLLOWERS:
                out.append(ch)
                in_string = False
            else:
                out.append('\\"')
            i += 1
            continue

        out.append(_CONTROL_ESCAPES.get(ch, ch))
        i += 1

    return "".join(out)


def remove_trailing_commas(text: str) -> str:
    """Drop commas that directly precede a closing brace or bracket."""
    return _map_outside_strings(text, lambda chunk: _TRAILING_COMMA_RE.sub(r"\1", chunk))


def quote_bare_keys(text: str) -> str:
    """Wrap identifier-like object keys in double quotes."""
    return _map_outside_strings(text, lambda chunk: _BARE_KEY_RE.sub(r'\1"\2"\3', chunk))


def close_truncated(text: str) -> str:
    """Close an unterminated string and append missing closers.

    Closers are appended in reverse opening order, so `{"a":[` becomes
    `{"a":[]}`. A dangling `:` gets a `null` value before closing.
    """
    stack: list[str] = []
    segments = _split_segments(text)

    for is_string, chunk in segments:
        if is_string:
            continue
        for ch in chunk:
            if ch in _CLOSERS:
                stack.append(ch)
            elif ch in "}]" and stack and _CLOSERS[stack[-1]] == ch:
                stack.pop()

    repaired = text
    if segments and segments[-1][0] and not _is_terminated(segments[-1][1]):
        repaired += '"'

    if not stack:
        return repaired

    if repaired.rstrip().endswith(":"):
        repaired = repaired.rstrip() + " null"

    return repaired + "".join(_CLOSERS[opener] for opener in reversed(stack))


def _is_terminated(string_chunk: str) -> bool:
    if len(string_chunk) < 2 or not string_chunk.endswith('"'):
        return False
    # Count backslashes before the final quote; an odd run escapes it.
    backslashes = len(string_chunk[1:-1]) - len(string_chunk[1:-1].rstrip("\\"))
    return backslashes % 2 == 0


def repair_json(text: str) -> str | None:
    """Run the full heuristic repair pipeline.

    Returns:
        Repaired candidate text, or `None` when the text holds no `{` at all.
        The result is not guaranteed to parse; callers re-attempt parsing.
    """
    if not text:
        return None

    candidate = isolate_object(strip_wrapping(text))
    if candidate is None:
        return None

    candidate = escape_inner_quotes(candidate)
    candidate = strip_stray_fences(candidate)
    candidate = remove_trailing_commas(candidate)
    candidate = quote_bare_keys(candidate)
    candidate = close_truncated(candidate)
    candidate = remove_trailing_commas(candidate)
    return candidate
