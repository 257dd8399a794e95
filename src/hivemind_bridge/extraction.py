"""Recover a JSON object from noisy worker output.

The worker writes log text and its JSON answer to the same unframed stream,
so the answer has to be located by brace matching rather than by line.

Usage:
    from hivemind_bridge.extraction import extract_json

    extract_json(b'Log: thinking...\\n{"from":"A1","to":"B2"}\\nDone\\n')
    # -> '{"from":"A1","to":"B2"}'
"""

from __future__ import annotations

from hivemind_bridge.protocol import ENCODING


def find_json_span(text: str, *, string_aware: bool = True) -> tuple[int, int] | None:
    """Locate the first balanced ``{...}`` group in text.

    Scanning starts at the first ``{`` with a depth of 1 and stops when the
    depth returns to 0 or the text runs out.

    Args:
        text: The text to scan
        string_aware: If True, braces inside quoted JSON strings (including
            escaped quotes) do not change the depth. If False, every brace
            counts, which misreads objects whose string values hold braces.

    Returns:
        (start, end) where text[start:end] is the object and end is one past
        the closing brace, or None if there is no ``{`` or it never balances
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 1
    in_string = False
    escaped = False
    index = start + 1
    length = len(text)

    while depth > 0 and index < length:
        char = text[index]
        index += 1

        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == '"' and string_aware:
            in_string = True

    if depth != 0:
        return None
    return start, index


def extract_json(data: bytes | str, *, string_aware: bool = True) -> str | None:
    """Return the first balanced JSON object in data.

    Bytes are decoded as UTF-8; undecodable bytes become replacement
    characters so binary noise around the object does not prevent extraction.

    Args:
        data: Raw worker output
        string_aware: See find_json_span

    Returns:
        The object's text, unchanged, or None if no balanced object exists
    """
    text = data.decode(ENCODING, errors="replace") if isinstance(data, bytes) else data
    span = find_json_span(text, string_aware=string_aware)
    if span is None:
        return None
    start, end = span
    return text[start:end]
