"""Protocol constants and command construction for the HiveMind worker.

Handles:
- Protocol constants (verbs, encoding, timing defaults)
- Newline-terminated command framing
- Command validation
"""

from __future__ import annotations

from hivemind_bridge.errors import EncodingFailure

# =============================================================================
# Protocol Constants
# =============================================================================

# Command verbs understood by the worker
NEW_VERB: str = "new"
PLAY_VERB: str = "play"
MOVE_VERB: str = "move"

# Wire encoding for every line in both directions
ENCODING: str = "utf-8"
LINE_TERMINATOR: str = "\n"

# Output is scanned for braces one char per byte; UTF-8 never reuses ASCII
# bytes inside multi-byte sequences, so char offsets are byte offsets
SCAN_ENCODING: str = "latin-1"

# Timing settings
DEFAULT_RESPONSE_DELAY: float = 12.0  # seconds
DEFAULT_POLL_INTERVAL: float = 0.25  # seconds
DEFAULT_TERMINATE_TIMEOUT: float = 5.0  # seconds

# Buffer sizes
READ_BUFFER_SIZE: int = 65536  # 64KB read chunk

# Maximum characters of raw output echoed into log messages
LOG_PREVIEW_LENGTH: int = 500


# =============================================================================
# Command Construction
# =============================================================================


def new_game_command(is_first: bool) -> str:
    """Build the initialization command.

    Args:
        is_first: Whether the worker's side moves first

    Returns:
        The command text, e.g. "new true"
    """
    return f"{NEW_VERB} {'true' if is_first else 'false'}"


def play_command() -> str:
    """Build the command asking the worker for a decision."""
    return PLAY_VERB


def move_command(json_body: str) -> str:
    """Build the command informing the worker of an applied move.

    Args:
        json_body: The move's JSON encoding

    Returns:
        The command text, e.g. 'move {"from":"A1","to":"B2"}'

    Raises:
        EncodingFailure: If the body is empty or spans more than one line
    """
    if not json_body.strip():
        raise EncodingFailure("Move body is empty")
    if "\n" in json_body or "\r" in json_body:
        raise EncodingFailure(f"Move body contains a line break: {json_body!r}")
    return f"{MOVE_VERB} {json_body}"


def normalize_line(line: str) -> str:
    """Normalize a line for transmission.

    Ensures the line ends with exactly one newline.

    Args:
        line: The line to normalize

    Returns:
        The line with a trailing newline, or "" for a blank line
    """
    stripped = line.rstrip("\n\r")
    if not stripped:
        return ""
    return stripped + LINE_TERMINATOR


def preview(text: str, limit: int = LOG_PREVIEW_LENGTH) -> str:
    """Truncate text for inclusion in a log message."""
    return text[:limit] + "..." if len(text) > limit else text
