"""Exceptions raised by the HiveMind bridge."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for all bridge errors."""

    pass


class SpawnFailure(BridgeError):
    """The worker executable could not be found or launched."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class EncodingFailure(BridgeError):
    """A value could not be turned into wire text."""

    pass


class WriteFailure(BridgeError):
    """Writing to the worker's input stream failed."""

    pass


class WorkerUnreachable(BridgeError):
    """The worker process has exited and can no longer be driven."""

    def __init__(self, message: str, returncode: int | None = None) -> None:
        super().__init__(message)
        self.returncode = returncode


class ExtractionFailure(BridgeError):
    """No balanced JSON object was found in the worker's output.

    Attributes:
        raw: The bytes read from the worker, kept for troubleshooting
    """

    def __init__(self, message: str, raw: bytes = b"") -> None:
        super().__init__(message)
        self.raw = raw


class ResponseTimeout(ExtractionFailure):
    """The worker wrote nothing before the deadline."""

    pass


class DecodeFailure(BridgeError):
    """Extracted JSON did not match the decision schema.

    Attributes:
        text: The extracted JSON text
    """

    def __init__(self, message: str, text: str = "") -> None:
        super().__init__(message)
        self.text = text


class ContextGone(BridgeError):
    """The bridge was closed while a request was still pending."""

    pass


class BridgeClosed(BridgeError):
    """The bridge has been closed."""

    pass
