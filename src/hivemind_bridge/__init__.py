"""HiveMind Bridge - drive an external HiveMind worker over stdin/stdout.

A small async bridge that:
- Spawns the worker executable and tells it which side moves first
- Asks the worker for a move and recovers the JSON answer from its noisy output
- Forwards moves applied elsewhere back to the worker
"""

from hivemind_bridge.bridge import HiveMindBridge
from hivemind_bridge.config import BridgeConfig, get_config
from hivemind_bridge.errors import (
    BridgeClosed,
    BridgeError,
    ContextGone,
    DecodeFailure,
    EncodingFailure,
    ExtractionFailure,
    ResponseTimeout,
    SpawnFailure,
    WorkerUnreachable,
    WriteFailure,
)
from hivemind_bridge.extraction import extract_json
from hivemind_bridge.models import Movement

__version__ = "0.1.0"

__all__ = [
    "BridgeClosed",
    "BridgeConfig",
    "BridgeError",
    "ContextGone",
    "DecodeFailure",
    "EncodingFailure",
    "ExtractionFailure",
    "HiveMindBridge",
    "Movement",
    "ResponseTimeout",
    "SpawnFailure",
    "WorkerUnreachable",
    "WriteFailure",
    "extract_json",
    "get_config",
]
