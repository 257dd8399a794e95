"""Decision data models.

Pydantic models for the moves exchanged with the HiveMind worker.
"""

from __future__ import annotations

import logging
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_core import PydanticSerializationError

from hivemind_bridge.errors import DecodeFailure, EncodingFailure
from hivemind_bridge.protocol import ENCODING

logger = logging.getLogger(__name__)

DecisionT = TypeVar("DecisionT", bound=BaseModel)


class BaseDecisionModel(BaseModel):
    """Base model for values decoded from worker output.

    Configured to ignore extra fields the worker may emit but we don't
    model, and to accept either field names or their JSON aliases.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Movement(BaseDecisionModel):
    """A move from one board position to another.

    ``from`` is a Python keyword, so the field is ``from_`` in code and
    ``from`` on the wire.
    """

    from_: str = Field(alias="from")
    to: str

    def __str__(self) -> str:
        return f"{self.from_} -> {self.to}"


def encode_decision(decision: BaseModel) -> str:
    """Serialize a decision to compact single-line JSON using wire aliases.

    Args:
        decision: The decision to encode

    Returns:
        JSON text with no embedded newline

    Raises:
        EncodingFailure: If the value is not a model or cannot be serialized
    """
    if not isinstance(decision, BaseModel):
        logger.error("Refusing to encode %r: not a decision model", decision)
        raise EncodingFailure(
            f"Expected a pydantic model, got {type(decision).__name__}: {decision!r}"
        )
    try:
        return decision.model_dump_json(by_alias=True)
    except PydanticSerializationError as e:
        logger.error("Failed to convert %r to JSON: %s", decision, e)
        raise EncodingFailure(f"Failed to convert {decision!r} to JSON: {e}") from e


def decode_decision(text: str | bytes, model: type[DecisionT]) -> DecisionT:
    """Validate JSON text against a decision model.

    Args:
        text: A single JSON object
        model: The pydantic model class to decode into

    Returns:
        The decoded decision

    Raises:
        DecodeFailure: If the JSON is malformed or does not match the model
    """
    if isinstance(text, bytes):
        text = text.decode(ENCODING, errors="replace")
    try:
        return model.model_validate_json(text)
    except ValidationError as e:
        raise DecodeFailure(
            f"Output does not match {model.__name__}: {e.error_count()} error(s)",
            text=text,
        ) from e


def encode_movement(movement: Movement) -> str:
    """Serialize a Movement to its wire JSON."""
    return encode_decision(movement)


def decode_movement(text: str | bytes) -> Movement:
    """Decode wire JSON into a Movement."""
    return decode_decision(text, Movement)
