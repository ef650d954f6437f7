"""
Input validation schemas using Pydantic v2
Validates operator commands sent to the timing engine
"""

import logging
from typing import Any, Optional, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .clock import to_ms
from .settings import get_settings
from .types import EventKind

logger = logging.getLogger(__name__)

COMMAND_TYPES = frozenset(
    {
        "START_CLOCK",
        "STOP_CLOCK",
        "MARK_TIME",
        "ASSIGN_BOW_NUMBER",
    }
)


class InputSanitizer:
    """Utility class for operator input sanitization"""

    @staticmethod
    def sanitize_string(value: Any, max_length: int = 255) -> str:
        if not isinstance(value, str):
            return str(value)[:max_length]
        return value.strip()[:max_length].replace("\0", "")

    @staticmethod
    def parse_bow_number(raw: Any) -> Optional[int]:
        """Turn the bow-number field as typed by an operator into an int.

        Blank input means "no bow number" (a pending event). Anything that
        is not a whole positive number is rejected.
        """
        if raw is None:
            return None
        if isinstance(raw, bool):
            raise ValueError("bow number must be a number")
        if isinstance(raw, int):
            value = raw
        elif isinstance(raw, float):
            if not raw.is_integer():
                raise ValueError("bow number must be a whole number")
            value = int(raw)
        else:
            text = InputSanitizer.sanitize_string(raw, 16)
            if not text:
                return None
            if not text.isdigit():
                raise ValueError(f"bow number must be a whole number, got {text!r}")
            value = int(text)
        if value < 1:
            raise ValueError("bow number must be positive")
        return value


class ValidatedCommand(BaseModel):
    """Operator command as received from a timing station"""

    type: str = Field(..., min_length=1, max_length=50, description="Command type")
    kind: Optional[EventKind] = Field(None, description="'start' or 'finish' for MARK_TIME")
    bowNumber: Optional[int] = Field(None, description="Bow number; blank leaves the event pending")
    eventId: Optional[str] = Field(None, min_length=1, max_length=64, description="Pending event id")
    capturedAt: Optional[int] = Field(
        None, ge=0, description="Capture instant (epoch ms); defaults to the engine clock"
    )

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in COMMAND_TYPES:
            raise ValueError(f"type must be one of {sorted(COMMAND_TYPES)}, got {v}")
        return v

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("bowNumber", mode="before")
    @classmethod
    def validate_bow_number(cls, v: Any) -> Optional[int]:
        value = InputSanitizer.parse_bow_number(v)
        if value is not None and value > get_settings().max_bow_number:
            raise ValueError(f"bow number must be at most {get_settings().max_bow_number}")
        return value

    @field_validator("capturedAt", mode="before")
    @classmethod
    def validate_captured_at(cls, v: Any) -> Optional[int]:
        return to_ms(v)

    @model_validator(mode="after")
    def validate_command_fields(self) -> Self:
        """Validate required fields based on command type"""
        if self.type == "MARK_TIME":
            if self.kind is None:
                raise ValueError("MARK_TIME requires kind")
        elif self.type == "ASSIGN_BOW_NUMBER":
            if self.eventId is None:
                raise ValueError("ASSIGN_BOW_NUMBER requires eventId")
            if self.bowNumber is None:
                raise ValueError("ASSIGN_BOW_NUMBER requires bowNumber")
        return self

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @classmethod
    def parse(cls, cmd: dict) -> "ValidatedCommand":
        """
        Validate a raw command dictionary

        Raises:
            ValueError: If validation fails
        """
        try:
            return cls(**cmd)
        except Exception as e:
            logger.warning(f"Command validation failed: {e}")
            raise ValueError(f"Invalid command: {str(e)}")


__all__ = [
    "COMMAND_TYPES",
    "ValidatedCommand",
    "InputSanitizer",
]
