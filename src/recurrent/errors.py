"""Deterministic error model for retry policies and invocations."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCode(IntEnum):
    """Stable codes carried by every :class:`RecurrentError`.

    Codes are grouped by concern: 1x for invocation state, 2x for policy and
    settings configuration.
    """

    UNSPECIFIED = 1
    INVALID_STATE = 10
    CONFIG_ERROR = 20
    VALIDATION_ERROR = 21


@dataclass
class RecurrentError(Exception):
    message: str
    code: ErrorCode = ErrorCode.UNSPECIFIED
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class InvalidStateError(RecurrentError):
    """Raised when a finished invocation is asked to record another attempt."""

    code: ErrorCode = ErrorCode.INVALID_STATE


@dataclass
class PolicyConfigError(RecurrentError):
    """Raised for out-of-range or contradictory retry policy parameters."""

    code: ErrorCode = ErrorCode.CONFIG_ERROR
