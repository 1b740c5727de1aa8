"""Fusion swap spec error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCategory(IntEnum):
    SUCCESS = 0x00
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    RESOURCE = 0x03
    STATE = 0x04
    TIMING = 0x05
    CRYPTO = 0x06
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Success
    SUCCESS = 0x0000

    # Validation
    INVALID_FORMAT = 0x0100
    INVALID_TYPE = 0x0102
    INVALID_AMOUNT = 0x0105
    INVALID_ADDRESS = 0x0106
    INVALID_PAYLOAD = 0x0107
    MALFORMED_IMMUTABLES = 0x0108
    INVALID_FILL_AMOUNT = 0x0109

    # Authorization
    UNAUTHORIZED = 0x0200

    # Resource
    INSUFFICIENT_BALANCE = 0x0300
    OVERFLOW = 0x0304

    # State
    ESCROW_NOT_FOUND = 0x0402
    ALREADY_FINALIZED = 0x0403
    ESCROW_EXISTS = 0x0404
    ORDER_NOT_FOUND = 0x0405
    ORDER_EXISTS = 0x0406
    ORDER_COMPLETED = 0x0407
    REPLAYED_INDEX = 0x0408
    CAPABILITY_NOT_FOUND = 0x0409
    SCHEDULE_NOT_DEPLOYED = 0x040A
    SCHEDULE_ALREADY_DEPLOYED = 0x040B

    # Timing
    OUT_OF_WINDOW = 0x0500

    # Crypto
    INVALID_SECRET = 0x0600
    INVALID_PROOF = 0x0601

    # Internal
    INTERNAL_ERROR = 0xFF00
    NOT_IMPLEMENTED = 0xFF01
    UNKNOWN = 0xFFFF

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self.value >> 8)


@dataclass(frozen=True)
class SpecError(Exception):
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen (Python 3.13 contextlib compat).
_EXCEPTION_ATTRS = frozenset(("__traceback__", "__context__", "__cause__"))
_frozen_setattr = SpecError.__setattr__


def _spec_error_setattr(self: SpecError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


SpecError.__setattr__ = _spec_error_setattr  # type: ignore[method-assign]
