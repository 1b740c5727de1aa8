"""Hash commitment verifier for whole-order withdrawals."""

from __future__ import annotations

import hmac

from ..config import HASHLOCK_SIZE
from ..errors import ErrorCode, SpecError
from .hash_algorithms import keccak256


def secret_hash(secret: bytes) -> bytes:
    return keccak256(secret)


def verify(secret: bytes, commitment: bytes) -> bool:
    """Return True iff keccak256(secret) equals the stored 32-byte commitment."""
    if len(commitment) != HASHLOCK_SIZE:
        return False
    return hmac.compare_digest(keccak256(secret), commitment)


def require_valid_secret(secret: bytes, commitment: bytes) -> None:
    if not verify(secret, commitment):
        raise SpecError(ErrorCode.INVALID_SECRET, "secret does not match hashlock")
