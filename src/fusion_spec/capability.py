"""Capability gate: bearer credentials for public and owner-only actions.

A capability is presented by id with a call. It authorizes the call when it
is registered in the state, its recorded holder is the caller, its kind
matches, and (for access tokens) its balance is non-empty.
"""

from __future__ import annotations

from typing import Optional

from .crypto.hash_algorithms import blake3_hash
from .errors import ErrorCode, SpecError
from .types import Capability, CapabilityKind, ChainAddress, SwapState


def capability_id(kind: CapabilityKind, target: bytes, holder: ChainAddress) -> bytes:
    buf = bytearray()
    buf += bytes([kind])
    buf += target
    buf += holder.chain_id.to_bytes(4, "big")
    buf += holder.raw
    return blake3_hash(bytes(buf))


def _lookup(state: SwapState, caller: ChainAddress, cap_id: Optional[bytes]) -> Capability:
    if not cap_id:
        raise SpecError(ErrorCode.UNAUTHORIZED, "capability required")
    cap = state.capabilities.get(cap_id)
    if cap is None or cap.holder != caller:
        raise SpecError(ErrorCode.UNAUTHORIZED, "capability not held by caller")
    return cap


def require_access(state: SwapState, caller: ChainAddress, cap_id: Optional[bytes]) -> None:
    cap = _lookup(state, caller, cap_id)
    if cap.kind != CapabilityKind.ACCESS or cap.balance <= 0:
        raise SpecError(ErrorCode.UNAUTHORIZED, "empty access capability")


def require_owner(state: SwapState, caller: ChainAddress, cap_id: Optional[bytes], escrow_id: bytes) -> None:
    cap = _lookup(state, caller, cap_id)
    if cap.kind != CapabilityKind.ESCROW_OWNER or cap.target != escrow_id:
        raise SpecError(ErrorCode.UNAUTHORIZED, "not the escrow owner capability")


def require_identity(caller: ChainAddress, expected: ChainAddress, role: str) -> None:
    if caller != expected:
        raise SpecError(ErrorCode.UNAUTHORIZED, f"caller is not the {role}")


def issue(state: SwapState, kind: CapabilityKind, holder: ChainAddress, target: bytes = b"", balance: int = 1) -> Capability:
    cid = capability_id(kind, target, holder)
    if cid in state.capabilities:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "capability already issued")
    cap = Capability(id=cid, kind=kind, holder=holder, target=target, balance=balance)
    state.capabilities[cid] = cap
    return cap


def transfer(state: SwapState, caller: ChainAddress, cap_id: Optional[bytes], new_holder: ChainAddress) -> Capability:
    if not cap_id or cap_id not in state.capabilities:
        raise SpecError(ErrorCode.CAPABILITY_NOT_FOUND, "capability not found")
    cap = state.capabilities[cap_id]
    if cap.holder != caller:
        raise SpecError(ErrorCode.UNAUTHORIZED, "only the holder can transfer a capability")
    cap.holder = new_holder
    return cap
