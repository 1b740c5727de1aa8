"""Escrow ledger call specs.

Check order for every transition is fixed: terminal-state guard, then
authorization, then the timelock window, then the secret, and only then any
balance movement.

    ---- deployed --/-- PRIVATE WITHDRAWAL --/-- PUBLIC WITHDRAWAL --/--
    --/-- PRIVATE CANCELLATION --/-- PUBLIC CANCELLATION ----
"""

from __future__ import annotations

from copy import deepcopy

from ..balance import Balance, credit_account
from .. import capability as caps
from ..crypto import hashlock
from ..errors import ErrorCode, SpecError
from ..events import CancellationCompleted, Event, FundsRescued, WithdrawalCompleted
from .. import timelocks as tl
from ..types import (
    NATIVE_ASSET,
    Call,
    CallType,
    ChainAddress,
    EscrowLeg,
    EscrowRecord,
    SwapState,
)

_WITHDRAW_TYPES = frozenset({
    CallType.WITHDRAW,
    CallType.WITHDRAW_TO,
    CallType.PUBLIC_WITHDRAW,
})

_CANCEL_TYPES = frozenset({
    CallType.CANCEL,
    CallType.PUBLIC_CANCEL,
})


def _to_bytes(v: object) -> bytes:
    if isinstance(v, bytes):
        return v
    if isinstance(v, (list, tuple, bytearray)):
        return bytes(v)
    return b""


def _get_escrow(state: SwapState, p: dict) -> EscrowRecord:
    eid = _to_bytes(p.get("escrow_id"))
    escrow = state.escrows.get(eid)
    if escrow is None:
        raise SpecError(ErrorCode.ESCROW_NOT_FOUND, "escrow not found")
    return escrow


def _require_active(escrow: EscrowRecord) -> None:
    if escrow.withdrawn or escrow.cancelled:
        raise SpecError(ErrorCode.ALREADY_FINALIZED, f"escrow is {escrow.status.value}")


def withdrawal_recipient(escrow: EscrowRecord, call: Call) -> ChainAddress:
    """Where the escrowed tokens go on a successful withdrawal."""
    imm = escrow.immutables
    if escrow.leg == EscrowLeg.DESTINATION:
        return imm.maker
    if call.call_type == CallType.WITHDRAW_TO:
        return call.payload["target"]
    if call.call_type == CallType.PUBLIC_WITHDRAW:
        return imm.taker
    return call.caller


def cancellation_recipient(escrow: EscrowRecord) -> ChainAddress:
    """Refund target: the party whose tokens were locked in this leg."""
    if escrow.leg == EscrowLeg.SOURCE:
        return escrow.immutables.maker
    return escrow.immutables.taker


def verify(state: SwapState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "escrow payload must be dict")

    ct = call.call_type
    if ct in _WITHDRAW_TYPES:
        _verify_withdraw(state, call, p)
    elif ct in _CANCEL_TYPES:
        _verify_cancel(state, call, p)
    elif ct == CallType.RESCUE_FUNDS:
        _verify_rescue(state, call, p)
    else:
        raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported escrow call type: {ct}")


def apply(state: SwapState, call: Call) -> tuple[SwapState, list[Event]]:
    p = call.payload
    ct = call.call_type
    if ct in _WITHDRAW_TYPES:
        return _apply_withdraw(state, call, p)
    if ct in _CANCEL_TYPES:
        return _apply_cancel(state, call, p)
    if ct == CallType.RESCUE_FUNDS:
        return _apply_rescue(state, call, p)
    raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported escrow call type: {ct}")


# --- WITHDRAW / WITHDRAW_TO / PUBLIC_WITHDRAW ---


def _verify_withdraw(state: SwapState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    imm = escrow.immutables
    ct = call.call_type

    if ct == CallType.WITHDRAW_TO:
        if escrow.leg != EscrowLeg.SOURCE:
            raise SpecError(ErrorCode.INVALID_TYPE, "withdraw_to is only defined for source escrows")
        if not isinstance(p.get("target"), ChainAddress):
            raise SpecError(ErrorCode.INVALID_PAYLOAD, "withdraw_to requires a target address")

    _require_active(escrow)

    withdrawal, public_withdrawal, cancellation, _ = tl.leg_stages(escrow.leg)
    if ct == CallType.PUBLIC_WITHDRAW:
        caps.require_access(state, call.caller, call.capability)
        tl.require_window(imm.timelocks, state.now, public_withdrawal, cancellation)
    else:
        caps.require_identity(call.caller, imm.taker, "taker")
        tl.require_window(imm.timelocks, state.now, withdrawal, cancellation)

    hashlock.require_valid_secret(_to_bytes(p.get("secret")), imm.hashlock)


def _apply_withdraw(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    escrow = _get_escrow(ns, p)
    escrow.withdrawn = True

    imm = escrow.immutables
    credit_account(ns, withdrawal_recipient(escrow, call), imm.token, escrow.token_balance.split(imm.amount))
    credit_account(ns, call.caller, NATIVE_ASSET, escrow.safety_deposit.withdraw_all())
    return ns, [WithdrawalCompleted(escrow_id=escrow.id, secret=_to_bytes(p.get("secret")))]


# --- CANCEL / PUBLIC_CANCEL ---


def _verify_cancel(state: SwapState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    imm = escrow.immutables
    _require_active(escrow)

    _, _, cancellation, public_cancellation = tl.leg_stages(escrow.leg)
    if call.call_type == CallType.PUBLIC_CANCEL:
        caps.require_access(state, call.caller, call.capability)
        tl.require_window(imm.timelocks, state.now, public_cancellation)
    else:
        caps.require_identity(call.caller, imm.taker, "taker")
        tl.require_window(imm.timelocks, state.now, cancellation)


def _apply_cancel(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    escrow = _get_escrow(ns, p)
    escrow.cancelled = True

    imm = escrow.immutables
    credit_account(ns, cancellation_recipient(escrow), imm.token, escrow.token_balance.withdraw_all())
    credit_account(ns, call.caller, NATIVE_ASSET, escrow.safety_deposit.withdraw_all())
    return ns, [CancellationCompleted(escrow_id=escrow.id)]


# --- RESCUE_FUNDS ---


def _rescue_sources(escrow: EscrowRecord, token: ChainAddress) -> list[Balance]:
    sources = []
    if token == escrow.immutables.token:
        sources.append(escrow.token_balance)
    if token == NATIVE_ASSET:
        sources.append(escrow.safety_deposit)
    return sources


def _verify_rescue(state: SwapState, call: Call, p: dict) -> None:
    escrow = _get_escrow(state, p)
    imm = escrow.immutables

    token = p.get("token")
    if not isinstance(token, ChainAddress):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "rescue requires a token address")
    amount = p.get("amount")
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "rescue amount must be an integer")
    if amount <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "rescue amount must be > 0")

    caps.require_identity(call.caller, imm.taker, "taker")
    caps.require_owner(state, call.caller, call.capability, escrow.id)
    tl.only_after(state.now, tl.rescue_start(imm.timelocks, escrow.rescue_delay))

    available = sum(b.value for b in _rescue_sources(escrow, token))
    if amount > available:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "rescue amount exceeds escrow balance")


def _apply_rescue(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    escrow = _get_escrow(ns, p)
    token = p["token"]
    amount = p["amount"]

    rescued = Balance()
    for source in _rescue_sources(escrow, token):
        take = min(source.value, amount - rescued.value)
        rescued.join(source.split(take))
    if rescued.value != amount:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "rescue amount exceeds escrow balance")

    credit_account(ns, call.caller, token, rescued)
    return ns, [FundsRescued(escrow_id=escrow.id, token=token, amount=amount)]
