"""Escrow factory call specs (creation and capability transfer)."""

from __future__ import annotations

from copy import deepcopy

from ..balance import Balance, debit_account
from .. import capability as caps
from ..crypto.hash_algorithms import blake3_hash
from ..errors import ErrorCode, SpecError
from ..events import CapabilityTransferred, DepositReceived, Event
from .. import immutables as imm_lib
from ..types import (
    NATIVE_ASSET,
    Call,
    CallType,
    CapabilityKind,
    ChainAddress,
    EscrowLeg,
    EscrowRecord,
    Immutables,
    SwapState,
)

_CREATE_LEGS = {
    CallType.CREATE_SRC_ESCROW: EscrowLeg.SOURCE,
    CallType.CREATE_DST_ESCROW: EscrowLeg.DESTINATION,
}


def escrow_id_for(leg: EscrowLeg, imm: Immutables) -> bytes:
    return blake3_hash(bytes([leg]) + imm_lib.immutables_hash(imm))


def _immutables_from_payload(p: dict) -> Immutables:
    imm = p.get("immutables")
    if not isinstance(imm, Immutables):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "immutables required")
    imm_lib.validate(imm)
    return imm


def _to_address(v: object, name: str) -> ChainAddress:
    if not isinstance(v, ChainAddress):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{name} must be a ChainAddress")
    return v


def verify(state: SwapState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "factory payload must be dict")

    ct = call.call_type
    if ct in _CREATE_LEGS:
        _verify_create(state, call, p)
    elif ct == CallType.TRANSFER_CAPABILITY:
        _verify_transfer_capability(state, call, p)
    else:
        raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported factory call type: {ct}")


def apply(state: SwapState, call: Call) -> tuple[SwapState, list[Event]]:
    p = call.payload
    ct = call.call_type
    if ct in _CREATE_LEGS:
        return _apply_create(state, call, p)
    if ct == CallType.TRANSFER_CAPABILITY:
        return _apply_transfer_capability(state, call, p)
    raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported factory call type: {ct}")


# --- CREATE_SRC_ESCROW / CREATE_DST_ESCROW ---


def _verify_create(state: SwapState, call: Call, p: dict) -> None:
    imm = _immutables_from_payload(p)
    if imm.timelocks.deployed_at is not None:
        raise SpecError(ErrorCode.SCHEDULE_ALREADY_DEPLOYED, "immutables already deployed")

    funder = state.accounts.get(call.caller)
    if funder is None:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "funder account not found")
    if funder.balance_of(imm.token) < imm.amount:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient token balance")
    native_needed = imm.safety_deposit + (imm.amount if imm.token == NATIVE_ASSET else 0)
    if funder.balance_of(NATIVE_ASSET) < native_needed:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient native balance for safety deposit")


def create_escrow(
    state: SwapState,
    leg: EscrowLeg,
    imm: Immutables,
    token_balance: Balance,
    safety_deposit: Balance,
) -> tuple[EscrowRecord, Event]:
    """Register a funded escrow in `state` (mutates `state`).

    `token_balance` must hold exactly `imm.amount`; the schedule is stamped
    with the current time here and never again. The escrow-owner capability is
    issued to `imm.taker` regardless of who funded the escrow.
    """
    if token_balance.value != imm.amount:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow funding must equal immutables amount")
    if safety_deposit.value != imm.safety_deposit:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "safety deposit must equal immutables safety_deposit")

    deployed = imm_lib.with_deployed_at(imm, state.now)
    eid = escrow_id_for(leg, deployed)
    if eid in state.escrows:
        raise SpecError(ErrorCode.ESCROW_EXISTS, "escrow already exists")

    if leg == EscrowLeg.SOURCE:
        rescue_delay = state.factory.src_rescue_delay
    else:
        rescue_delay = state.factory.dst_rescue_delay

    cap = caps.issue(state, CapabilityKind.ESCROW_OWNER, deployed.taker, target=eid)
    escrow = EscrowRecord(
        id=eid,
        leg=leg,
        immutables=deployed,
        token_balance=token_balance,
        safety_deposit=safety_deposit,
        rescue_delay=rescue_delay,
        owner_capability=cap.id,
    )
    state.escrows[eid] = escrow
    state.escrows_by_order.setdefault(deployed.order_hash, []).append(eid)
    state.order_by_escrow[eid] = deployed.order_hash

    event = DepositReceived(
        escrow_id=eid,
        leg=leg,
        token=deployed.token,
        amount=token_balance.value,
        safety_deposit=safety_deposit.value,
    )
    return escrow, event


def _apply_create(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    leg = _CREATE_LEGS[call.call_type]
    imm = p["immutables"]

    tokens = debit_account(ns, call.caller, imm.token, imm.amount)
    deposit = debit_account(ns, call.caller, NATIVE_ASSET, imm.safety_deposit)
    _, event = create_escrow(ns, leg, imm, tokens, deposit)
    return ns, [event]


# --- TRANSFER_CAPABILITY ---


def _verify_transfer_capability(state: SwapState, call: Call, p: dict) -> None:
    _to_address(p.get("new_holder"), "new_holder")
    cap = state.capabilities.get(call.capability or b"")
    if cap is None:
        raise SpecError(ErrorCode.CAPABILITY_NOT_FOUND, "capability not found")
    if cap.holder != call.caller:
        raise SpecError(ErrorCode.UNAUTHORIZED, "only the holder can transfer a capability")


def _apply_transfer_capability(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    new_holder = p["new_holder"]
    cap = caps.transfer(ns, call.caller, call.capability, new_holder)
    return ns, [CapabilityTransferred(capability_id=cap.id, new_holder=new_holder)]
