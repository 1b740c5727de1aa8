"""Partial-fill order call specs.

A partial-fill order locks the maker's full amount behind a truncated Merkle
root of per-part secret hashes. Each fill reveals one `(index, secret_hash,
proof)` triple, splits `making` off the remaining balance and uses it to fund a
fresh source escrow whose hashlock is that secret hash.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Optional

from ..balance import debit_account
from ..config import HASH_SIZE, MERKLE_ROOT_SIZE, MIN_PARTS, ORDER_HASH_SIZE
from ..errors import ErrorCode, SpecError
from ..events import Event, OrderFullyCompleted, PartialFillCompleted, PartialOrderCreated
from .. import immutables as imm_lib
from .. import merkle
from ..types import (
    NATIVE_ASSET,
    Call,
    CallType,
    ChainAddress,
    EscrowLeg,
    FillRecord,
    Immutables,
    PartialFillOrder,
    SwapState,
)
from . import factory


def _to_bytes(v: object) -> bytes:
    if isinstance(v, bytes):
        return v
    if isinstance(v, (list, tuple, bytearray)):
        return bytes(v)
    return b""


def _to_int(v: object, name: str) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{name} must be an integer")
    return v


def _proof(p: dict) -> list[bytes]:
    proof = p.get("proof", [])
    if not isinstance(proof, (list, tuple)):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "proof must be a list of nodes")
    return [_to_bytes(node) for node in proof]


def calculated_index(total: int, remaining: int, making: int, parts: int) -> int:
    return (total - remaining + making - 1) * parts // total


def is_valid_partial_fill(
    making: int,
    remaining: int,
    total: int,
    parts: int,
    validated_index: Optional[int],
) -> bool:
    """Amount/index consistency for one fill.

    Indices must track the cumulative filled percentage: a fill may not reuse
    the threshold bucket of the previous fill, and the completing fill has to
    reveal the reserved index one beyond the last partial threshold.
    """
    if validated_index is None:
        return False
    if total <= 0 or making <= 0 or making > remaining:
        return False

    calc = calculated_index(total, remaining, making, parts)
    if remaining == making:
        return calc + 2 == validated_index
    if total != remaining:
        prev = (total - remaining - 1) * parts // total
        if calc == prev:
            return False
    return calc + 1 == validated_index


def verify(state: SwapState, call: Call) -> None:
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "partial fill payload must be dict")

    ct = call.call_type
    if ct == CallType.CREATE_PARTIAL_ORDER:
        _verify_create_order(state, call, p)
    elif ct == CallType.EXECUTE_PARTIAL_FILL:
        _verify_execute_fill(state, call, p)
    else:
        raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported partial fill call type: {ct}")


def apply(state: SwapState, call: Call) -> tuple[SwapState, list[Event]]:
    p = call.payload
    ct = call.call_type
    if ct == CallType.CREATE_PARTIAL_ORDER:
        return _apply_create_order(state, call, p)
    if ct == CallType.EXECUTE_PARTIAL_FILL:
        return _apply_execute_fill(state, call, p)
    raise SpecError(ErrorCode.INVALID_TYPE, f"unsupported partial fill call type: {ct}")


# --- CREATE_PARTIAL_ORDER ---


def _verify_create_order(state: SwapState, call: Call, p: dict) -> None:
    order_hash = _to_bytes(p.get("order_hash"))
    if len(order_hash) != ORDER_HASH_SIZE:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"order_hash must be {ORDER_HASH_SIZE} bytes")
    if order_hash in state.orders:
        raise SpecError(ErrorCode.ORDER_EXISTS, "order already exists")

    token = p.get("token")
    if not isinstance(token, ChainAddress):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "token must be a ChainAddress")

    total = _to_int(p.get("total_amount"), "total_amount")
    if total <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "total_amount must be > 0")
    parts = _to_int(p.get("parts"), "parts")
    if parts < MIN_PARTS:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"parts must be >= {MIN_PARTS}")
    if len(_to_bytes(p.get("merkle_root"))) != MERKLE_ROOT_SIZE:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"merkle_root must be {MERKLE_ROOT_SIZE} bytes")

    maker = state.accounts.get(call.caller)
    if maker is None or maker.balance_of(token) < total:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient balance for order amount")


def _apply_create_order(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    order_hash = _to_bytes(p["order_hash"])
    total = p["total_amount"]

    order = PartialFillOrder(
        order_hash=order_hash,
        maker=call.caller,
        token=p["token"],
        total_amount=total,
        remaining=debit_account(ns, call.caller, p["token"], total),
        parts=p["parts"],
        merkle_root=_to_bytes(p["merkle_root"]),
        created_at=ns.now,
    )
    ns.orders[order_hash] = order
    return ns, [PartialOrderCreated(order_hash=order_hash, total_amount=total, parts=order.parts)]


# --- EXECUTE_PARTIAL_FILL ---


def _get_order(state: SwapState, p: dict) -> PartialFillOrder:
    order = state.orders.get(_to_bytes(p.get("order_hash")))
    if order is None:
        raise SpecError(ErrorCode.ORDER_NOT_FOUND, "order not found")
    return order


def _check_fill_immutables(order: PartialFillOrder, imm: object, making: int, secret_hash: bytes) -> Immutables:
    if not isinstance(imm, Immutables):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "immutables required")
    imm_lib.validate(imm)
    if imm.order_hash != order.order_hash:
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "immutables bound to a different order")
    if imm.maker != order.maker or imm.token != order.token:
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "immutables maker/token differ from the order")
    if imm.amount != making:
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "immutables amount must equal the fill amount")
    if imm.hashlock != secret_hash:
        raise SpecError(ErrorCode.MALFORMED_IMMUTABLES, "immutables hashlock must equal the revealed secret hash")
    if imm.timelocks.deployed_at is not None:
        raise SpecError(ErrorCode.SCHEDULE_ALREADY_DEPLOYED, "immutables already deployed")
    return imm


def _verify_execute_fill(state: SwapState, call: Call, p: dict) -> None:
    order = _get_order(state, p)
    if order.completed:
        raise SpecError(ErrorCode.ORDER_COMPLETED, "order already completed")

    making = _to_int(p.get("making"), "making")
    if making <= 0:
        raise SpecError(ErrorCode.INVALID_FILL_AMOUNT, "fill amount must be > 0")
    if making > order.remaining.value:
        raise SpecError(ErrorCode.INVALID_FILL_AMOUNT, "fill amount exceeds remaining")

    index = _to_int(p.get("index"), "index")
    merkle.check_index(index)
    if index in order.used_indices or merkle.is_revealed(state.validator, order.order_hash, index):
        raise SpecError(ErrorCode.REPLAYED_INDEX, f"secret index {index} already used")

    secret_hash = _to_bytes(p.get("secret_hash"))
    if len(secret_hash) != HASH_SIZE:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"secret_hash must be {HASH_SIZE} bytes")
    imm = _check_fill_immutables(order, p.get("immutables"), making, secret_hash)

    if not merkle.verify_proof(order.merkle_root, index, secret_hash, _proof(p)):
        raise SpecError(ErrorCode.INVALID_PROOF, "merkle proof does not match root")

    # a successful validation makes `index` the last validated index
    if not is_valid_partial_fill(making, order.remaining.value, order.total_amount, order.parts, index):
        raise SpecError(ErrorCode.INVALID_FILL_AMOUNT, "fill amount inconsistent with secret index")

    filler = state.accounts.get(call.caller)
    if filler is None or filler.balance_of(NATIVE_ASSET) < imm.safety_deposit:
        raise SpecError(ErrorCode.INSUFFICIENT_BALANCE, "insufficient native balance for safety deposit")


def _apply_execute_fill(state: SwapState, call: Call, p: dict) -> tuple[SwapState, list[Event]]:
    ns = deepcopy(state)
    order = _get_order(ns, p)
    making = p["making"]
    index = p["index"]
    secret_hash = _to_bytes(p["secret_hash"])
    remaining_before = order.remaining.value

    merkle.validate(ns.validator, order.order_hash, order.merkle_root, index, secret_hash, _proof(p))
    record = merkle.last_validated(ns.validator, order.order_hash, order.merkle_root)
    validated_index = record.index if record is not None else None
    if not is_valid_partial_fill(making, remaining_before, order.total_amount, order.parts, validated_index):
        raise SpecError(ErrorCode.INVALID_FILL_AMOUNT, "fill amount inconsistent with secret index")

    tokens = order.remaining.split(making)
    deposit = debit_account(ns, call.caller, NATIVE_ASSET, p["immutables"].safety_deposit)
    escrow, deposit_event = factory.create_escrow(
        ns, EscrowLeg.SOURCE, p["immutables"], tokens, deposit,
    )

    order.fills[index] = FillRecord(
        index=index,
        amount=making,
        timestamp=ns.now,
        filler=call.caller,
        cumulative=order.filled_amount,
        escrow_id=escrow.id,
    )
    order.used_indices.add(index)
    order.fill_count += 1

    if order.remaining.value == 0:
        order.completed = True
        fill_event: Event = OrderFullyCompleted(order_hash=order.order_hash, total_fills=order.fill_count)
    else:
        fill_event = PartialFillCompleted(
            order_hash=order.order_hash,
            index=index,
            amount=making,
            remaining=order.remaining.value,
            cumulative=order.filled_amount,
        )
    return ns, [deposit_event, fill_event]
