"""Helpers to serialize/deserialize swap fixtures for the fusion specs."""

from __future__ import annotations

from typing import Any

from fusion_spec.balance import Balance
from fusion_spec.config import FactoryConfig
from fusion_spec.types import (
    AccountState,
    Call,
    CallType,
    Capability,
    CapabilityKind,
    ChainAddress,
    EscrowLeg,
    EscrowRecord,
    FillRecord,
    GlobalState,
    Immutables,
    MerkleValidatorState,
    PartialFillOrder,
    SwapState,
    Timelocks,
    ValidationRecord,
)

_ADDRESS_KEYS = frozenset({"target", "token", "new_holder"})
_BYTES_KEYS = frozenset({"escrow_id", "secret", "order_hash", "secret_hash", "merkle_root"})


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def address_to_json(addr: ChainAddress) -> dict[str, Any]:
    return {"chain_id": addr.chain_id, "raw": _bytes_to_hex(addr.raw)}


def address_from_json(data: dict[str, Any]) -> ChainAddress:
    return ChainAddress(chain_id=data["chain_id"], raw=_hex_to_bytes(data["raw"]))


def _timelocks_to_json(t: Timelocks) -> dict[str, Any]:
    return {
        "src_withdrawal": t.src_withdrawal,
        "src_public_withdrawal": t.src_public_withdrawal,
        "src_cancellation": t.src_cancellation,
        "src_public_cancellation": t.src_public_cancellation,
        "dst_withdrawal": t.dst_withdrawal,
        "dst_public_withdrawal": t.dst_public_withdrawal,
        "dst_cancellation": t.dst_cancellation,
        "dst_public_cancellation": t.dst_public_cancellation,
        "deployed_at": t.deployed_at,
    }


def _timelocks_from_json(data: dict[str, Any]) -> Timelocks:
    return Timelocks(**data)


def immutables_to_json(imm: Immutables) -> dict[str, Any]:
    return {
        "order_hash": _bytes_to_hex(imm.order_hash),
        "hashlock": _bytes_to_hex(imm.hashlock),
        "maker": address_to_json(imm.maker),
        "taker": address_to_json(imm.taker),
        "token": address_to_json(imm.token),
        "amount": imm.amount,
        "safety_deposit": imm.safety_deposit,
        "timelocks": _timelocks_to_json(imm.timelocks),
    }


def immutables_from_json(data: dict[str, Any]) -> Immutables:
    return Immutables(
        order_hash=_hex_to_bytes(data["order_hash"]),
        hashlock=_hex_to_bytes(data["hashlock"]),
        maker=address_from_json(data["maker"]),
        taker=address_from_json(data["taker"]),
        token=address_from_json(data["token"]),
        amount=data["amount"],
        safety_deposit=data["safety_deposit"],
        timelocks=_timelocks_from_json(data["timelocks"]),
    )


def state_to_json(state: SwapState) -> dict[str, Any]:
    result: dict[str, Any] = {
        "global_state": {
            "timestamp": state.global_state.timestamp,
            "block_height": state.global_state.block_height,
        },
        "factory": {
            "src_rescue_delay": state.factory.src_rescue_delay,
            "dst_rescue_delay": state.factory.dst_rescue_delay,
        },
        "accounts": [
            {
                "address": address_to_json(a.address),
                "balances": [
                    {"token": address_to_json(token), "amount": amount}
                    for token, amount in a.balances.items()
                ],
            }
            for a in state.accounts.values()
        ],
    }

    if state.escrows:
        result["escrows"] = [
            {
                "id": _bytes_to_hex(e.id),
                "leg": e.leg.name,
                "immutables": immutables_to_json(e.immutables),
                "token_balance": e.token_balance.value,
                "safety_deposit": e.safety_deposit.value,
                "rescue_delay": e.rescue_delay,
                "owner_capability": _bytes_to_hex(e.owner_capability),
                "withdrawn": e.withdrawn,
                "cancelled": e.cancelled,
            }
            for e in state.escrows.values()
        ]

    if state.orders:
        result["orders"] = [
            {
                "order_hash": _bytes_to_hex(o.order_hash),
                "maker": address_to_json(o.maker),
                "token": address_to_json(o.token),
                "total_amount": o.total_amount,
                "remaining": o.remaining.value,
                "parts": o.parts,
                "merkle_root": _bytes_to_hex(o.merkle_root),
                "created_at": o.created_at,
                "fills": [
                    {
                        "index": f.index,
                        "amount": f.amount,
                        "timestamp": f.timestamp,
                        "filler": address_to_json(f.filler),
                        "cumulative": f.cumulative,
                        "escrow_id": _bytes_to_hex(f.escrow_id),
                    }
                    for f in o.fills.values()
                ],
                "used_indices": sorted(o.used_indices),
                "fill_count": o.fill_count,
                "completed": o.completed,
            }
            for o in state.orders.values()
        ]

    if state.validator.revealed or state.validator.last_validated:
        result["validator"] = {
            "revealed": sorted(_bytes_to_hex(k) for k in state.validator.revealed),
            "last_validated": [
                {
                    "key": _bytes_to_hex(k),
                    "index": r.index,
                    "secret_hash": _bytes_to_hex(r.secret_hash),
                }
                for k, r in state.validator.last_validated.items()
            ],
        }

    if state.capabilities:
        result["capabilities"] = [
            {
                "id": _bytes_to_hex(c.id),
                "kind": c.kind.name,
                "holder": address_to_json(c.holder),
                "target": _bytes_to_hex(c.target),
                "balance": c.balance,
            }
            for c in state.capabilities.values()
        ]

    return result


def state_from_json(data: dict[str, Any]) -> SwapState:
    gs = data.get("global_state", {})
    fc = data.get("factory", {})
    state = SwapState(
        global_state=GlobalState(
            timestamp=gs.get("timestamp", 0),
            block_height=gs.get("block_height", 0),
        ),
        factory=FactoryConfig(**fc) if fc else FactoryConfig(),
    )

    for a in data.get("accounts", []):
        addr = address_from_json(a["address"])
        state.accounts[addr] = AccountState(
            address=addr,
            balances={address_from_json(b["token"]): b["amount"] for b in a.get("balances", [])},
        )

    for e in data.get("escrows", []):
        escrow = EscrowRecord(
            id=_hex_to_bytes(e["id"]),
            leg=EscrowLeg[e["leg"]],
            immutables=immutables_from_json(e["immutables"]),
            token_balance=Balance(e["token_balance"]),
            safety_deposit=Balance(e["safety_deposit"]),
            rescue_delay=e["rescue_delay"],
            owner_capability=_hex_to_bytes(e["owner_capability"]),
            withdrawn=e.get("withdrawn", False),
            cancelled=e.get("cancelled", False),
        )
        state.escrows[escrow.id] = escrow
        order_hash = escrow.immutables.order_hash
        state.escrows_by_order.setdefault(order_hash, []).append(escrow.id)
        state.order_by_escrow[escrow.id] = order_hash

    for o in data.get("orders", []):
        order = PartialFillOrder(
            order_hash=_hex_to_bytes(o["order_hash"]),
            maker=address_from_json(o["maker"]),
            token=address_from_json(o["token"]),
            total_amount=o["total_amount"],
            remaining=Balance(o["remaining"]),
            parts=o["parts"],
            merkle_root=_hex_to_bytes(o["merkle_root"]),
            created_at=o.get("created_at", 0),
            used_indices=set(o.get("used_indices", [])),
            fill_count=o.get("fill_count", 0),
            completed=o.get("completed", False),
        )
        for f in o.get("fills", []):
            order.fills[f["index"]] = FillRecord(
                index=f["index"],
                amount=f["amount"],
                timestamp=f["timestamp"],
                filler=address_from_json(f["filler"]),
                cumulative=f["cumulative"],
                escrow_id=_hex_to_bytes(f.get("escrow_id", "")),
            )
        state.orders[order.order_hash] = order

    v = data.get("validator")
    if v:
        state.validator = MerkleValidatorState(
            revealed={_hex_to_bytes(k) for k in v.get("revealed", [])},
            last_validated={
                _hex_to_bytes(r["key"]): ValidationRecord(index=r["index"], secret_hash=_hex_to_bytes(r["secret_hash"]))
                for r in v.get("last_validated", [])
            },
        )

    for c in data.get("capabilities", []):
        cap = Capability(
            id=_hex_to_bytes(c["id"]),
            kind=CapabilityKind[c["kind"]],
            holder=address_from_json(c["holder"]),
            target=_hex_to_bytes(c.get("target", "")),
            balance=c.get("balance", 1),
        )
        state.capabilities[cap.id] = cap

    return state


def _payload_value_to_json(key: str, value: Any) -> Any:
    if isinstance(value, ChainAddress):
        return address_to_json(value)
    if isinstance(value, Immutables):
        return immutables_to_json(value)
    if isinstance(value, bytes):
        return _bytes_to_hex(value)
    if key == "proof":
        return [_bytes_to_hex(bytes(n)) for n in value]
    return value


def _payload_value_from_json(key: str, value: Any) -> Any:
    if key in _ADDRESS_KEYS and isinstance(value, dict):
        return address_from_json(value)
    if key == "immutables" and isinstance(value, dict):
        return immutables_from_json(value)
    if key in _BYTES_KEYS and isinstance(value, str):
        return _hex_to_bytes(value)
    if key == "proof" and isinstance(value, list):
        return [_hex_to_bytes(n) for n in value]
    return value


def call_to_json(call: Call) -> dict[str, Any]:
    return {
        "caller": address_to_json(call.caller),
        "call_type": call.call_type.value,
        "payload": {k: _payload_value_to_json(k, v) for k, v in call.payload.items()},
        "capability": _bytes_to_hex(call.capability) if call.capability else None,
    }


def call_from_json(data: dict[str, Any]) -> Call:
    cap = data.get("capability")
    return Call(
        caller=address_from_json(data["caller"]),
        call_type=CallType(data["call_type"]),
        payload={k: _payload_value_from_json(k, v) for k, v in data.get("payload", {}).items()},
        capability=_hex_to_bytes(cap) if cap else None,
    )
