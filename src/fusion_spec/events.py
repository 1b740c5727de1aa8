"""Events exposed to external observers.

The state transition layer hands events to a sink only after a call has been
fully applied; sinks never influence the outcome of a call.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Protocol, Union

from .types import ChainAddress, EscrowLeg


@dataclass(frozen=True)
class DepositReceived:
    escrow_id: bytes
    leg: EscrowLeg
    token: ChainAddress
    amount: int
    safety_deposit: int


@dataclass(frozen=True)
class WithdrawalCompleted:
    escrow_id: bytes
    secret: bytes


@dataclass(frozen=True)
class CancellationCompleted:
    escrow_id: bytes


@dataclass(frozen=True)
class FundsRescued:
    escrow_id: bytes
    token: ChainAddress
    amount: int


@dataclass(frozen=True)
class PartialOrderCreated:
    order_hash: bytes
    total_amount: int
    parts: int


@dataclass(frozen=True)
class PartialFillCompleted:
    order_hash: bytes
    index: int
    amount: int
    remaining: int
    cumulative: int


@dataclass(frozen=True)
class OrderFullyCompleted:
    order_hash: bytes
    total_fills: int


@dataclass(frozen=True)
class CapabilityTransferred:
    capability_id: bytes
    new_holder: ChainAddress


Event = Union[
    DepositReceived,
    WithdrawalCompleted,
    CancellationCompleted,
    FundsRescued,
    PartialOrderCreated,
    PartialFillCompleted,
    OrderFullyCompleted,
    CapabilityTransferred,
]


class EventSink(Protocol):
    def emit(self, event: Event) -> None: ...


@dataclass
class EventLog:
    """Append-only in-memory sink."""
    events: list[Event] = field(default_factory=list)

    def emit(self, event: Event) -> None:
        self.events.append(event)

    def of_type(self, kind: type) -> list[Event]:
        return [e for e in self.events if isinstance(e, kind)]


def _jsonable(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, EscrowLeg):
        return value.name
    if isinstance(value, dict) and set(value) == {"chain_id", "raw"}:
        return {"chain_id": value["chain_id"], "raw": value["raw"].hex()}
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


def event_to_json(event: Event) -> dict[str, Any]:
    data = {k: _jsonable(v) for k, v in asdict(event).items()}
    data["event"] = type(event).__name__
    return data
