"""Core types for the fusion swap specs.

The core tracks one host ledger: escrow records for both swap legs, the
partial-fill orders that feed source escrows, and the Merkle validator tables
shared by every order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Optional

from .balance import Balance
from .config import CHAIN_ID_HOST, FactoryConfig


class CallType(Enum):
    CREATE_SRC_ESCROW = "create_src_escrow"
    CREATE_DST_ESCROW = "create_dst_escrow"
    TRANSFER_CAPABILITY = "transfer_capability"
    WITHDRAW = "withdraw"
    WITHDRAW_TO = "withdraw_to"
    PUBLIC_WITHDRAW = "public_withdraw"
    CANCEL = "cancel"
    PUBLIC_CANCEL = "public_cancel"
    RESCUE_FUNDS = "rescue_funds"
    CREATE_PARTIAL_ORDER = "create_partial_order"
    EXECUTE_PARTIAL_FILL = "execute_partial_fill"


class EscrowLeg(IntEnum):
    SOURCE = 0x00
    DESTINATION = 0x01


class EscrowStatus(Enum):
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"
    CANCELLED = "cancelled"


class Stage(IntEnum):
    SRC_WITHDRAWAL = 0
    SRC_PUBLIC_WITHDRAWAL = 1
    SRC_CANCELLATION = 2
    SRC_PUBLIC_CANCELLATION = 3
    DST_WITHDRAWAL = 4
    DST_PUBLIC_WITHDRAWAL = 5
    DST_CANCELLATION = 6
    DST_PUBLIC_CANCELLATION = 7


class CapabilityKind(IntEnum):
    ACCESS = 0x01
    ESCROW_OWNER = 0x02


@dataclass(frozen=True)
class ChainAddress:
    """Address tagged with the chain it originates from."""
    chain_id: int
    raw: bytes

    def hex(self) -> str:
        return f"{self.chain_id}:{self.raw.hex()}"


NATIVE_ASSET = ChainAddress(CHAIN_ID_HOST, bytes(32))


@dataclass(frozen=True)
class Timelocks:
    src_withdrawal: int
    src_public_withdrawal: int
    src_cancellation: int
    src_public_cancellation: int
    dst_withdrawal: int
    dst_public_withdrawal: int
    dst_cancellation: int
    dst_public_cancellation: int
    deployed_at: Optional[int] = None


@dataclass(frozen=True)
class Immutables:
    order_hash: bytes
    hashlock: bytes
    maker: ChainAddress
    taker: ChainAddress
    token: ChainAddress
    amount: int
    safety_deposit: int
    timelocks: Timelocks


@dataclass
class AccountState:
    address: ChainAddress
    balances: dict[ChainAddress, int] = field(default_factory=dict)

    def balance_of(self, token: ChainAddress) -> int:
        return self.balances.get(token, 0)


@dataclass
class GlobalState:
    timestamp: int = 0
    block_height: int = 0


# --- Capabilities ---


@dataclass
class Capability:
    id: bytes
    kind: CapabilityKind
    holder: ChainAddress
    target: bytes = b""
    balance: int = 1


# --- Escrow ---


@dataclass
class EscrowRecord:
    id: bytes
    leg: EscrowLeg
    immutables: Immutables
    token_balance: Balance
    safety_deposit: Balance
    rescue_delay: int
    owner_capability: bytes
    withdrawn: bool = False
    cancelled: bool = False

    @property
    def status(self) -> EscrowStatus:
        if self.withdrawn:
            return EscrowStatus.WITHDRAWN
        if self.cancelled:
            return EscrowStatus.CANCELLED
        return EscrowStatus.ACTIVE


# --- Partial fills ---


@dataclass
class FillRecord:
    index: int
    amount: int
    timestamp: int
    filler: ChainAddress
    cumulative: int
    escrow_id: bytes = b""


@dataclass
class PartialFillOrder:
    order_hash: bytes
    maker: ChainAddress
    token: ChainAddress
    total_amount: int
    remaining: Balance
    parts: int
    merkle_root: bytes
    created_at: int = 0
    fills: dict[int, FillRecord] = field(default_factory=dict)
    used_indices: set[int] = field(default_factory=set)
    fill_count: int = 0
    completed: bool = False

    @property
    def filled_amount(self) -> int:
        return self.total_amount - self.remaining.value


@dataclass
class ValidationRecord:
    index: int
    secret_hash: bytes


@dataclass
class MerkleValidatorState:
    # replay key (order_hash, index) -> revealed
    revealed: set[bytes] = field(default_factory=set)
    # validation key (order_hash, root) -> last accepted (index, secret_hash)
    last_validated: dict[bytes, ValidationRecord] = field(default_factory=dict)


# --- Calls ---


@dataclass
class Call:
    caller: ChainAddress
    call_type: CallType
    payload: dict = field(default_factory=dict)
    capability: Optional[bytes] = None


# --- SwapState ---


@dataclass
class SwapState:
    accounts: dict[ChainAddress, AccountState] = field(default_factory=dict)
    global_state: GlobalState = field(default_factory=GlobalState)
    factory: FactoryConfig = field(default_factory=FactoryConfig)
    escrows: dict[bytes, EscrowRecord] = field(default_factory=dict)
    orders: dict[bytes, PartialFillOrder] = field(default_factory=dict)
    validator: MerkleValidatorState = field(default_factory=MerkleValidatorState)
    capabilities: dict[bytes, Capability] = field(default_factory=dict)
    escrows_by_order: dict[bytes, list[bytes]] = field(default_factory=dict)
    order_by_escrow: dict[bytes, bytes] = field(default_factory=dict)

    @property
    def now(self) -> int:
        return self.global_state.timestamp
