"""Immutables construction, validation and canonical encoding."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .config import ADDRESS_SIZES, HASHLOCK_SIZE, MAX_U64, ORDER_HASH_SIZE
from .crypto.hash_algorithms import keccak256
from .errors import ErrorCode, SpecError
from . import timelocks as tl
from .types import ChainAddress, Immutables, Timelocks


@dataclass
class Writer:
    buf: bytearray

    def write_u8(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(1, "big", signed=False))

    def write_u32(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(4, "big", signed=False))

    def write_u64(self, v: int) -> None:
        self.buf.extend(int(v).to_bytes(8, "big", signed=False))

    def write_bytes(self, b: bytes) -> None:
        self.buf.extend(b)


def _malformed(message: str) -> SpecError:
    return SpecError(ErrorCode.MALFORMED_IMMUTABLES, message)


def _validate_address(name: str, addr: ChainAddress) -> None:
    expected = ADDRESS_SIZES.get(addr.chain_id)
    if expected is None:
        raise _malformed(f"{name}: unknown chain id {addr.chain_id}")
    if len(addr.raw) != expected:
        raise _malformed(f"{name}: address must be {expected} bytes")


def validate(imm: Immutables) -> None:
    if len(imm.order_hash) != ORDER_HASH_SIZE:
        raise _malformed(f"order_hash must be {ORDER_HASH_SIZE} bytes")
    if len(imm.hashlock) != HASHLOCK_SIZE:
        raise _malformed(f"hashlock must be {HASHLOCK_SIZE} bytes")
    _validate_address("maker", imm.maker)
    _validate_address("taker", imm.taker)
    _validate_address("token", imm.token)
    if imm.amount <= 0 or imm.amount > MAX_U64:
        raise _malformed("amount must be > 0")
    if imm.safety_deposit < 0 or imm.safety_deposit > MAX_U64:
        raise _malformed("safety_deposit must be >= 0")
    for value in tl.offsets(imm.timelocks):
        if value < 0 or value > MAX_U64:
            raise _malformed("timelock offsets must fit in u64")


def new_immutables(
    order_hash: bytes,
    hashlock: bytes,
    maker: ChainAddress,
    taker: ChainAddress,
    token: ChainAddress,
    amount: int,
    safety_deposit: int,
    timelocks: Timelocks,
) -> Immutables:
    imm = Immutables(
        order_hash=bytes(order_hash),
        hashlock=bytes(hashlock),
        maker=maker,
        taker=taker,
        token=token,
        amount=amount,
        safety_deposit=safety_deposit,
        timelocks=timelocks,
    )
    validate(imm)
    return imm


def with_deployed_at(imm: Immutables, timestamp: int) -> Immutables:
    return replace(imm, timelocks=tl.with_deployed_at(imm.timelocks, timestamp))


def _write_address(w: Writer, addr: ChainAddress) -> None:
    w.write_u32(addr.chain_id)
    w.write_u8(len(addr.raw))
    w.write_bytes(addr.raw)


def encode_immutables(imm: Immutables) -> bytes:
    w = Writer(bytearray())
    w.write_bytes(imm.order_hash)
    w.write_bytes(imm.hashlock)
    _write_address(w, imm.maker)
    _write_address(w, imm.taker)
    _write_address(w, imm.token)
    w.write_u64(imm.amount)
    w.write_u64(imm.safety_deposit)
    for value in tl.offsets(imm.timelocks):
        w.write_u64(value)
    w.write_u64(imm.timelocks.deployed_at or 0)
    return bytes(w.buf)


def immutables_hash(imm: Immutables) -> bytes:
    """Canonical hash binding an escrow to its originating order."""
    return keccak256(encode_immutables(imm))
