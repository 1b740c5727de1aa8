"""Merkle secret validator for partial fills.

Leaf value for secret index `i`:

    leaf = keccak256(be32(i) || secret_hash)

The leaf for index `i` sits at tree position `i - 1` (secret indices start
at 1). Parents are `keccak256(left || right)` and the stored commitment is the
first 30 bytes of the root.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .config import HASH_SIZE, LEAF_INDEX_SIZE, MAX_PROOF_LENGTH, MERKLE_ROOT_SIZE
from .crypto.hash_algorithms import blake3_hash, keccak256
from .errors import ErrorCode, SpecError
from .types import MerkleValidatorState, ValidationRecord


def encode_leaf(index: int, secret_hash: bytes) -> bytes:
    return index.to_bytes(LEAF_INDEX_SIZE, "big") + secret_hash


def leaf_hash(index: int, secret_hash: bytes) -> bytes:
    return keccak256(encode_leaf(index, secret_hash))


def node_hash(left: bytes, right: bytes) -> bytes:
    return keccak256(left + right)


def truncate_root(root: bytes) -> bytes:
    return root[:MERKLE_ROOT_SIZE]


def leaf_position(index: int) -> int:
    return index - 1


def process_proof(index: int, secret_hash: bytes, proof: Sequence[bytes]) -> bytes:
    """Walk `proof` from the leaf upward and return the full 32-byte root."""
    current = leaf_hash(index, secret_hash)
    position = leaf_position(index)
    for sibling in proof:
        if position % 2 == 0:
            current = node_hash(current, sibling)
        else:
            current = node_hash(sibling, current)
        position //= 2
    return current


def check_index(index: int) -> None:
    if index < 1 or index >= 2 ** (8 * LEAF_INDEX_SIZE):
        raise SpecError(ErrorCode.INVALID_PROOF, "secret index out of range")


def replay_key(order_hash: bytes, index: int) -> bytes:
    check_index(index)
    return blake3_hash(order_hash + index.to_bytes(LEAF_INDEX_SIZE, "big"))


def validation_key(order_hash: bytes, root: bytes) -> bytes:
    return keccak256(order_hash + truncate_root(root))


def is_revealed(state: MerkleValidatorState, order_hash: bytes, index: int) -> bool:
    return replay_key(order_hash, index) in state.revealed


def last_validated(state: MerkleValidatorState, order_hash: bytes, root: bytes) -> Optional[ValidationRecord]:
    return state.last_validated.get(validation_key(order_hash, root))


def _check_inputs(stored_root: bytes, index: int, secret_hash: bytes, proof: Sequence[bytes]) -> None:
    if len(stored_root) != MERKLE_ROOT_SIZE:
        raise SpecError(ErrorCode.INVALID_PROOF, f"stored root must be {MERKLE_ROOT_SIZE} bytes")
    check_index(index)
    if len(secret_hash) != HASH_SIZE:
        raise SpecError(ErrorCode.INVALID_PROOF, f"secret hash must be {HASH_SIZE} bytes")
    if len(proof) > MAX_PROOF_LENGTH:
        raise SpecError(ErrorCode.INVALID_PROOF, "proof too long")
    for node in proof:
        if len(node) != HASH_SIZE:
            raise SpecError(ErrorCode.INVALID_PROOF, f"proof nodes must be {HASH_SIZE} bytes")


def verify_proof(stored_root: bytes, index: int, secret_hash: bytes, proof: Sequence[bytes]) -> bool:
    """Pure check: does the proof reproduce the truncated root?"""
    _check_inputs(stored_root, index, secret_hash, proof)
    return truncate_root(process_proof(index, secret_hash, proof)) == stored_root


def validate(
    state: MerkleValidatorState,
    order_hash: bytes,
    stored_root: bytes,
    index: int,
    secret_hash: bytes,
    proof: Sequence[bytes],
) -> ValidationRecord:
    """Accept `(index, secret_hash, proof)` for an order and record it.

    The replay check and the insert happen in the same call, so a second
    validation of the same `(order_hash, index)` always fails.
    """
    key = replay_key(order_hash, index)
    if key in state.revealed:
        raise SpecError(ErrorCode.REPLAYED_INDEX, f"secret index {index} already revealed")

    if not verify_proof(stored_root, index, secret_hash, proof):
        raise SpecError(ErrorCode.INVALID_PROOF, "merkle proof does not match root")

    record = ValidationRecord(index=index, secret_hash=bytes(secret_hash))
    state.revealed.add(key)
    state.last_validated[validation_key(order_hash, stored_root)] = record
    return record
