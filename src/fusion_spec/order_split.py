"""Off-chain order splitting: secrets, Merkle tree and per-fill parameters.

Resolvers use this to turn one order into `parts + 1` secrets committed under a
single truncated Merkle root. The extra secret (index `parts + 1`) is reserved
for the fill that completes the order.
"""

from __future__ import annotations

import secrets as _secrets
from dataclasses import dataclass, field
from typing import Optional, Sequence

from .config import HASH_SIZE, MIN_PARTS
from .crypto.hashlock import secret_hash
from .errors import ErrorCode, SpecError
from . import merkle


@dataclass(frozen=True)
class MerkleLeaf:
    index: int
    secret_hash: bytes


@dataclass(frozen=True)
class MerkleProof:
    leaf: MerkleLeaf
    proof: list[bytes]


@dataclass
class OrderSplit:
    order_hash: bytes
    total_amount: int
    parts: int
    merkle_root: bytes
    leaves: list[MerkleLeaf] = field(default_factory=list)
    # index -> raw secret; only the resolver holding the split knows these
    secrets: dict[int, bytes] = field(default_factory=dict)
    proofs: dict[int, MerkleProof] = field(default_factory=dict)


@dataclass(frozen=True)
class PartialFillParams:
    making: int
    index: int
    secret_hash: bytes
    proof: list[bytes]


def generate_secret() -> bytes:
    return _secrets.token_bytes(HASH_SIZE)


def build_merkle_tree(leaves: Sequence[bytes]) -> list[list[bytes]]:
    """Build every level of the tree, leaves first, root level last.

    Any level with an odd number of nodes (other than the root) gets its last
    node duplicated before pairing.
    """
    if not leaves:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "at least one leaf is required")

    level = list(leaves)
    if len(level) % 2 == 1:
        level.append(level[-1])
    tree = [level]
    while len(level) > 1:
        level = [merkle.node_hash(level[i], level[i + 1]) for i in range(0, len(level), 2)]
        if len(level) % 2 == 1 and len(level) > 1:
            level.append(level[-1])
        tree.append(level)
    return tree


def merkle_proof(tree: list[list[bytes]], position: int) -> list[bytes]:
    proof = []
    for level in tree[:-1]:
        sibling = position + 1 if position % 2 == 0 else position - 1
        if sibling < len(level):
            proof.append(level[sibling])
        position //= 2
    return proof


def create_merkle_tree(entries: Sequence[MerkleLeaf]) -> tuple[bytes, dict[int, MerkleProof]]:
    """Return `(truncated_root, proofs_by_index)` for a set of secret hashes."""
    if not entries:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "at least one secret is required")

    ordered = sorted(entries, key=lambda e: e.index)
    tree = build_merkle_tree([merkle.leaf_hash(e.index, e.secret_hash) for e in ordered])
    proofs = {e.index: MerkleProof(leaf=e, proof=merkle_proof(tree, pos)) for pos, e in enumerate(ordered)}
    return merkle.truncate_root(tree[-1][0]), proofs


def split_order(order_hash: bytes, total_amount: int, parts: int) -> OrderSplit:
    if parts < MIN_PARTS:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"order must be split into at least {MIN_PARTS} parts")
    if total_amount <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "total_amount must be > 0")

    raw = {i: generate_secret() for i in range(1, parts + 2)}
    leaves = [MerkleLeaf(index=i, secret_hash=secret_hash(s)) for i, s in raw.items()]
    root, proofs = create_merkle_tree(leaves)
    return OrderSplit(
        order_hash=bytes(order_hash),
        total_amount=total_amount,
        parts=parts,
        merkle_root=root,
        leaves=leaves,
        secrets=raw,
        proofs=proofs,
    )


def partial_fill_params(split: OrderSplit, index: int, making: int) -> PartialFillParams:
    proof = split.proofs.get(index)
    if proof is None:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"no proof for secret index {index}")
    return PartialFillParams(
        making=making,
        index=index,
        secret_hash=proof.leaf.secret_hash,
        proof=list(proof.proof),
    )


def fill_index_for(total: int, remaining: int, making: int, parts: int) -> Optional[int]:
    """Secret index a fill of `making` must reveal, or None if no index works."""
    if total <= 0 or making <= 0 or making > remaining:
        return None
    calc = (total - remaining + making - 1) * parts // total
    if remaining == making:
        return calc + 2
    if total != remaining and calc == (total - remaining - 1) * parts // total:
        return None
    return calc + 1
