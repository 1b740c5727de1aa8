"""Hash algorithm assignments for the swap core."""

from __future__ import annotations

from dataclasses import dataclass

from blake3 import blake3
from Cryptodome.Hash import keccak

from ..config import HASH_SIZE


@dataclass(frozen=True)
class HashAssignment:
    purpose: str
    algorithm: str
    output_size: int
    input_spec: str


ASSIGNMENTS = [
    HashAssignment("hashlock", "KECCAK-256", HASH_SIZE, "secret bytes"),
    HashAssignment("merkle_leaf", "KECCAK-256", HASH_SIZE, "be32(index) || secret_hash"),
    HashAssignment("merkle_node", "KECCAK-256", HASH_SIZE, "left || right"),
    HashAssignment("validation_key", "KECCAK-256", HASH_SIZE, "order_hash || truncated_root"),
    HashAssignment("immutables_hash", "KECCAK-256", HASH_SIZE, "canonical immutables encoding"),
    HashAssignment("escrow_id", "BLAKE3", HASH_SIZE, "leg_tag || immutables_hash"),
    HashAssignment("replay_key", "BLAKE3", HASH_SIZE, "order_hash || be32(index)"),
    HashAssignment("capability_id", "BLAKE3", HASH_SIZE, "kind_tag || target || holder"),
]


def keccak256(data: bytes) -> bytes:
    h = keccak.new(digest_bits=256)
    h.update(data)
    return h.digest()


def blake3_hash(data: bytes) -> bytes:
    return blake3(data).digest()
