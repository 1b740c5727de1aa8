"""Fusion swap spec configuration constants.

Sizes and hash widths here must match the on-chain escrow contracts and the
off-chain secret tooling byte-for-byte.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

# Sizes
HASH_SIZE = 32
ORDER_HASH_SIZE = 32
HASHLOCK_SIZE = 32
MERKLE_ROOT_SIZE = 30  # truncated root (240-bit commitment)
LEAF_INDEX_SIZE = 32  # index encoded as uint256 big-endian
MAX_PROOF_LENGTH = 64

# Partial fills
MIN_PARTS = 2

# Chains
CHAIN_ID_HOST = 0
CHAIN_ID_ETHEREUM = 1
ADDRESS_SIZES = {
    CHAIN_ID_HOST: 32,
    CHAIN_ID_ETHEREUM: 20,
}

# Rescue
DEFAULT_RESCUE_DELAY = 7 * 24 * 3600

# Encoding limits
MAX_U64 = 2**64 - 1


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return int(raw)


@dataclass
class FactoryConfig:
    """Parameters the escrow factory stamps into every escrow it creates."""
    src_rescue_delay: int = DEFAULT_RESCUE_DELAY
    dst_rescue_delay: int = DEFAULT_RESCUE_DELAY

    @classmethod
    def from_env(cls) -> "FactoryConfig":
        """Load rescue delays from environment variables."""
        return cls(
            src_rescue_delay=_env_int("FUSION_SRC_RESCUE_DELAY", DEFAULT_RESCUE_DELAY),
            dst_rescue_delay=_env_int("FUSION_DST_RESCUE_DELAY", DEFAULT_RESCUE_DELAY),
        )
