#!/usr/bin/env python3
"""Generate Merkle secret and partial-fill YAML vectors from the Python specs.

Secrets are derived deterministically from the order hash so the vectors are
stable across runs.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from fusion_spec import merkle  # noqa: E402
from fusion_spec.crypto.hash_algorithms import keccak256  # noqa: E402
from fusion_spec.crypto.hashlock import secret_hash  # noqa: E402
from fusion_spec.order_split import MerkleLeaf, create_merkle_tree, fill_index_for  # noqa: E402
from fusion_spec.tx.partial_fill import is_valid_partial_fill  # noqa: E402
from yaml_dump import write_yaml  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


def _secret(order_hash: bytes, index: int) -> bytes:
    return keccak256(order_hash + index.to_bytes(4, "big"))


def merkle_vectors(order_hash: bytes, parts: int) -> dict:
    leaves = [
        MerkleLeaf(index=i, secret_hash=secret_hash(_secret(order_hash, i)))
        for i in range(1, parts + 2)
    ]
    root, proofs = create_merkle_tree(leaves)
    vectors = []
    for leaf in leaves:
        proof = proofs[leaf.index].proof
        vectors.append({
            "index": leaf.index,
            "secret": _secret(order_hash, leaf.index).hex(),
            "secret_hash": leaf.secret_hash.hex(),
            "leaf": merkle.leaf_hash(leaf.index, leaf.secret_hash).hex(),
            "proof": [node.hex() for node in proof],
            "valid": merkle.verify_proof(root, leaf.index, leaf.secret_hash, proof),
        })
    return {
        "order_hash": order_hash.hex(),
        "parts": parts,
        "merkle_root": root.hex(),
        "test_vectors": vectors,
    }


def fill_vectors(total: int, parts: int, fills: list[int]) -> dict:
    vectors = []
    remaining = total
    for making in fills:
        index = fill_index_for(total, remaining, making, parts)
        vectors.append({
            "total": total,
            "remaining": remaining,
            "making": making,
            "parts": parts,
            "index": index,
            "valid": index is not None and is_valid_partial_fill(making, remaining, total, parts, index),
        })
        remaining -= making
    return {"test_vectors": vectors}


@click.command()
@click.option(
    "--output", "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=ROOT / "fixtures" / "merkle",
    help="Output directory for YAML vectors",
)
@click.option("--parts", "-p", type=int, default=3, help="Number of parts to split the order into")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(output: Path, parts: int, verbose: bool) -> None:
    """Write Merkle proof and fill-index vectors as YAML."""
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    output.mkdir(parents=True, exist_ok=True)
    order_hash = bytes([0x11]) * 32

    data = merkle_vectors(order_hash, parts)
    logger.debug("merkle root %s over %d leaves", data["merkle_root"], parts + 1)
    write_yaml(output / "merkle_proofs.yaml", data)

    write_yaml(output / "partial_fills.yaml", fill_vectors(100, 3, [34, 33, 33]))
    logger.info("Wrote vectors to %s", output)


if __name__ == "__main__":
    main()
