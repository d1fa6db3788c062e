"""Merkle tree for distribution-round membership proofs.

Uses keccak-256 with sorted-pair hashing: a parent is the hash of its
two children ordered bytewise, so a proof is just the list of sibling
hashes and carries no left/right flags.

The layout is the one OpenZeppelin's StandardMerkleTree uses, so roots
match artifacts produced by @openzeppelin/merkle-tree. Leaf hashes are
sorted ascending and stored at the end of a flat array of 2n - 1 nodes,
the smallest last. Node i is the parent of nodes 2i + 1 and 2i + 2 and
node 0 is the root. Nothing is duplicated: when the leaf count is not a
power of two, some leaves sit one level nearer the root than others.
"""

from __future__ import annotations

from dataclasses import dataclass

from web3 import Web3


EMPTY_ROOT = "0x" + "0" * 64


@dataclass(frozen=True)
class MerkleProof:
    """An inclusion proof for a single leaf."""
    leaf_hash: str
    path: tuple[str, ...]
    root: str


class MerkleTree:
    """A deterministic sorted-pair Merkle tree.

    Usage:
        tree = MerkleTree()
        tree.add_leaf(HolderLeaf(...).leaf_hash())
        root = tree.compute_root()
        proof = tree.inclusion_proof(leaf_hash)
        assert verify_proof(root, leaf_hash, proof.path)
    """

    def __init__(self) -> None:
        self._leaves: list[str] = []
        self._tree: list[str] = []
        self._computed = False

    def add_leaf(self, leaf_hash: str) -> None:
        """Add a leaf hash. Must be called before compute_root."""
        if self._computed:
            raise RuntimeError("Tree already computed. Create a new tree.")
        self._leaves.append(_clean(leaf_hash))

    @property
    def leaf_count(self) -> int:
        return len(self._leaves)

    def compute_root(self) -> str:
        """Compute the Merkle root. An empty tree has the all-zero root."""
        if not self._leaves:
            self._computed = True
            return EMPTY_ROOT

        leaves = sorted(self._leaves)
        size = 2 * len(leaves) - 1
        tree = [""] * size
        for i, leaf in enumerate(leaves):
            tree[size - 1 - i] = leaf
        for i in range(size - 1 - len(leaves), -1, -1):
            tree[i] = hash_pair(tree[2 * i + 1], tree[2 * i + 2])

        self._tree = tree
        self._computed = True
        return tree[0]

    def inclusion_proof(self, leaf_hash: str) -> MerkleProof | None:
        """Generate an inclusion proof, or None if the leaf is absent."""
        if not self._computed:
            raise RuntimeError("Must call compute_root before generating proofs")
        if not self._tree:
            return None

        leaf_hash = _clean(leaf_hash)
        first_leaf = len(self._tree) - len(self._leaves)
        try:
            index = self._tree.index(leaf_hash, first_leaf)
        except ValueError:
            return None

        path: list[str] = []
        while index > 0:
            sibling = index + 1 if index % 2 == 1 else index - 1
            path.append(self._tree[sibling])
            index = (index - 1) // 2

        return MerkleProof(leaf_hash=leaf_hash, path=tuple(path), root=self._tree[0])


def hash_pair(a: str, b: str) -> str:
    left, right = sorted((bytes.fromhex(a[2:]), bytes.fromhex(b[2:])))
    return "0x" + Web3.keccak(left + right).hex().removeprefix("0x")


def verify_proof(root: str, leaf_hash: str, path: list[str] | tuple[str, ...]) -> bool:
    """Fold the proof path over the leaf and compare with the root."""
    node = _clean(leaf_hash)
    for sibling in path:
        node = hash_pair(node, _clean(sibling))
    return node == _clean(root)


def _clean(value: str) -> str:
    """Lower-case, 0x-prefixed 32-byte hex."""
    value = value.lower()
    if not value.startswith("0x"):
        value = "0x" + value
    if len(value) != 66:
        raise ValueError(f"Expected a 32-byte hex hash, got {value!r}")
    return value
