"""Cryptographic primitives — leaf encodings, Merkle trees, proof artifacts."""

from waterfall.crypto.leaves import HolderLeaf, OffLedgerLeaf
from waterfall.crypto.merkle import MerkleProof, MerkleTree, verify_proof
from waterfall.crypto.proof_builder import ProofBuilder

__all__ = [
    "HolderLeaf",
    "MerkleProof",
    "MerkleTree",
    "OffLedgerLeaf",
    "ProofBuilder",
    "verify_proof",
]
