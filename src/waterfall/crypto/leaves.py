"""Membership-proof leaf encodings.

Leaves are the double keccak-256 of the ABI encoding of their fields,
the same construction standard Solidity verifiers use:

    on-ledger:  keccak(keccak(abi.encode(address holder, uint8 tranche,
                                          uint256 balance, uint256 snapshotRef)))
    off-ledger: keccak(keccak(abi.encode(address claimant, uint8 tranche,
                                          uint256 amount, bytes32 legalHash,
                                          uint256 snapshotRef)))

Hashing twice keeps a 64-byte internal node from ever being accepted as
a leaf.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from eth_abi import encode
from web3 import Web3

from waterfall.errors import ValidationError


HOLDER_LEAF_TYPES = ["address", "uint8", "uint256", "uint256"]
OFF_LEDGER_LEAF_TYPES = ["address", "uint8", "uint256", "bytes32", "uint256"]


def _double_keccak(encoded: bytes) -> str:
    return "0x" + Web3.keccak(Web3.keccak(encoded)).hex().removeprefix("0x")


def legal_hash_bytes(legal_hash: str) -> bytes:
    raw = Web3.to_bytes(hexstr=legal_hash)
    if len(raw) != 32:
        raise ValidationError(f"Legal hash must be 32 bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class HolderLeaf:
    """A claim-record holder's balance at the snapshot block."""
    holder: str
    tranche_index: int
    balance: int
    snapshot_ref: int

    def leaf_hash(self) -> str:
        return _double_keccak(encode(
            HOLDER_LEAF_TYPES,
            [
                Web3.to_checksum_address(self.holder),
                self.tranche_index,
                self.balance,
                self.snapshot_ref,
            ],
        ))


@dataclass(frozen=True)
class OffLedgerLeaf:
    """A configured off-ledger claim bound to a snapshot block."""
    claimant: str
    tranche_index: int
    amount: int
    legal_hash: str
    snapshot_ref: int

    def leaf_hash(self) -> str:
        return _double_keccak(encode(
            OFF_LEDGER_LEAF_TYPES,
            [
                Web3.to_checksum_address(self.claimant),
                self.tranche_index,
                self.amount,
                legal_hash_bytes(self.legal_hash),
                self.snapshot_ref,
            ],
        ))


Leaf = Union[HolderLeaf, OffLedgerLeaf]
