"""Proof builder — assembles the membership-proof artifact for a round.

Given a vault and a snapshot block, the builder enumerates every
claim-record holder of every tranche as of that block, adds every
configured off-ledger claim, builds the Merkle tree and emits a JSON
artifact:

    {
      "merkleRoot": "0x…",
      "snapshotBlock": 1234,
      "timestamp": "2026-01-01T00:00:00Z",
      "vaultAddress": "0x…",
      "totalLeaves": 5,
      "tranches": [{"index", "name", "claimRecord", "totalSupply", "holderCount"}],
      "leaves": [{"user", "trancheIndex", "balance", "type", "legalHash"?}],
      "proofs": {"0xuser": [{"trancheIndex", "balance", "type", "legalHash"?, "proof"}]}
    }

The builder is deterministic: the same ledger history and snapshot block
always produce the same root.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from waterfall.crypto.leaves import HolderLeaf, Leaf, OffLedgerLeaf
from waterfall.crypto.merkle import MerkleTree, verify_proof
from waterfall.errors import ValidationError


class ProofBuilder:
    """Builds a proof artifact from a vault's ledger history.

    Usage:
        artifact = ProofBuilder(vault).build(snapshot_block=1234)
        ProofBuilder.write(artifact, Path("round-1.json"))
        vault.initiate(initiator, artifact["merkleRoot"], artifact["snapshotBlock"], bond)
    """

    def __init__(self, vault: Any) -> None:
        self._vault = vault

    def collect_leaves(self, snapshot_block: int) -> list[Leaf]:
        leaves: list[Leaf] = []
        for tranche in self._vault.tranches:
            holders = tranche.claim_record.holders_at_block(snapshot_block)
            for holder in sorted(holders):
                leaves.append(HolderLeaf(
                    holder=holder,
                    tranche_index=tranche.index,
                    balance=holders[holder],
                    snapshot_ref=snapshot_block,
                ))
        for claim in self._vault.off_ledger_claims:
            leaves.append(OffLedgerLeaf(
                claimant=claim.claimant,
                tranche_index=claim.tranche_index,
                amount=claim.amount,
                legal_hash=claim.legal_hash,
                snapshot_ref=snapshot_block,
            ))
        return leaves

    def build(self, snapshot_block: int) -> dict[str, Any]:
        if snapshot_block > self._vault.chain.block_number:
            raise ValidationError(
                f"Snapshot block {snapshot_block} is in the future "
                f"(current {self._vault.chain.block_number})"
            )
        leaves = self.collect_leaves(snapshot_block)
        if not leaves:
            raise ValidationError("No leaves to generate merkle tree")

        tree = MerkleTree()
        hashes = [leaf.leaf_hash() for leaf in leaves]
        for leaf_hash in hashes:
            tree.add_leaf(leaf_hash)
        root = tree.compute_root()

        leaf_records: list[dict[str, Any]] = []
        proofs: dict[str, list[dict[str, Any]]] = {}
        for leaf, leaf_hash in zip(leaves, hashes):
            record = _leaf_record(leaf)
            leaf_records.append(record)
            proof = tree.inclusion_proof(leaf_hash)
            entry = {k: v for k, v in record.items() if k != "user"}
            entry["proof"] = list(proof.path)
            proofs.setdefault(record["user"], []).append(entry)

        tranche_info = []
        for tranche in self._vault.tranches:
            holders = tranche.claim_record.holders_at_block(snapshot_block)
            tranche_info.append({
                "index": tranche.index,
                "name": tranche.name,
                "claimRecord": tranche.claim_record.symbol,
                "totalSupply": str(sum(holders.values())),
                "holderCount": len(holders),
            })

        return {
            "merkleRoot": root,
            "snapshotBlock": snapshot_block,
            "timestamp": self._vault.chain.now.strftime("%Y-%m-%dT%H:%M:%SZ"),
            "vaultAddress": self._vault.address,
            "totalLeaves": len(leaves),
            "tranches": tranche_info,
            "leaves": leaf_records,
            "proofs": proofs,
        }

    @staticmethod
    def write(artifact: dict[str, Any], path: Path) -> None:
        path.write_text(json.dumps(artifact, indent=2, sort_keys=True), encoding="utf-8")

    @staticmethod
    def load(path: Path) -> dict[str, Any]:
        with path.open("r", encoding="utf-8") as f:
            return json.load(f)


def leaf_from_entry(user: str, entry: dict[str, Any], snapshot_block: int) -> Leaf:
    """Rebuild a leaf from one artifact proof entry."""
    if entry["type"] == "offchain":
        return OffLedgerLeaf(
            claimant=user,
            tranche_index=int(entry["trancheIndex"]),
            amount=int(entry["balance"]),
            legal_hash=entry["legalHash"],
            snapshot_ref=snapshot_block,
        )
    return HolderLeaf(
        holder=user,
        tranche_index=int(entry["trancheIndex"]),
        balance=int(entry["balance"]),
        snapshot_ref=snapshot_block,
    )


def verify_artifact_entries(artifact: dict[str, Any], user: str) -> list[bool]:
    """Verify each of a user's proofs against the artifact root."""
    entries = artifact["proofs"].get(user, [])
    snapshot_block = int(artifact["snapshotBlock"])
    return [
        verify_proof(
            artifact["merkleRoot"],
            leaf_from_entry(user, entry, snapshot_block).leaf_hash(),
            entry["proof"],
        )
        for entry in entries
    ]


def _leaf_record(leaf: Leaf) -> dict[str, Any]:
    if isinstance(leaf, OffLedgerLeaf):
        return {
            "user": leaf.claimant,
            "trancheIndex": leaf.tranche_index,
            "balance": str(leaf.amount),
            "type": "offchain",
            "legalHash": leaf.legal_hash,
        }
    return {
        "user": leaf.holder,
        "trancheIndex": leaf.tranche_index,
        "balance": str(leaf.balance),
        "type": "iou",
    }
