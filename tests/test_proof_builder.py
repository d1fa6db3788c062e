"""Tests for the proof builder — proves artifacts are complete, verifiable and deterministic."""

import pytest
from datetime import datetime, timezone
from pathlib import Path

from waterfall.crypto.merkle import verify_proof
from waterfall.crypto.proof_builder import (
    ProofBuilder,
    leaf_from_entry,
    verify_artifact_entries,
)
from waterfall.errors import ValidationError
from waterfall.ledger.chain import Chain
from waterfall.ledger.token import Token
from waterfall.models.vault import AssetConfig, DenominationMode, OffLedgerClaim, VaultConfig
from waterfall.vault import RecoveryVault


ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
DAVE = "0x" + "d0" * 20
LEGAL = "0x" + "11" * 32
WAD = 10**18
UNIT = 10**6


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _make_vault(off_ledger: tuple = (OffLedgerClaim(DAVE, 1, 250 * WAD, LEGAL),)):
    chain = Chain(genesis_utc=_now())
    snr = Token("SNR", 6, chain)
    jnr = Token("JNR", 6, chain)
    config = VaultConfig(
        name="acme",
        tranche_names=("senior", "junior"),
        mode=DenominationMode.WRAPPED_ONLY,
        recovery_token=Token("USDC", 6, chain),
        assets=(AssetConfig(snr, 0, WAD), AssetConfig(jnr, 1, WAD)),
        off_ledger_claims=off_ledger,
    )
    vault = RecoveryVault(config, chain)
    for holder, token, units in ((ALICE, snr, 1_000), (BOB, jnr, 400), (ALICE, jnr, 100)):
        token.issue(holder, units * UNIT)
        vault.deposit(holder, token.symbol, units * UNIT)
    return vault, chain, snr


class TestBuild:
    def test_one_leaf_per_holder_tranche_and_off_ledger_claim(self) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        assert artifact["totalLeaves"] == 4
        assert artifact["vaultAddress"] == vault.address
        assert artifact["snapshotBlock"] == chain.block_number
        assert sorted(artifact["proofs"]) == sorted([ALICE, BOB, DAVE])
        assert len(artifact["proofs"][ALICE]) == 2
        assert artifact["tranches"][1]["holderCount"] == 2
        assert artifact["tranches"][1]["totalSupply"] == str(500 * WAD)

    def test_every_proof_verifies(self) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        for user in artifact["proofs"]:
            assert all(verify_artifact_entries(artifact, user))

    def test_off_ledger_entry(self) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        entry = artifact["proofs"][DAVE][0]
        assert entry["type"] == "offchain"
        assert entry["legalHash"] == LEGAL
        assert entry["balance"] == str(250 * WAD)
        leaf = leaf_from_entry(DAVE, entry, chain.block_number)
        assert verify_proof(artifact["merkleRoot"], leaf.leaf_hash(), entry["proof"])

    def test_balances_read_at_snapshot_block(self) -> None:
        vault, chain, snr = _make_vault()
        block = chain.block_number
        chain.mine()
        vault.get_tranche(0).claim_record.transfer(ALICE, BOB, 400 * WAD)

        artifact = ProofBuilder(vault).build(block)
        senior = [e for e in artifact["proofs"][ALICE] if e["trancheIndex"] == 0]
        assert senior[0]["balance"] == str(1_000 * WAD)
        assert all(e["trancheIndex"] == 1 for e in artifact["proofs"][BOB])

    def test_deterministic(self) -> None:
        vault, chain, _ = _make_vault()
        first = ProofBuilder(vault).build(chain.block_number)
        second = ProofBuilder(vault).build(chain.block_number)
        assert first["merkleRoot"] == second["merkleRoot"]

    def test_rejects_future_block(self) -> None:
        vault, chain, _ = _make_vault()
        with pytest.raises(ValidationError, match="in the future"):
            ProofBuilder(vault).build(chain.block_number + 1)

    def test_rejects_empty_tree(self) -> None:
        chain = Chain(genesis_utc=_now())
        config = VaultConfig(
            name="empty",
            tranche_names=("senior",),
            mode=DenominationMode.WRAPPED_ONLY,
            recovery_token=Token("USDC", 6, chain),
            assets=(AssetConfig(Token("SNR", 6, chain), 0, WAD),),
        )
        with pytest.raises(ValidationError, match="No leaves"):
            ProofBuilder(RecoveryVault(config, chain)).build(chain.block_number)


class TestArtifactFiles:
    def test_write_and_load(self, tmp_path: Path) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        path = tmp_path / "round-1.json"
        ProofBuilder.write(artifact, path)
        loaded = ProofBuilder.load(path)
        assert loaded["merkleRoot"] == artifact["merkleRoot"]
        assert all(verify_artifact_entries(loaded, ALICE))

    def test_tampered_balance_fails_verification(self) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        artifact["proofs"][BOB][0]["balance"] = str(401 * WAD)
        assert verify_artifact_entries(artifact, BOB) == [False]

    def test_unknown_user_has_no_entries(self) -> None:
        vault, chain, _ = _make_vault()
        artifact = ProofBuilder(vault).build(chain.block_number)
        assert verify_artifact_entries(artifact, "0x" + "99" * 20) == []
