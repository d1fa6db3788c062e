"""Scenario replay — build a vault from a JSON description and drive it.

A scenario file describes the vault, the starting balances and an
ordered list of actions:

    {
      "name": "acme-recovery",
      "mode": "wrapped_only",
      "unclaimed_policy": "pro_rata",
      "genesis_utc": "2026-01-01T00:00:00Z",
      "recovery": {"symbol": "USDC", "decimals": 6},
      "tranches": ["senior", "junior"],
      "assets": [
        {"symbol": "SNR", "decimals": 6, "tranche": 0, "static_price": "1.00",
         "spot_price": "0.98"}
      ],
      "off_ledger_claims": [
        {"claimant": "0x…", "tranche": 1, "amount": "2500", "legal_hash": "0x…"}
      ],
      "balances": {"SNR": {"0x…": "1000000000"}, "USDC": {"0x…": "5000000000"}},
      "actions": [
        {"op": "deposit", "holder": "0x…", "asset": "SNR", "amount": "1000000000"},
        {"op": "initiate", "initiator": "0x…", "bond": "1000000000"},
        {"op": "advance", "seconds": 259200},
        {"op": "execute", "caller": "0x…", "round": 1},
        {"op": "claim", "holder": "0x…", "round": 1}
      ]
    }

Prices and off-ledger amounts are decimal dollar strings; token amounts
are integer base units. When an initiate action carries no proof_root,
the proof artifact is built from the vault's own ledger at the snapshot
block (default: the current block) and kept for later off-ledger claims
and challenges. An action may carry "expect_error" naming the error
class it must fail with.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from waterfall.crypto.proof_builder import ProofBuilder, leaf_from_entry
from waterfall.errors import ValidationError, WaterfallError
from waterfall.ledger.chain import Chain
from waterfall.ledger.token import Token, normalize_address
from waterfall.models.vault import (
    AssetConfig,
    DenominationMode,
    OffLedgerClaim,
    UnclaimedPolicy,
    VaultConfig,
)
from waterfall.policy.params import WAD, ProtocolParams
from waterfall.vault import RecoveryVault


class SpotQuote:
    """Mutable spot-shaped price source for scenarios."""

    def __init__(self, price: int) -> None:
        self.price = price

    def latest_price(self) -> int:
        return self.price


def to_wad_dollars(value: str | int | float) -> int:
    """Parse a decimal dollar amount into WAD without float rounding."""
    return int(Decimal(str(value)) * WAD)


class ScenarioRunner:
    """Builds a vault from a scenario and replays its actions.

    Usage:
        runner = ScenarioRunner.from_file(Path("scenario.json"), params)
        runner.run()
        print(json.dumps(runner.summary(), indent=2))
    """

    def __init__(self, scenario: dict[str, Any], params: Optional[ProtocolParams] = None) -> None:
        self._scenario = scenario
        self._params = params or ProtocolParams()
        self._tokens: dict[str, Token] = {}
        self._spot: dict[str, SpotQuote] = {}
        self._artifacts: dict[int, dict[str, Any]] = {}
        self._results: list[dict[str, Any]] = []
        self.chain = Chain(genesis_utc=_parse_utc(scenario.get("genesis_utc")))
        self.vault = self._build_vault()
        self._fund_balances()

    @classmethod
    def from_file(cls, path: Path, params: Optional[ProtocolParams] = None) -> ScenarioRunner:
        with path.open("r", encoding="utf-8") as f:
            return cls(json.load(f), params)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build_vault(self) -> RecoveryVault:
        s = self._scenario
        recovery_def = s.get("recovery", {"symbol": "USDC", "decimals": 6})
        recovery = Token(recovery_def["symbol"], int(recovery_def["decimals"]), self.chain)
        self._tokens[recovery.symbol] = recovery

        assets = []
        for asset_def in s.get("assets", []):
            token = Token(asset_def["symbol"], int(asset_def["decimals"]), self.chain)
            self._tokens[token.symbol] = token
            source = None
            if "spot_price" in asset_def:
                source = SpotQuote(to_wad_dollars(asset_def["spot_price"]))
                self._spot[token.symbol] = source
            assets.append(AssetConfig(
                token=token,
                tranche_index=int(asset_def["tranche"]),
                static_price=to_wad_dollars(asset_def["static_price"]),
                price_source=source,
            ))

        off_ledger = tuple(
            OffLedgerClaim(
                claimant=c["claimant"],
                tranche_index=int(c["tranche"]),
                amount=to_wad_dollars(c["amount"]),
                legal_hash=c["legal_hash"],
            )
            for c in s.get("off_ledger_claims", [])
        )

        config = VaultConfig(
            name=s.get("name", "scenario"),
            tranche_names=tuple(s["tranches"]),
            mode=DenominationMode(s.get("mode", DenominationMode.WRAPPED_ONLY.value)),
            recovery_token=recovery,
            assets=tuple(assets),
            off_ledger_claims=off_ledger,
            unclaimed_policy=UnclaimedPolicy(
                s.get("unclaimed_policy", UnclaimedPolicy.PRO_RATA.value)
            ),
            treasury=s.get("treasury"),
        )
        return RecoveryVault(config, self.chain, self._params)

    def _fund_balances(self) -> None:
        for symbol, holders in self._scenario.get("balances", {}).items():
            token = self._token(symbol)
            for holder, amount in holders.items():
                token.issue(normalize_address(holder), int(amount))

    def _token(self, symbol: str) -> Token:
        token = self._tokens.get(symbol)
        if token is None:
            raise ValidationError(f"Scenario references unknown token: {symbol}")
        return token

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def run(self) -> list[dict[str, Any]]:
        for step, action in enumerate(self._scenario.get("actions", []), 1):
            self._results.append(self._apply(step, action))
        return self._results

    def _apply(self, step: int, action: dict[str, Any]) -> dict[str, Any]:
        op = action.get("op")
        handler = getattr(self, f"_op_{op}", None)
        if handler is None:
            raise ValidationError(f"Step {step}: unknown operation {op!r}")

        expected = action.get("expect_error")
        try:
            result = handler(action)
        except WaterfallError as exc:
            if expected and type(exc).__name__ == expected:
                return {"step": step, "op": op, "error": type(exc).__name__, "message": str(exc)}
            raise
        if expected:
            raise ValidationError(f"Step {step}: {op} succeeded but {expected} was expected")
        return {"step": step, "op": op, "result": result}

    def _op_mine(self, action: dict[str, Any]) -> int:
        return self.chain.mine(int(action.get("blocks", 1)))

    def _op_advance(self, action: dict[str, Any]) -> int:
        return self.chain.advance(timedelta(seconds=int(action["seconds"])))

    def _op_set_price(self, action: dict[str, Any]) -> str:
        quote = self._spot.get(action["asset"])
        if quote is None:
            raise ValidationError(f"Asset {action['asset']} has no spot price source")
        quote.price = to_wad_dollars(action["price"])
        return str(quote.price)

    def _op_transfer(self, action: dict[str, Any]) -> None:
        tranche = self.vault.get_tranche(int(action["tranche"]))
        tranche.claim_record.transfer(
            normalize_address(action["src"]),
            normalize_address(action["dst"]),
            int(action["amount"]),
        )

    def _op_deposit(self, action: dict[str, Any]) -> str:
        return str(self.vault.deposit(action["holder"], action["asset"], int(action["amount"])))

    def _op_deposit_batch(self, action: dict[str, Any]) -> list[str]:
        minted = self.vault.deposit_batch(
            action["holder"], action["assets"], [int(a) for a in action["amounts"]],
        )
        return [str(m) for m in minted]

    def _op_deposit_recovery(self, action: dict[str, Any]) -> str:
        return str(self.vault.deposit_recovery(action["sender"], int(action["amount"])))

    def _op_initiate(self, action: dict[str, Any]) -> int:
        snapshot_block = int(action.get("snapshot_block", self.chain.block_number))
        artifact = None
        proof_root = action.get("proof_root")
        if proof_root is None:
            artifact = ProofBuilder(self.vault).build(snapshot_block)
            proof_root = artifact["merkleRoot"]
        round_ = self.vault.initiate(
            action["initiator"], proof_root, snapshot_block, int(action["bond"]),
        )
        if artifact is not None:
            self._artifacts[round_.round_id] = artifact
        return round_.round_id

    def _op_object(self, action: dict[str, Any]) -> bool:
        return self.vault.object(action["holder"], int(action["round"]))

    def _op_execute(self, action: dict[str, Any]) -> str:
        round_ = self.vault.execute(action["caller"], int(action["round"]))
        return round_.state.value

    def _op_challenge(self, action: dict[str, Any]) -> str:
        round_id = int(action["round"])
        user = normalize_address(action["user"])
        entry = self._artifact_entry(round_id, user, int(action["tranche"]))
        leaf = leaf_from_entry(user, entry, int(self._artifacts[round_id]["snapshotBlock"]))
        round_ = self.vault.challenge(action["challenger"], round_id, leaf, entry["proof"])
        return round_.state.value

    def _op_return_bond(self, action: dict[str, Any]) -> str:
        round_ = self.vault.return_bond(action["caller"], int(action["round"]))
        return round_.state.value

    def _op_claim(self, action: dict[str, Any]) -> str:
        return str(self.vault.claim(action["holder"], int(action["round"])))

    def _op_claim_batch(self, action: dict[str, Any]) -> str:
        return str(self.vault.claim_batch(action["holder"], [int(r) for r in action["rounds"]]))

    def _op_claim_off_ledger(self, action: dict[str, Any]) -> str:
        round_id = int(action["round"])
        claimant = normalize_address(action["claimant"])
        tranche_index = int(action["tranche"])
        entry = self._artifact_entry(round_id, claimant, tranche_index, kind="offchain")
        payout = self.vault.claim_off_ledger(
            claimant,
            round_id,
            tranche_index,
            int(entry["balance"]),
            entry["legalHash"],
            entry["proof"],
        )
        return str(payout)

    def _op_distribute_unclaimed(self, action: dict[str, Any]) -> str:
        state = self.vault.distribute_unclaimed(action["caller"])
        return str(state.residual)

    def _op_claim_redistribution(self, action: dict[str, Any]) -> str:
        return str(self.vault.claim_redistribution(action["holder"]))

    def _artifact_entry(
        self,
        round_id: int,
        user: str,
        tranche_index: int,
        kind: Optional[str] = None,
    ) -> dict[str, Any]:
        artifact = self._artifacts.get(round_id)
        if artifact is None:
            raise ValidationError(f"No proof artifact was built for round {round_id}")
        for entry in artifact["proofs"].get(user, []):
            if entry["trancheIndex"] == tranche_index and kind in (None, entry["type"]):
                return entry
        raise ValidationError(f"Round {round_id} artifact has no tranche {tranche_index} leaf for {user}")

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def artifact(self, round_id: int) -> Optional[dict[str, Any]]:
        return self._artifacts.get(round_id)

    def summary(self) -> dict[str, Any]:
        vault = self.vault
        rounds = []
        for round_id in range(1, vault.round_count + 1):
            r = vault.get_round(round_id)
            rounds.append({
                "round_id": r.round_id,
                "state": r.state.value,
                "amount": str(r.amount),
                "fee": str(r.fee),
                "total_claimed": str(r.total_claimed),
                "objection_weight": str(r.objection_weight),
                "tranches": [
                    {"paid": str(t.paid), "rate": str(t.rate), "denominator": str(t.denominator)}
                    for t in r.tranches
                ],
            })
        return {
            "vault": vault.address,
            "block": self.chain.block_number,
            "pending_pool": str(vault.pending_pool),
            "residual": str(vault.residual_balance()),
            "rounds": rounds,
            "steps": self._results,
            "events": [e.to_dict() for e in vault.event_log.events()],
        }


def _parse_utc(value: Optional[str]) -> datetime:
    if value is None:
        return datetime(2026, 1, 1, tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
