"""Waterfall CLI — command-line interface for the recovery distribution engine.

Usage:
    python -m waterfall.cli simulate scenarios/acme.json
    python -m waterfall.cli build-proof scenarios/acme.json --snapshot-block 12 --output root.json
    python -m waterfall.cli verify-proof root.json --holder 0xabc...
    python -m waterfall.cli price --feed 0x5f4e... --static 1.00
    python -m waterfall.cli check-invariants
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from waterfall.crypto.proof_builder import ProofBuilder, verify_artifact_entries
from waterfall.errors import WaterfallError
from waterfall.ledger.chain import Chain
from waterfall.ledger.token import Token, normalize_address
from waterfall.models.vault import AssetConfig
from waterfall.policy.params import ProtocolParams
from waterfall.pricing.resolver import PriceResolver
from waterfall.scenario import ScenarioRunner, to_wad_dollars


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG = ROOT / "config"


def _load_params(config_dir: Path) -> ProtocolParams:
    return ProtocolParams.from_config_dir(config_dir)


def cmd_simulate(args: argparse.Namespace) -> int:
    try:
        runner = ScenarioRunner.from_file(args.scenario, _load_params(args.config))
        runner.run()
    except WaterfallError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(runner.summary(), indent=2))
    return 0


def cmd_build_proof(args: argparse.Namespace) -> int:
    try:
        runner = ScenarioRunner.from_file(args.scenario, _load_params(args.config))
        runner.run()
        block = args.snapshot_block if args.snapshot_block is not None else runner.chain.block_number
        artifact = ProofBuilder(runner.vault).build(block)
    except WaterfallError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1

    if args.output:
        ProofBuilder.write(artifact, args.output)
        print(f"Wrote {artifact['totalLeaves']} leaves to {args.output}")
    else:
        print(json.dumps(artifact, indent=2, sort_keys=True))
    print(f"Merkle root: {artifact['merkleRoot']}")
    return 0


def cmd_verify_proof(args: argparse.Namespace) -> int:
    artifact = ProofBuilder.load(args.artifact)
    try:
        holder = normalize_address(args.holder)
    except WaterfallError as exc:
        print(f"Failed: {exc}", file=sys.stderr)
        return 1

    results = verify_artifact_entries(artifact, holder)
    if not results:
        print(f"Failed: no proofs for {holder} in {args.artifact}", file=sys.stderr)
        return 1
    entries = artifact["proofs"][holder]
    for entry, valid in zip(entries, results):
        status = "VALID" if valid else "INVALID"
        print(f"  tranche {entry['trancheIndex']} ({entry['type']}) {entry['balance']}: {status}")
    if not all(results):
        print("Failed: one or more proofs did not verify", file=sys.stderr)
        return 1
    print(f"All {len(results)} proofs verify against {artifact['merkleRoot']}")
    return 0


def cmd_price(args: argparse.Namespace) -> int:
    from dotenv import load_dotenv
    from waterfall.pricing.onchain import OnChainAggregatorSource

    load_dotenv(ROOT / ".env")
    rpc_url = args.rpc_url or os.getenv("RPC_URL")
    if not rpc_url:
        print("Failed: missing RPC_URL (set it in .env or pass --rpc-url)", file=sys.stderr)
        return 1

    chain = Chain(genesis_utc=datetime.now(timezone.utc))
    try:
        source = OnChainAggregatorSource(rpc_url, args.feed)
    except Exception as exc:  # noqa: BLE001
        print(f"Failed: cannot reach feed {args.feed}: {exc}", file=sys.stderr)
        return 1
    asset = AssetConfig(
        token=Token(args.symbol, 18, chain),
        tranche_index=0,
        static_price=to_wad_dollars(args.static),
        price_source=source,
    )
    resolution = PriceResolver(_load_params(args.config), chain).resolve(asset)
    print(json.dumps({
        "symbol": args.symbol,
        "price": str(resolution.price),
        "source": resolution.source,
        "degraded": resolution.degraded,
        "reason": resolution.reason,
    }, indent=2))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run protocol parameter invariant checks."""
    tools_dir = ROOT / "tools"
    sys.path.insert(0, str(tools_dir))
    from check_invariants import check
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="waterfall",
        description="Recovery distribution engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help="Path to config directory (default: config/)",
    )
    sub = parser.add_subparsers(dest="command")

    # simulate
    p_sim = sub.add_parser("simulate", help="Replay a scenario and print the outcome")
    p_sim.add_argument("scenario", type=Path, help="Scenario JSON file")

    # build-proof
    p_build = sub.add_parser("build-proof", help="Build a membership-proof artifact")
    p_build.add_argument("scenario", type=Path, help="Scenario JSON file")
    p_build.add_argument("--snapshot-block", type=int, help="Snapshot block (default: latest)")
    p_build.add_argument("--output", type=Path, help="Write the artifact here instead of stdout")

    # verify-proof
    p_verify = sub.add_parser("verify-proof", help="Verify a holder's proofs in an artifact")
    p_verify.add_argument("artifact", type=Path, help="Proof artifact JSON file")
    p_verify.add_argument("--holder", required=True, help="Holder address")

    # price
    p_price = sub.add_parser("price", help="Resolve a price from an on-chain aggregator")
    p_price.add_argument("--feed", required=True, help="Aggregator contract address")
    p_price.add_argument("--static", required=True, help="Static fallback price in dollars")
    p_price.add_argument("--symbol", default="ASSET", help="Label for the output")
    p_price.add_argument("--rpc-url", help="JSON-RPC endpoint (default: RPC_URL from .env)")

    # check-invariants
    sub.add_parser("check-invariants", help="Run protocol parameter invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "simulate": cmd_simulate,
        "build-proof": cmd_build_proof,
        "verify-proof": cmd_verify_proof,
        "price": cmd_price,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
