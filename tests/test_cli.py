"""Tests for the waterfall CLI — proves commands dispatch and report correctly."""

import json
from pathlib import Path

from waterfall.cli import build_parser, main


ROOT = Path(__file__).resolve().parents[1]
SCENARIO = ROOT / "scenarios" / "two_tranche.json"
ALICE = "0x00000000000000000000000000000000000a11ce"


class TestCLIParsing:
    def test_simulate_command(self) -> None:
        args = build_parser().parse_args(["simulate", "scenario.json"])
        assert args.command == "simulate"
        assert args.scenario == Path("scenario.json")

    def test_build_proof_command(self) -> None:
        args = build_parser().parse_args([
            "build-proof", "scenario.json", "--snapshot-block", "7", "--output", "out.json",
        ])
        assert args.snapshot_block == 7
        assert args.output == Path("out.json")

    def test_price_command(self) -> None:
        args = build_parser().parse_args(["price", "--feed", "0xabc", "--static", "0.98"])
        assert args.feed == "0xabc"
        assert args.static == "0.98"
        assert args.symbol == "ASSET"


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0

    def test_simulate_sample_scenario(self, capsys) -> None:
        assert main(["simulate", str(SCENARIO)]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["rounds"][0]["state"] == "settled"
        assert summary["pending_pool"] == "0"
        assert summary["steps"][5]["error"] == "PhaseError"

    def test_simulate_failing_scenario(self, tmp_path: Path, capsys) -> None:
        scenario = json.loads(SCENARIO.read_text(encoding="utf-8"))
        scenario["actions"] = [{"op": "execute", "caller": ALICE, "round": 1}]
        path = tmp_path / "broken.json"
        path.write_text(json.dumps(scenario), encoding="utf-8")
        assert main(["simulate", str(path)]) == 1
        assert "Failed:" in capsys.readouterr().err

    def test_build_and_verify_proof(self, tmp_path: Path, capsys) -> None:
        output = tmp_path / "root.json"
        assert main([
            "build-proof", str(SCENARIO), "--snapshot-block", "2", "--output", str(output),
        ]) == 0
        assert "Merkle root:" in capsys.readouterr().out

        assert main(["verify-proof", str(output), "--holder", ALICE]) == 0
        assert "VALID" in capsys.readouterr().out

    def test_verify_proof_unknown_holder(self, tmp_path: Path) -> None:
        output = tmp_path / "root.json"
        main(["build-proof", str(SCENARIO), "--snapshot-block", "1", "--output", str(output)])
        assert main(["verify-proof", str(output), "--holder", "0x" + "99" * 20]) == 1

    def test_check_invariants_runs(self) -> None:
        assert main(["check-invariants"]) == 0

    def test_check_invariants_bad_config(self, tmp_path: Path) -> None:
        (tmp_path / "protocol_params.json").write_text(
            json.dumps({"execution_fee_bps": 500}), encoding="utf-8",
        )
        assert main(["--config", str(tmp_path), "check-invariants"]) == 1
