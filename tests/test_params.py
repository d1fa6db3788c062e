"""Tests for protocol parameters and their invariant checks."""

import json
import pytest
import sys
from datetime import timedelta
from pathlib import Path

from waterfall.errors import ValidationError
from waterfall.policy.params import ProtocolParams


ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "tools"))

from check_invariants import check  # noqa: E402


class TestProtocolParams:
    def test_defaults(self) -> None:
        params = ProtocolParams()
        assert params.objection_window == timedelta(days=3)
        assert params.challenge_window == timedelta(days=7)
        assert params.veto_cooldown == timedelta(days=1)
        assert params.unclaimed_deadline == timedelta(days=730)
        assert params.max_price == 1_000_000 * 10**18

    def test_min_bond_scales_with_recovery_decimals(self) -> None:
        params = ProtocolParams(min_bond_usd=250)
        assert params.min_bond(6) == 250 * 10**6
        assert params.min_bond(18) == 250 * 10**18

    def test_negative_min_bond_rejected(self) -> None:
        with pytest.raises(ValidationError, match="minimum bond"):
            ProtocolParams(min_bond_usd=-1)

    def test_partial_override(self) -> None:
        params = ProtocolParams.from_dict({"execution_fee_bps": 25})
        assert params.execution_fee_bps == 25
        assert params.veto_threshold_bps == 1000

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown protocol parameters"):
            ProtocolParams.from_dict({"objection_window": 10})

    def test_bps_range(self) -> None:
        with pytest.raises(ValidationError, match="veto_threshold_bps"):
            ProtocolParams(veto_threshold_bps=10_001)

    def test_windows_positive(self) -> None:
        with pytest.raises(ValidationError, match="objection_window_seconds"):
            ProtocolParams(objection_window_seconds=0)

    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert ProtocolParams.from_config_dir(tmp_path) == ProtocolParams()

    def test_repository_config_matches_defaults(self) -> None:
        assert ProtocolParams.from_config_dir(ROOT / "config") == ProtocolParams()


class TestInvariantChecks:
    def test_repository_config_passes(self, capsys) -> None:
        assert check(ROOT / "config") == 0
        assert "passed" in capsys.readouterr().out

    def test_fee_above_one_percent_fails(self, tmp_path: Path, capsys) -> None:
        data = json.loads((ROOT / "config" / "protocol_params.json").read_text(encoding="utf-8"))
        data["execution_fee_bps"] = 150
        (tmp_path / "protocol_params.json").write_text(json.dumps(data), encoding="utf-8")
        assert check(tmp_path) == 1
        assert "execution_fee_bps" in capsys.readouterr().out

    def test_deadline_must_outlast_windows(self, tmp_path: Path, capsys) -> None:
        data = json.loads((ROOT / "config" / "protocol_params.json").read_text(encoding="utf-8"))
        data["unclaimed_deadline_days"] = 5
        (tmp_path / "protocol_params.json").write_text(json.dumps(data), encoding="utf-8")
        assert check(tmp_path) == 1
        assert "unclaimed_deadline_days" in capsys.readouterr().out

    def test_missing_file_fails(self, tmp_path: Path) -> None:
        assert check(tmp_path) == 1
