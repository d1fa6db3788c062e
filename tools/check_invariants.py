#!/usr/bin/env python3
"""Protocol parameter invariant checks against config/protocol_params.json."""

import json
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
PARAMS_FILENAME = "protocol_params.json"

BPS = 10_000
DAY = 24 * 3600


def load_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def check_params(params: dict, errors: list[str]) -> None:
    # --- Basis-point bounds ---
    for key in ("execution_fee_bps", "veto_threshold_bps", "veto_quorum_bps"):
        value = params.get(key)
        if value is None:
            errors.append(f"missing parameter: {key}")
        elif not 0 <= value <= BPS:
            errors.append(f"{key} must be within [0, {BPS}], got {value}")

    fee = params.get("execution_fee_bps", 0)
    if fee > 100:
        errors.append(f"execution_fee_bps must be <= 100 (1%), got {fee}")

    threshold = params.get("veto_threshold_bps", 0)
    quorum = params.get("veto_quorum_bps", 0)
    if threshold <= 0:
        errors.append("veto_threshold_bps must be > 0 or any objection vetoes")
    if quorum <= 0:
        errors.append("veto_quorum_bps must be > 0")

    # --- Window ordering ---
    objection = params.get("objection_window_seconds", 0)
    challenge = params.get("challenge_window_seconds", 0)
    staleness = params.get("price_staleness_seconds", 0)
    deadline_days = params.get("unclaimed_deadline_days", 0)
    if objection <= 0:
        errors.append("objection_window_seconds must be > 0")
    if challenge <= 0:
        errors.append("challenge_window_seconds must be > 0")
    if staleness <= 0:
        errors.append("price_staleness_seconds must be > 0")
    if staleness >= objection:
        errors.append("price_staleness_seconds must be shorter than the objection window")
    if deadline_days * DAY <= objection + challenge:
        errors.append(
            "unclaimed_deadline_days must exceed the objection and challenge windows combined"
        )
    if params.get("veto_cooldown_seconds", 0) < 0:
        errors.append("veto_cooldown_seconds must be >= 0")

    # --- Economic bounds ---
    if params.get("min_bond_usd", 0) <= 0:
        errors.append("min_bond_usd must be > 0 so every round is backed by a stake")
    if params.get("max_price_usd", 0) <= 0:
        errors.append("max_price_usd must be > 0")


def check(config_dir: Path = CONFIG_DIR) -> int:
    path = Path(config_dir) / PARAMS_FILENAME
    if not path.exists():
        print(f"Invariant checks failed:\n- parameter file not found: {path}")
        return 1
    errors: list[str] = []
    check_params(load_json(path), errors)

    if errors:
        print("Invariant checks failed:")
        for error in errors:
            print(f"- {error}")
        return 1

    print("Invariant checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(check())
