"""Protocol parameters — fixed windows, rates and bounds.

Parameters are loaded from config/protocol_params.json. Every field has
a default, so a partial file only overrides what it names. Unknown keys
are rejected to catch typos in deployment configs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any

from waterfall.errors import ValidationError


BPS = 10_000
WAD = 10**18

PARAMS_FILENAME = "protocol_params.json"


@dataclass(frozen=True)
class ProtocolParams:
    objection_window_seconds: int = 3 * 24 * 3600
    challenge_window_seconds: int = 7 * 24 * 3600
    veto_cooldown_seconds: int = 24 * 3600
    execution_fee_bps: int = 10
    veto_threshold_bps: int = 1000
    veto_quorum_bps: int = 500
    min_bond_usd: int = 1_000
    price_staleness_seconds: int = 3600
    max_price_usd: int = 1_000_000
    unclaimed_deadline_days: int = 730

    def __post_init__(self) -> None:
        for bps_field in ("execution_fee_bps", "veto_threshold_bps", "veto_quorum_bps"):
            value = getattr(self, bps_field)
            if not 0 <= value <= BPS:
                raise ValidationError(f"{bps_field} must be within [0, {BPS}], got {value}")
        for window in (
            "objection_window_seconds",
            "challenge_window_seconds",
            "price_staleness_seconds",
            "unclaimed_deadline_days",
        ):
            if getattr(self, window) <= 0:
                raise ValidationError(f"{window} must be positive")
        if self.veto_cooldown_seconds < 0 or self.min_bond_usd < 0:
            raise ValidationError("Cooldown and minimum bond must not be negative")

    @property
    def objection_window(self) -> timedelta:
        return timedelta(seconds=self.objection_window_seconds)

    @property
    def challenge_window(self) -> timedelta:
        return timedelta(seconds=self.challenge_window_seconds)

    @property
    def veto_cooldown(self) -> timedelta:
        return timedelta(seconds=self.veto_cooldown_seconds)

    @property
    def price_staleness(self) -> timedelta:
        return timedelta(seconds=self.price_staleness_seconds)

    @property
    def unclaimed_deadline(self) -> timedelta:
        return timedelta(days=self.unclaimed_deadline_days)

    def min_bond(self, decimals: int) -> int:
        """Minimum submitter bond in native units of a recovery asset with
        the given decimals. One whole unit of the recovery asset is one dollar.
        """
        return self.min_bond_usd * 10**decimals

    @property
    def max_price(self) -> int:
        """Upper sanity bound on a resolved price, WAD-scaled."""
        return self.max_price_usd * WAD

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProtocolParams:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(f"Unknown protocol parameters: {', '.join(sorted(unknown))}")
        return cls(**{k: int(v) for k, v in data.items()})

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> ProtocolParams:
        """Load parameters from a config directory; defaults if the file is absent."""
        path = config_dir / PARAMS_FILENAME
        if not path.exists():
            return cls()
        with path.open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))
