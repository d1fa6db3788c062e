"""Chain clock — the single serial ledger every vault operation runs against.

Three coordinates describe a point in ledger history:
- block_number: advances when blocks are mined. Snapshot references and
  membership proofs are pinned to a block.
- now: the block timestamp. Objection, challenge and redistribution
  windows are measured against it.
- seq: a write sequence that increments on every balance change. Round
  snapshots pin a sequence number, so a write in the same block after
  the snapshot is still excluded from it.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


DEFAULT_BLOCK_SECONDS = 12


class Chain:
    """In-memory block clock with a global write sequence.

    Usage:
        chain = Chain(genesis_utc=datetime(2026, 1, 1, tzinfo=timezone.utc))
        chain.mine()                          # one block, 12 seconds
        chain.advance(timedelta(days=3))      # jump forward, mining blocks
        seq = chain.next_seq()
    """

    def __init__(
        self,
        genesis_utc: Optional[datetime] = None,
        block_number: int = 1,
        block_seconds: int = DEFAULT_BLOCK_SECONDS,
    ) -> None:
        if block_seconds <= 0:
            raise ValueError("block_seconds must be positive")
        self._now = genesis_utc or datetime.now(timezone.utc)
        self._block_number = block_number
        self._block_seconds = block_seconds
        self._seq = 0

    @property
    def block_number(self) -> int:
        return self._block_number

    @property
    def now(self) -> datetime:
        return self._now

    @property
    def seq(self) -> int:
        """The sequence number of the most recent write."""
        return self._seq

    def next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def mine(self, blocks: int = 1) -> int:
        """Mine blocks at the configured block time. Returns the new height."""
        if blocks < 1:
            raise ValueError("Must mine at least one block")
        self._block_number += blocks
        self._now += timedelta(seconds=self._block_seconds * blocks)
        return self._block_number

    def advance(self, delta: timedelta) -> int:
        """Move the clock forward by delta, mining the blocks that fit in it."""
        if delta <= timedelta(0):
            raise ValueError("Clock can only move forward")
        blocks = max(1, int(delta.total_seconds()) // self._block_seconds)
        self._block_number += blocks
        self._now += delta
        return self._block_number
