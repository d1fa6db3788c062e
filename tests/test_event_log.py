"""Tests for the vault event log — proves append-only storage and tamper detection."""

import json
import pytest
from datetime import datetime, timezone
from pathlib import Path

from waterfall.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "evt_1", kind: EventKind = EventKind.DEPOSIT) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=kind,
        actor_id="0x" + "a1" * 20,
        payload={"asset": "SNR", "amount": "1000000"},
        timestamp_utc=_now(),
    )


class TestEventRecord:
    def test_hash_is_stable(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        other = EventRecord.create(
            "evt_1", EventKind.DEPOSIT, "0x" + "a1" * 20, {"asset": "SNR", "amount": "2"}, _now(),
        )
        assert other.event_hash != _event().event_hash

    def test_timestamp_format(self) -> None:
        assert _event().timestamp_utc == "2026-03-01T12:00:00Z"


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("evt_1"))
        log.append(_event("evt_2", EventKind.CLAIMED))
        assert log.count == 2
        assert [e.event_id for e in log.events(EventKind.CLAIMED)] == ["evt_2"]
        assert log.last_event.event_id == "evt_2"

    def test_duplicate_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_event())

    def test_persisted_log_reloads(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("evt_1"))
        log.append(_event("evt_2", EventKind.ROUND_INITIATED))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[1].event_kind == EventKind.ROUND_INITIATED

    def test_tampered_record_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())
        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["amount"] = "999999999"
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_disk_detected(self, tmp_path: Path) -> None:
        path = tmp_path / "events.jsonl"
        line = json.dumps(_event().to_dict(), sort_keys=True)
        path.write_text(line + "\n" + line + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)
