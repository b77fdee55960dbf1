"""
Test UsageLedger and UsageStore
===============================

Usage:
    pytest test_usage_ledger.py
"""

import json
import tempfile
from pathlib import Path

import pytest

from trafficlens_usage import LedgerState, UsageDelta, UsageEntry, UsageLedger, UsageStore


class FailingStore(UsageStore):
    """Store whose writes always fail (read-only disk, full disk...)."""

    def __init__(self, path):
        super().__init__(path)
        self.save_attempts = 0

    def save(self, state):
        self.save_attempts += 1
        raise OSError("No space left on device")


def test_first_positive_delta_creates_entry():
    ledger = UsageLedger()
    ledger.apply_deltas([UsageDelta("10.0.0.5", 500, 200)], now=1000.0)

    entry = ledger.get("10.0.0.5")
    assert entry == UsageEntry("10.0.0.5", 500, 200, first_seen=1000.0, last_seen=1000.0)
    assert entry.total == 700
    print("✓ First delta creates the entry with first_seen == last_seen")


def test_deltas_accumulate_and_total_holds():
    ledger = UsageLedger()
    ledger.apply_deltas([UsageDelta("10.0.0.5", 100, 50)], now=1000.0)
    ledger.apply_deltas([UsageDelta("10.0.0.5", 200, 0)], now=1005.0)
    ledger.apply_deltas([UsageDelta("10.0.0.5", 0, 25)], now=1010.0)

    entry = ledger.get("10.0.0.5")
    assert (entry.upload, entry.download) == (300, 75)
    assert entry.total == entry.upload + entry.download == 375
    assert entry.first_seen == 1000.0
    assert entry.last_seen == 1010.0
    assert entry.duration == 10.0
    print("✓ Deltas accumulate, total == upload + download")


def test_touch_advances_last_seen_only():
    ledger = UsageLedger()
    ledger.apply_deltas([UsageDelta("10.0.0.5", 10, 10)], now=1000.0)
    ledger.apply_deltas([UsageDelta("10.0.0.5", 0, 0)], now=1060.0)

    entry = ledger.get("10.0.0.5")
    assert entry.total == 20
    assert entry.last_seen == 1060.0

    # A touch never creates an entry
    ledger.apply_deltas([UsageDelta("10.0.0.9", 0, 0)], now=1060.0)
    assert "10.0.0.9" not in ledger
    print("✓ Touch keeps totals, advances last_seen, never creates")


def test_last_seen_never_moves_backwards():
    ledger = UsageLedger()
    ledger.apply_deltas([UsageDelta("10.0.0.5", 10, 10)], now=2000.0)
    ledger.apply_deltas([UsageDelta("10.0.0.5", 1, 1)], now=1500.0)

    assert ledger.get("10.0.0.5").last_seen == 2000.0
    print("✓ last_seen is monotonic")


def test_remove_and_clear():
    ledger = UsageLedger()
    ledger.apply_deltas([
        UsageDelta("10.0.0.5", 1, 1),
        UsageDelta("10.0.0.6", 2, 2),
    ], now=1.0)

    assert ledger.remove("10.0.0.5") is True
    assert ledger.remove("10.0.0.5") is False
    assert ledger.remove("never-seen") is False
    assert [e.source_identifier for e in ledger.entries()] == ["10.0.0.6"]

    ledger.clear_all()
    assert len(ledger) == 0
    ledger.clear_all()
    assert ledger.entries() == []
    print("✓ remove() of absent entry is a no-op, clear_all() empties")


def test_persistence_round_trip():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "nested" / "usage.json"

        ledger = UsageLedger(store=UsageStore(path))
        ledger.apply_deltas([UsageDelta("10.0.0.5", 300, 50)], now=100.0)
        ledger.apply_deltas([UsageDelta("10.0.0.6", 1, 2)], now=101.0)
        ledger.set_details_expanded(True)

        data = json.loads(path.read_text())
        assert data["entries"]["10.0.0.5"]["total"] == 350
        assert data["details_expanded"] is True

        restored = UsageLedger(store=UsageStore(path))
        assert restored.entries() == ledger.entries()
        assert restored.details_expanded is True
        # No temp files left behind
        assert sorted(p.name for p in path.parent.iterdir()) == ["usage.json"]
    print("✓ Ledger survives a restart")


def test_stored_total_is_recomputed():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"
        path.write_text(json.dumps({
            "entries": {
                "10.0.0.5": {"upload": 10, "download": 5, "total": 999,
                             "first_seen": 1.0, "last_seen": 2.0},
            },
        }))

        state = UsageStore(path).load()
        assert state.entries["10.0.0.5"].total == 15
        assert state.details_expanded is False
    print("✓ Persisted total is ignored on load")


def test_corrupt_file_starts_empty():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"
        path.write_text("{not json")

        with pytest.raises(ValueError):
            UsageStore(path).load()

        ledger = UsageLedger(store=UsageStore(path))
        assert len(ledger) == 0

        # Next flush replaces the corrupt file
        ledger.apply_deltas([UsageDelta("10.0.0.5", 1, 1)], now=1.0)
        assert "10.0.0.5" in UsageStore(path).load().entries
    print("✓ Unreadable ledger file is logged and replaced")


def test_invalid_entries_skipped_valid_history_kept():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "usage.json"
        path.write_text(json.dumps({
            "entries": {
                "10.0.0.5": {"upload": 300, "download": 50,
                             "first_seen": 1.0, "last_seen": 2.0},
                "10.0.0.6": "garbage",
                "10.0.0.7": {"upload": -1, "download": 0,
                             "first_seen": 1.0, "last_seen": 2.0},
                "10.0.0.8": {"upload": 1},
            },
            "details_expanded": True,
        }))

        state = UsageStore(path).load()
        assert list(state.entries) == ["10.0.0.5"]
        assert set(state.rejected) == {"10.0.0.6", "10.0.0.7", "10.0.0.8"}

        ledger = UsageLedger(store=UsageStore(path))
        assert ledger.get("10.0.0.5").total == 350
        assert ledger.details_expanded is True

        # The next flush keeps the surviving history
        ledger.apply_deltas([UsageDelta("10.0.0.9", 1, 1)], now=3.0)
        persisted = UsageStore(path).load()
        assert set(persisted.entries) == {"10.0.0.5", "10.0.0.9"}
        assert persisted.entries["10.0.0.5"].total == 350
        assert persisted.rejected == {}
    print("✓ Invalid persisted entries skipped, the rest survives")


def test_missing_file_is_empty_state():
    with tempfile.TemporaryDirectory() as tmp:
        state = UsageStore(Path(tmp) / "absent.json").load()
        assert state == LedgerState()
    print("✓ Missing ledger file loads as empty")


def test_write_failure_is_not_fatal():
    with tempfile.TemporaryDirectory() as tmp:
        store = FailingStore(Path(tmp) / "usage.json")
        ledger = UsageLedger(store=store)

        ledger.apply_deltas([UsageDelta("10.0.0.5", 100, 50)], now=1.0)
        ledger.apply_deltas([UsageDelta("10.0.0.5", 100, 50)], now=2.0)
        ledger.set_details_expanded(True)
        ledger.remove("10.0.0.5")

        assert store.save_attempts == 4
        assert len(ledger) == 0
        assert ledger.details_expanded is True
    print("✓ Storage write failures are logged, in-memory state kept")


def main():
    print("\n" + "=" * 60)
    print("USAGE LEDGER TESTS")
    print("=" * 60)

    test_first_positive_delta_creates_entry()
    test_deltas_accumulate_and_total_holds()
    test_touch_advances_last_seen_only()
    test_last_seen_never_moves_backwards()
    test_remove_and_clear()
    test_persistence_round_trip()
    test_stored_total_is_recomputed()
    test_corrupt_file_starts_empty()
    test_invalid_entries_skipped_valid_history_kept()
    test_missing_file_is_empty_state()
    test_write_failure_is_not_fatal()

    print("\n✅ ALL LEDGER TESTS PASSED")


if __name__ == "__main__":
    main()
