"""
Usage Accounting
================

Bounded Context: Per-source traffic accounting.

Responsibilities:
- Reconstruct incremental deltas from cumulative connection counters
- Accumulate deltas into persisted per-source totals
- Read-only projections (sorting, summary statistics)

Architecture:

    trafficlens_usage/
    ├── models.py    # ConnectionSnapshot, SnapshotBatch, UsageDelta, UsageEntry
    ├── tracker.py   # ConnectionDeltaTracker (ephemeral baselines)
    ├── ledger.py    # UsageLedger (sole writer of entries)
    ├── store.py     # UsageStore (atomic JSON file)
    └── view.py      # UsageView, sort_entries, summarize (pure)

Usage:

    tracker = ConnectionDeltaTracker()
    ledger = UsageLedger(store=UsageStore(Path("data/usage.json")))

    result = tracker.update(batch)
    if result.reset:
        ledger.clear_all()
    ledger.apply_deltas(result.deltas)

    UsageView(ledger).sorted("total", "desc")
"""

from trafficlens_usage.models import (
    ConnectionSnapshot,
    SnapshotBatch,
    TrackerResult,
    UsageDelta,
    UsageEntry,
)
from trafficlens_usage.tracker import ConnectionDeltaTracker, CounterBaseline
from trafficlens_usage.store import LedgerState, UsageStore
from trafficlens_usage.ledger import UsageLedger
from trafficlens_usage.view import (
    SortField,
    SortOrder,
    UsageSummary,
    UsageView,
    sort_entries,
    summarize,
)

__all__ = [
    "ConnectionSnapshot",
    "SnapshotBatch",
    "TrackerResult",
    "UsageDelta",
    "UsageEntry",
    "ConnectionDeltaTracker",
    "CounterBaseline",
    "LedgerState",
    "UsageStore",
    "UsageLedger",
    "SortField",
    "SortOrder",
    "UsageSummary",
    "UsageView",
    "sort_entries",
    "summarize",
]
