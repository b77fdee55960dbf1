"""
Connection Delta Tracker
========================

Turns repeated cumulative counter snapshots into incremental per-source deltas.

Design:
- Encapsulates per-connection baselines (connection id -> last counters)
- update() returns the tick's deltas plus a reset flag
- Baselines are pruned by set difference once per tick
- Caller must synchronize if ticks can overlap
"""

from dataclasses import dataclass
from typing import Dict, Optional, Set, Tuple

from trafficlens_usage.models import SnapshotBatch, TrackerResult, UsageDelta


@dataclass(frozen=True)
class CounterBaseline:
    """Last observed cumulative counters of one connection."""
    upload: int
    download: int


class ConnectionDeltaTracker:
    """
    Tracks cumulative counters per connection and emits per-source deltas.

    Rules:
        - New connection: its whole cumulative value is the delta
        - Known connection: max(0, current - previous) per direction
        - Aggregate upload or download below the previous tick's value:
          upstream restart. Every baseline is dropped, baselines are re-seeded
          from this snapshot and no deltas are emitted (the consumer clears
          its totals).

    Usage:
        tracker = ConnectionDeltaTracker()

        # Each poll
        result = tracker.update(batch)
        if result.reset:
            ledger.clear_all()
        ledger.apply_deltas(result.deltas)
    """

    def __init__(self):
        self._baselines: Dict[str, CounterBaseline] = {}
        self._last_aggregate: Optional[Tuple[int, int]] = None

    @property
    def tracked_ids(self) -> Set[str]:
        """Connection ids currently holding a baseline."""
        return set(self._baselines)

    def baseline(self, connection_id: str) -> Optional[CounterBaseline]:
        return self._baselines.get(connection_id)

    def is_global_reset(self, batch: SnapshotBatch) -> bool:
        """True when either aggregate counter went backwards since the last tick."""
        if self._last_aggregate is None:
            return False
        last_upload, last_download = self._last_aggregate
        return (
            batch.aggregate_upload < last_upload
            or batch.aggregate_download < last_download
        )

    def update(self, batch: SnapshotBatch) -> TrackerResult:
        """
        Consume one snapshot.

        Args:
            batch: Full connection list plus aggregate counters

        Returns:
            TrackerResult with one delta per source seen this tick (zero
            deltas included as touches) and the reset flag
        """
        reset = self.is_global_reset(batch)
        self._last_aggregate = (batch.aggregate_upload, batch.aggregate_download)

        if reset:
            self._baselines.clear()

        grouped: Dict[str, Tuple[int, int]] = {}
        active_ids: Set[str] = set()

        for conn in batch.connections:
            if not conn.attributable:
                continue
            active_ids.add(conn.id)

            previous = self._baselines.get(conn.id)
            if previous is None:
                upload_delta, download_delta = conn.upload, conn.download
            else:
                upload_delta = max(0, conn.upload - previous.upload)
                download_delta = max(0, conn.download - previous.download)

            self._baselines[conn.id] = CounterBaseline(conn.upload, conn.download)

            up, down = grouped.get(conn.source_identifier, (0, 0))
            grouped[conn.source_identifier] = (up + upload_delta, down + download_delta)

        self.prune(active_ids)

        if reset:
            return TrackerResult(deltas=(), reset=True)

        deltas = tuple(
            UsageDelta(source_identifier=source, upload_delta=up, download_delta=down)
            for source, (up, down) in grouped.items()
        )
        return TrackerResult(deltas=deltas, reset=False)

    def prune(self, active_ids: Set[str]) -> None:
        """
        Remove baselines for connections not in the active set.

        Args:
            active_ids: Connection ids present in the current snapshot
        """
        stale_ids = set(self._baselines) - active_ids
        for connection_id in stale_ids:
            del self._baselines[connection_id]

    def reset(self) -> None:
        """Forget every baseline and the last aggregate sample."""
        self._baselines.clear()
        self._last_aggregate = None

    def __len__(self) -> int:
        return len(self._baselines)

    def __repr__(self) -> str:
        return f"ConnectionDeltaTracker(tracked={len(self._baselines)})"
