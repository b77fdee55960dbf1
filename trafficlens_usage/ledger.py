"""
Usage Ledger
============

Stateful accumulator for per-source usage totals.

Design:
- Private mutable map (source -> UsageEntry)
- Public immutable snapshots (entries(), get())
- Full map flushed through UsageStore after every mutation
- A lock serializes the poll thread and control-plane mutations
"""

import threading
import time
from typing import Dict, Iterable, List, Optional

from trafficlens_mqtt.logging import LogEvent, StructuredLogger, create_logger
from trafficlens_usage.models import UsageDelta, UsageEntry
from trafficlens_usage.store import LedgerState, UsageStore


class UsageLedger:
    """
    Accumulates UsageDelta batches into persisted UsageEntry records.

    The ledger is the only writer of entries. Storage failures are logged and
    swallowed; the in-memory map stays authoritative until the next
    successful flush.

    Usage:
        ledger = UsageLedger(store=UsageStore(Path("data/usage.json")))
        ledger.apply_deltas(result.deltas)

        entry = ledger.get("10.0.0.5")   # Immutable
    """

    def __init__(
        self,
        store: Optional[UsageStore] = None,
        logger: Optional[StructuredLogger] = None,
        clock=time.time,
    ):
        """
        Initialize the ledger, restoring persisted entries when a store is given.

        Args:
            store: Persistence backend (None keeps the ledger in memory only)
            logger: Structured logger (default: component "ledger")
            clock: Time source in epoch seconds
        """
        self._store = store
        self._logger = logger or create_logger("ledger")
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, UsageEntry] = {}
        self._details_expanded = False

        if store is not None:
            self._restore()

    def _restore(self) -> None:
        try:
            state = self._store.load()
        except (OSError, ValueError) as e:
            self._logger.error(
                event=LogEvent.STORAGE_READ_ERROR,
                message="Failed to read persisted ledger, starting empty",
                exc_info=e,
                metadata={'path': str(self._store.path)}
            )
            return

        self._entries = dict(state.entries)
        self._details_expanded = state.details_expanded
        for source, reason in state.rejected.items():
            self._logger.warning(
                event=LogEvent.STORAGE_READ_ERROR,
                message="Skipped invalid persisted entry",
                metadata={'path': str(self._store.path), 'source': source, 'error': reason}
            )
        self._logger.info(
            event=LogEvent.USAGE_LOADED,
            message="Restored usage ledger",
            metadata={
                'path': str(self._store.path),
                'entries': len(self._entries),
                'rejected': len(state.rejected),
            }
        )

    def _flush(self) -> None:
        """Persist the full map. Caller holds the lock."""
        if self._store is None:
            return
        state = LedgerState(
            entries=dict(self._entries),
            details_expanded=self._details_expanded,
        )
        try:
            self._store.save(state)
        except OSError as e:
            self._logger.error(
                event=LogEvent.STORAGE_WRITE_ERROR,
                message="Failed to flush ledger; keeping in-memory state",
                exc_info=e,
                metadata={'path': str(self._store.path)}
            )

    def apply_deltas(
        self,
        deltas: Iterable[UsageDelta],
        now: Optional[float] = None
    ) -> None:
        """
        Accumulate one tick's deltas.

        A positive delta creates the entry on first sight; a touch (zero
        delta) only advances ``last_seen`` of an existing entry.

        Args:
            deltas: Per-source deltas from ConnectionDeltaTracker
            now: Observation time in epoch seconds (default: clock())
        """
        now = self._clock() if now is None else now
        deltas = list(deltas)
        if not deltas:
            return

        with self._lock:
            created = 0
            for delta in deltas:
                existing = self._entries.get(delta.source_identifier)
                if existing is None:
                    if delta.is_touch:
                        continue
                    self._entries[delta.source_identifier] = UsageEntry(
                        source_identifier=delta.source_identifier,
                        upload=delta.upload_delta,
                        download=delta.download_delta,
                        first_seen=now,
                        last_seen=now,
                    )
                    created += 1
                else:
                    self._entries[delta.source_identifier] = UsageEntry(
                        source_identifier=existing.source_identifier,
                        upload=existing.upload + delta.upload_delta,
                        download=existing.download + delta.download_delta,
                        first_seen=existing.first_seen,
                        last_seen=max(existing.last_seen, now),
                    )
            self._flush()

        self._logger.debug(
            event=LogEvent.USAGE_DELTAS_APPLIED,
            message=f"Applied {len(deltas)} deltas",
            metadata={
                'sources': len(deltas),
                'created': created,
                'upload': sum(d.upload_delta for d in deltas),
                'download': sum(d.download_delta for d in deltas),
            }
        )

    def clear_all(self) -> None:
        """Empty the ledger (global reset or explicit clear)."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            self._flush()

        self._logger.info(
            event=LogEvent.USAGE_CLEARED,
            message="Usage ledger cleared",
            metadata={'removed': removed}
        )

    def remove(self, source_identifier: str) -> bool:
        """
        Delete one entry.

        Returns:
            True if an entry was removed, False if it was absent (no-op)
        """
        with self._lock:
            if source_identifier not in self._entries:
                return False
            del self._entries[source_identifier]
            self._flush()

        self._logger.info(
            event=LogEvent.USAGE_ENTRY_REMOVED,
            message="Usage entry removed",
            metadata={'source_identifier': source_identifier}
        )
        return True

    @property
    def details_expanded(self) -> bool:
        return self._details_expanded

    def set_details_expanded(self, expanded: bool) -> None:
        """Persist the companion 'details expanded' flag."""
        with self._lock:
            self._details_expanded = bool(expanded)
            self._flush()

    def get(self, source_identifier: str) -> Optional[UsageEntry]:
        return self._entries.get(source_identifier)

    def entries(self) -> List[UsageEntry]:
        """Snapshot of all entries in insertion order."""
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, source_identifier: str) -> bool:
        return source_identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"UsageLedger(entries={len(self._entries)})"
