"""
Usage View
==========

Read-side projections over ledger snapshots. Nothing here mutates.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from trafficlens_usage.models import UsageEntry


class SortField(str, Enum):
    IDENTIFIER = "identifier"
    UPLOAD = "upload"
    DOWNLOAD = "download"
    TOTAL = "total"
    DURATION = "duration"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


_SORT_KEYS: Dict[SortField, Callable[[UsageEntry], Any]] = {
    SortField.IDENTIFIER: lambda e: e.source_identifier,
    SortField.UPLOAD: lambda e: e.upload,
    SortField.DOWNLOAD: lambda e: e.download,
    SortField.TOTAL: lambda e: e.total,
    SortField.DURATION: lambda e: e.duration,
}


@dataclass(frozen=True)
class UsageSummary:
    """
    Aggregate statistics over all entries.

    The timestamp fields are None when the ledger is empty.
    """
    count: int = 0
    total_upload: int = 0
    total_download: int = 0
    total_combined: int = 0
    earliest_first_seen: Optional[float] = None
    latest_last_seen: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'count': self.count,
            'total_upload': self.total_upload,
            'total_download': self.total_download,
            'total_combined': self.total_combined,
        }
        if self.earliest_first_seen is not None:
            data['earliest_first_seen'] = self.earliest_first_seen
        if self.latest_last_seen is not None:
            data['latest_last_seen'] = self.latest_last_seen
        return data


def sort_entries(
    entries: Sequence[UsageEntry],
    field: Union[SortField, str] = SortField.TOTAL,
    order: Union[SortOrder, str] = SortOrder.DESC,
) -> List[UsageEntry]:
    """
    Stable sort by one field. Equal keys keep their input order in both
    directions.

    Raises:
        ValueError: If field or order is not a known value
    """
    field = SortField(field)
    order = SortOrder(order)
    # sorted(reverse=True) keeps equal elements in their original order
    return sorted(entries, key=_SORT_KEYS[field], reverse=order is SortOrder.DESC)


def summarize(entries: Sequence[UsageEntry]) -> UsageSummary:
    if not entries:
        return UsageSummary()

    total_upload = sum(e.upload for e in entries)
    total_download = sum(e.download for e in entries)
    return UsageSummary(
        count=len(entries),
        total_upload=total_upload,
        total_download=total_download,
        total_combined=total_upload + total_download,
        earliest_first_seen=min(e.first_seen for e in entries),
        latest_last_seen=max(e.last_seen for e in entries),
    )


class UsageView:
    """
    Projection bound to a ledger; every call reads a fresh snapshot.

    Usage:
        view = UsageView(ledger)
        rows = view.sorted("total", "desc")
        stats = view.summary()
    """

    def __init__(self, ledger):
        self._ledger = ledger

    def sorted(
        self,
        field: Union[SortField, str] = SortField.TOTAL,
        order: Union[SortOrder, str] = SortOrder.DESC,
    ) -> List[UsageEntry]:
        return sort_entries(self._ledger.entries(), field, order)

    def summary(self) -> UsageSummary:
        return summarize(self._ledger.entries())

    def top(
        self,
        n: int,
        field: Union[SortField, str] = SortField.TOTAL,
    ) -> List[UsageEntry]:
        """First ``n`` entries by ``field``, largest first."""
        return self.sorted(field, SortOrder.DESC)[:max(0, n)]
