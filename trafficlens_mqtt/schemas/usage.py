"""
Usage Report Message Schema
===========================

Bounded Context: Usage Report Data Structures

Message published after every processed snapshot tick.

Message Flow:
    TelemetryService → UsageReportMessage → UsagePublisher → MQTT → dashboards

Example:
    {
        "schema_version": "1.0",
        "timestamp": "2026-10-19T15:30:45.123456+00:00",
        "service_id": "home",
        "reset": false,
        "summary": {"count": 2, "total_upload": 900, ...},
        "entries": [{"source_identifier": "10.0.0.5", "upload": 300, ...}]
    }
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .common import SCHEMA_VERSION, Timestamp


@dataclass(frozen=True)
class UsageReportMessage:
    """
    Snapshot of ledger state for downstream consumers.

    Attributes:
        timestamp: When the report was built
        service_id: Reporting service identifier
        reset: True when this tick detected an upstream restart
        summary: UsageSummary.to_dict() output
        entries: Top entries (UsageEntry.to_dict() output), largest first
        schema_version: Message schema version
    """
    timestamp: Timestamp
    service_id: str
    summary: Dict[str, Any]
    entries: List[Dict[str, Any]] = field(default_factory=list)
    reset: bool = False
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self):
        if not self.service_id:
            raise ValueError("service_id cannot be empty")
        if 'count' not in self.summary:
            raise ValueError("summary must include 'count'")

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'service_id': self.service_id,
            'reset': self.reset,
            'summary': dict(self.summary),
            'entries': [dict(e) for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UsageReportMessage':
        """
        Deserialize from dict.

        Raises:
            ValueError: If required keys missing
        """
        try:
            return cls(
                schema_version=data.get('schema_version', SCHEMA_VERSION),
                timestamp=Timestamp(value=data['timestamp']),
                service_id=data['service_id'],
                reset=bool(data.get('reset', False)),
                summary=dict(data['summary']),
                entries=[dict(e) for e in data.get('entries', [])],
            )
        except KeyError as e:
            raise ValueError(f"Missing required UsageReportMessage field: {e}")
