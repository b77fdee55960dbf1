"""
Usage Data Model
================

Value objects shared by the tracker, the ledger and the read-side view.

Design:
- Frozen dataclasses (snapshots are safe to hand across threads)
- Validation in __post_init__
- to_dict()/from_dict() for the persisted ledger layout and the
  external controller payload
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


def _counter(value: Any, name: str) -> int:
    """Coerce an external counter field; missing means 0."""
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return int(value)


@dataclass(frozen=True)
class ConnectionSnapshot:
    """
    One active connection as reported by the proxy core.

    Attributes:
        id: Opaque connection id, stable for the connection's lifetime
        source_identifier: Originating address, None when unknown
        upload: Cumulative bytes sent since the connection opened
        download: Cumulative bytes received since the connection opened

    Example:
        >>> ConnectionSnapshot(id="c1", source_identifier="10.0.0.5",
        ...                    upload=100, download=50)
    """
    id: str
    source_identifier: Optional[str]
    upload: int = 0
    download: int = 0

    def __post_init__(self):
        if not self.id:
            raise ValueError("ConnectionSnapshot id cannot be empty")
        if self.upload < 0 or self.download < 0:
            raise ValueError(
                f"Counters must be >= 0, got upload={self.upload}, download={self.download}"
            )

    @property
    def attributable(self) -> bool:
        """True when the connection carries a source identifier."""
        return bool(self.source_identifier)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConnectionSnapshot':
        """
        Deserialize one entry of the controller's ``connections`` array.

        Expected shape::

            {"id": "...", "upload": 123, "download": 456,
             "metadata": {"sourceIP": "10.0.0.5", ...}}

        Raises:
            ValueError: If the id is missing or a counter is not numeric
        """
        if not isinstance(data, dict):
            raise ValueError(f"Connection entry must be an object, got {type(data).__name__}")
        conn_id = data.get('id')
        if not isinstance(conn_id, str) or not conn_id:
            raise ValueError(f"Connection entry has no usable id: {conn_id!r}")

        metadata = data.get('metadata') or {}
        source = metadata.get('sourceIP') if isinstance(metadata, dict) else None

        return cls(
            id=conn_id,
            source_identifier=source or None,
            upload=_counter(data.get('upload'), 'upload'),
            download=_counter(data.get('download'), 'download'),
        )


@dataclass(frozen=True)
class SnapshotBatch:
    """
    Connection list plus the aggregate counters sampled at the same instant.

    The aggregates are only used to detect an upstream restart.
    """
    connections: Tuple[ConnectionSnapshot, ...] = ()
    aggregate_upload: int = 0
    aggregate_download: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SnapshotBatch':
        """
        Deserialize a ``GET /connections`` response body.

        A null ``connections`` field is an empty list. Individual entries that
        fail validation raise, the caller decides whether to skip the tick.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot payload must be an object, got {type(data).__name__}")
        raw_connections = data.get('connections') or []
        if not isinstance(raw_connections, list):
            raise ValueError("Snapshot 'connections' must be a list")
        return cls(
            connections=tuple(ConnectionSnapshot.from_dict(c) for c in raw_connections),
            aggregate_upload=_counter(data.get('uploadTotal'), 'uploadTotal'),
            aggregate_download=_counter(data.get('downloadTotal'), 'downloadTotal'),
        )


@dataclass(frozen=True)
class UsageDelta:
    """
    Incremental bytes attributed to one source during one tick.

    A zero/zero delta is a touch: the source is still active.
    """
    source_identifier: str
    upload_delta: int = 0
    download_delta: int = 0

    def __post_init__(self):
        if self.upload_delta < 0 or self.download_delta < 0:
            raise ValueError(
                f"Deltas must be >= 0, got {self.upload_delta}/{self.download_delta}"
            )

    @property
    def combined(self) -> int:
        return self.upload_delta + self.download_delta

    @property
    def is_touch(self) -> bool:
        return self.combined == 0


@dataclass(frozen=True)
class UsageEntry:
    """
    Accumulated usage for one source identifier.

    ``total`` is derived, so ``total == upload + download`` always holds.
    Timestamps are epoch seconds.
    """
    source_identifier: str
    upload: int
    download: int
    first_seen: float
    last_seen: float

    def __post_init__(self):
        if not self.source_identifier:
            raise ValueError("UsageEntry source_identifier cannot be empty")
        if self.upload < 0 or self.download < 0:
            raise ValueError("UsageEntry counters must be >= 0")
        if self.last_seen < self.first_seen:
            raise ValueError(
                f"last_seen ({self.last_seen}) precedes first_seen ({self.first_seen})"
            )

    @property
    def total(self) -> int:
        return self.upload + self.download

    @property
    def duration(self) -> float:
        """Seconds between first and last observation."""
        return self.last_seen - self.first_seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source_identifier': self.source_identifier,
            'upload': self.upload,
            'download': self.download,
            'total': self.total,
            'first_seen': self.first_seen,
            'last_seen': self.last_seen,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'UsageEntry':
        """
        Deserialize a persisted entry. A stored ``total`` is ignored and
        recomputed.

        Raises:
            ValueError: If required keys are missing or invalid
        """
        try:
            return cls(
                source_identifier=str(data['source_identifier']),
                upload=_counter(data['upload'], 'upload'),
                download=_counter(data['download'], 'download'),
                first_seen=float(data['first_seen']),
                last_seen=float(data['last_seen']),
            )
        except KeyError as e:
            raise ValueError(f"Missing required UsageEntry field: {e}")
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid UsageEntry data: {e}")


@dataclass(frozen=True)
class TrackerResult:
    """Output of one tracker tick."""
    deltas: Tuple[UsageDelta, ...] = field(default_factory=tuple)
    reset: bool = False
