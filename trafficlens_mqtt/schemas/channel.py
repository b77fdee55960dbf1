"""
Channel Frame Message Schema
============================

Relays one live-channel value (traffic rate or memory usage) over MQTT.

Message Flow:
    BackoffChannelClient → ChannelFrameMessage → ChannelFramePublisher → MQTT
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from .common import SCHEMA_VERSION, Timestamp


@dataclass(frozen=True)
class ChannelFrameMessage:
    """
    Attributes:
        timestamp: When the value was relayed
        stream: Source stream name ("traffic" or "memory")
        connected: Channel health at relay time
        value: Frame fields (zeros while disconnected)
    """
    timestamp: Timestamp
    stream: str
    connected: bool
    value: Dict[str, Any] = field(default_factory=dict)
    schema_version: str = SCHEMA_VERSION

    def __post_init__(self):
        if not self.stream:
            raise ValueError("stream cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema_version': self.schema_version,
            'timestamp': self.timestamp.to_dict(),
            'stream': self.stream,
            'connected': self.connected,
            'value': dict(self.value),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChannelFrameMessage':
        try:
            return cls(
                schema_version=data.get('schema_version', SCHEMA_VERSION),
                timestamp=Timestamp(value=data['timestamp']),
                stream=data['stream'],
                connected=bool(data['connected']),
                value=dict(data.get('value') or {}),
            )
        except KeyError as e:
            raise ValueError(f"Missing required ChannelFrameMessage field: {e}")
