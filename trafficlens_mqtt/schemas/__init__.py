"""
trafficlens MQTT Schemas
========================

Immutable, typed message structures published to the broker.

Design:
- Frozen dataclasses (immutability)
- to_dict() for JSON serialization, from_dict() for deserialization
- Schema versioning for evolution
"""

from .common import SCHEMA_VERSION, Timestamp
from .usage import UsageReportMessage
from .channel import ChannelFrameMessage

__all__ = [
    'SCHEMA_VERSION',
    'Timestamp',
    'UsageReportMessage',
    'ChannelFrameMessage',
]
