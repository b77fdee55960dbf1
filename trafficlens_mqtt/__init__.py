"""
trafficlens MQTT Communication Package
======================================

Bounded Context: Observability and downstream messaging

Architecture:
- logging/: Structured JSON logging (used by every trafficlens component)
- schemas/: Immutable message structures
- publishers/: Usage report and live channel relays

Public API
----------
Schemas:
    Timestamp, UsageReportMessage, ChannelFrameMessage

Publishers:
    BasePublisher, UsagePublisher, ChannelFramePublisher

Logging:
    LogEvent, StructuredLogger, create_logger
"""

__version__ = "0.1.0"

from .schemas import (
    SCHEMA_VERSION,
    Timestamp,
    UsageReportMessage,
    ChannelFrameMessage,
)

from .publishers import (
    BasePublisher,
    UsagePublisher,
    ChannelFramePublisher,
)

from .logging import (
    LogEvent,
    StructuredLogger,
    create_logger,
)

__all__ = [
    '__version__',
    'SCHEMA_VERSION',
    'Timestamp',
    'UsageReportMessage',
    'ChannelFrameMessage',
    'BasePublisher',
    'UsagePublisher',
    'ChannelFramePublisher',
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
