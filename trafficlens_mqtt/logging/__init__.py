"""
Structured Logging for trafficlens
==================================

Bounded Context: Observability

JSON-structured logging with a typed event taxonomy.

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from trafficlens_mqtt.logging import create_logger, LogEvent
    >>> logger = create_logger("ledger")
    >>> logger.info(
    ...     event=LogEvent.USAGE_DELTAS_APPLIED,
    ...     message="Applied 3 deltas",
    ...     metadata={'sources': 3}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
