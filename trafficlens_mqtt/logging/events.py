"""
Structured Log Event Types
==========================

Bounded Context: Observability Event Taxonomy

Typed event names for the traffic telemetry components.

Event Naming Convention:
    <component>.<category>[.<action>]

    component: channel, usage, mqtt, error
    category: connected, closed, delta, reset
    action: applied, failed, ...

Example Log Query (Loki):
    {component="channel"} | json | event="channel.retry_exhausted"
"""

from enum import Enum


class LogEvent(str, Enum):
    """
    Typed log event names for structured logging.

    Categories:
    - channel.*: Live counter feed (WebSocket) lifecycle
    - usage.*: Delta tracking and ledger accounting
    - mqtt.*: MQTT broker interactions
    - error.*: Error conditions
    """

    # ========== Channel Events ==========
    CHANNEL_CONNECTING = "channel.connecting"
    """Connection attempt to the live counter stream started."""

    CHANNEL_OPEN = "channel.open"
    """Live counter stream connected."""

    CHANNEL_CLOSED = "channel.closed"
    """Live counter stream dropped (transient)."""

    CHANNEL_RECONNECTING = "channel.reconnecting"
    """Reconnect scheduled on the backoff ladder."""

    CHANNEL_RETRY_EXHAUSTED = "channel.retry_exhausted"
    """Retry budget exhausted, channel is terminal until restarted."""

    CHANNEL_STOPPED = "channel.stopped"
    """Channel torn down by its owner."""

    # ========== Usage Events ==========
    USAGE_DELTAS_APPLIED = "usage.deltas.applied"
    """Per-source deltas accumulated into the ledger."""

    USAGE_GLOBAL_RESET = "usage.global_reset"
    """Aggregate counters regressed, upstream service restart assumed."""

    USAGE_CLEARED = "usage.cleared"
    """Ledger emptied."""

    USAGE_ENTRY_REMOVED = "usage.entry.removed"
    """Single ledger entry deleted."""

    USAGE_LOADED = "usage.loaded"
    """Ledger restored from storage."""

    # ========== MQTT Events ==========
    MQTT_CONNECTED = "mqtt.connected"
    """MQTT broker connection established."""

    MQTT_DISCONNECTED = "mqtt.disconnected"
    """MQTT broker connection lost."""

    MQTT_PUBLISH_SUCCESS = "mqtt.publish.success"
    """Message successfully published to broker."""

    MQTT_PUBLISH_FAILED = "mqtt.publish.failed"
    """Message publication failed."""

    # ========== Error Events ==========
    MALFORMED_FRAME = "error.malformed_frame"
    """Channel payload could not be decoded; frame dropped."""

    CHANNEL_CONFIG_ERROR = "error.channel_config"
    """Channel endpoint configuration is unusable."""

    CHANNEL_ERROR = "error.channel"
    """Transport-level error reported by the WebSocket client."""

    STORAGE_WRITE_ERROR = "error.storage_write"
    """Ledger flush failed; in-memory state remains authoritative."""

    STORAGE_READ_ERROR = "error.storage_read"
    """Persisted ledger could not be read; starting empty."""

    SERIALIZATION_ERROR = "error.serialization"
    """Failed to serialize message to JSON."""

    MQTT_CONNECTION_ERROR = "error.mqtt_connection"
    """Failed to connect to MQTT broker."""

