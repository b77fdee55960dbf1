"""
trafficlens Processor Package

Telemetry service: snapshot polling, usage accounting, live channels and
MQTT publishing, configured from YAML.
"""

from trafficlens_processor.config import MQTTConfig, TelemetryConfig
from trafficlens_processor.poller import ConnectionsPoller
from trafficlens_processor.service import TelemetryService

__all__ = [
    "MQTTConfig",
    "TelemetryConfig",
    "ConnectionsPoller",
    "TelemetryService",
]
