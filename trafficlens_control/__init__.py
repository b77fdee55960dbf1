"""
trafficlens_control - MQTT command-and-control for the telemetry service

  - CommandRegistry: explicit registration, payload field checks
  - MQTTControlPlane: command subscription (QoS 1), retained status
"""

from .registry import CommandRegistry, CommandNotAvailableError, CommandPayloadError, CommandSpec
from .plane import MQTTControlPlane

__all__ = [
    "CommandRegistry",
    "CommandNotAvailableError",
    "CommandPayloadError",
    "CommandSpec",
    "MQTTControlPlane",
]
