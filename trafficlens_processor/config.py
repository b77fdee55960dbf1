"""
Configuration schema for the telemetry service.

Controller API endpoint, polling cadence, ledger location, live streams and
MQTT publishing settings. Loaded from YAML and validated at startup.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple
import yaml

from trafficlens_channel import EndpointConfig, StreamName


@dataclass(frozen=True)
class MQTTConfig:
    """MQTT broker configuration."""

    broker: str = "localhost"
    port: int = 1883
    enabled: bool = True
    username: Optional[str] = None
    password: Optional[str] = None
    qos: int = 0  # Data plane QoS (fire-and-forget)

    usage_topic: str = "trafficlens/data/usage/{service_id}"
    channel_topic_prefix: str = "trafficlens/data/channels/{service_id}"
    command_topic: str = "trafficlens/control/{service_id}/commands"
    status_topic: str = "trafficlens/control/{service_id}/status"

    def __post_init__(self):
        if not 1 <= self.port <= 65535:
            raise ValueError(
                f"MQTT port must be in [1, 65535], got {self.port}"
            )

        if self.qos not in {0, 1, 2}:
            raise ValueError(
                f"MQTT QoS must be 0, 1, or 2, got {self.qos}"
            )

    def topics(self, service_id: str) -> dict:
        """All topic templates with ``{service_id}`` substituted."""
        return {
            'usage': self.usage_topic.format(service_id=service_id),
            'channels': self.channel_topic_prefix.format(service_id=service_id),
            'commands': self.command_topic.format(service_id=service_id),
            'status': self.status_topic.format(service_id=service_id),
        }


@dataclass(frozen=True)
class TelemetryConfig:
    """
    Main configuration for the telemetry service.

    Immutable after construction (frozen dataclass).
    """

    service_id: str
    api: EndpointConfig = field(default_factory=EndpointConfig)

    poll_interval_s: float = 1.0
    request_timeout_s: float = 5.0

    ledger_path: Path = Path("./data/usage.json")
    streams: Tuple[StreamName, ...] = (StreamName.TRAFFIC, StreamName.MEMORY)
    report_top_n: int = 20

    mqtt_config: MQTTConfig = field(default_factory=MQTTConfig)

    def __post_init__(self):
        if not self.service_id:
            raise ValueError("service_id cannot be empty")

        if not 0.1 <= self.poll_interval_s <= 3600:
            raise ValueError(
                f"poll_interval_s must be in [0.1, 3600], got {self.poll_interval_s}"
            )

        if self.request_timeout_s <= 0:
            raise ValueError(
                f"request_timeout_s must be > 0, got {self.request_timeout_s}"
            )

        if self.report_top_n < 0:
            raise ValueError(
                f"report_top_n must be >= 0, got {self.report_top_n}"
            )

        if len(set(self.streams)) != len(self.streams):
            raise ValueError(f"streams must not repeat, got {list(self.streams)}")

        if self.ledger_path.exists() and self.ledger_path.is_dir():
            raise ValueError(
                f"ledger_path must be a file, got directory: {self.ledger_path}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "TelemetryConfig":
        """
        Build from a parsed YAML mapping.

        Raises:
            ValueError: If a value fails validation or a stream is unknown
        """
        if not isinstance(data, dict):
            raise ValueError("Configuration root must be a mapping")

        api = EndpointConfig.from_dict(data.get("api") or {})
        mqtt_config = MQTTConfig(**(data.get("mqtt_config") or {}))

        streams_data = data.get("streams", [s.value for s in StreamName])
        try:
            streams = tuple(StreamName(s) for s in streams_data)
        except ValueError as e:
            raise ValueError(f"Unknown stream in config: {e}") from e

        return cls(
            service_id=data.get("service_id", ""),
            api=api,
            poll_interval_s=float(data.get("poll_interval_s", 1.0)),
            request_timeout_s=float(data.get("request_timeout_s", 5.0)),
            ledger_path=Path(data.get("ledger_path", "./data/usage.json")),
            streams=streams,
            report_top_n=int(data.get("report_top_n", 20)),
            mqtt_config=mqtt_config,
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "TelemetryConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            service_id: "home"

            api:
              host: "127.0.0.1"
              port: 9091
              secret: null
              secure: false

            poll_interval_s: 1.0
            ledger_path: "./data/usage.json"
            streams: ["traffic", "memory"]

            mqtt_config:
              enabled: true
              broker: "localhost"
              port: 1883
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)
