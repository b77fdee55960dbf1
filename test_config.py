"""
Test configuration loading
==========================

Usage:
    pytest test_config.py
"""

import tempfile
from pathlib import Path

import pytest

from trafficlens_channel import EndpointConfig, StreamName
from trafficlens_processor import MQTTConfig, TelemetryConfig


CONFIG_YAML = """
service_id: "home"
api:
  host: "192.168.1.1"
  port: 9090
  secret: "s3cret"
  secure: true
poll_interval_s: 2.5
ledger_path: "./data/test_usage.json"
streams: ["traffic"]
report_top_n: 5
mqtt_config:
  enabled: false
  broker: "mqtt.local"
  port: 8883
"""


def test_from_yaml():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "telemetry.yaml"
        path.write_text(CONFIG_YAML)
        config = TelemetryConfig.from_yaml(path)

    assert config.service_id == "home"
    assert config.api == EndpointConfig(host="192.168.1.1", port=9090, token="s3cret", secure=True)
    assert config.poll_interval_s == 2.5
    assert config.request_timeout_s == 5.0
    assert config.ledger_path == Path("./data/test_usage.json")
    assert config.streams == (StreamName.TRAFFIC,)
    assert config.report_top_n == 5
    assert config.mqtt_config.enabled is False
    assert config.mqtt_config.port == 8883
    print("✓ YAML configuration loaded")


def test_example_config_loads():
    config = TelemetryConfig.from_yaml(Path(__file__).parent / "config" / "telemetry.yaml")
    assert config.api.port == 9091
    assert config.streams == (StreamName.TRAFFIC, StreamName.MEMORY)
    print("✓ Shipped example config is valid")


def test_defaults():
    config = TelemetryConfig.from_dict({"service_id": "home"})
    assert config.api == EndpointConfig()
    assert config.api.stream_url("traffic") == "ws://127.0.0.1:9091/traffic"
    assert config.streams == (StreamName.TRAFFIC, StreamName.MEMORY)
    print("✓ Defaults point at the local controller on 9091")


@pytest.mark.parametrize("data", [
    {},
    {"service_id": "home", "poll_interval_s": 0},
    {"service_id": "home", "streams": ["traffic", "video"]},
    {"service_id": "home", "streams": ["traffic", "traffic"]},
    {"service_id": "home", "api": {"port": 70000}},
    {"service_id": "home", "api": {"host": ""}},
    {"service_id": "home", "report_top_n": -1},
    {"service_id": "home", "mqtt_config": {"qos": 3}},
])
def test_invalid_config_rejected(data):
    with pytest.raises(ValueError):
        TelemetryConfig.from_dict(data)


def test_mqtt_topics():
    topics = MQTTConfig().topics("home")
    assert topics == {
        'usage': "trafficlens/data/usage/home",
        'channels': "trafficlens/data/channels/home",
        'commands': "trafficlens/control/home/commands",
        'status': "trafficlens/control/home/status",
    }
    print("✓ Topic templates resolved")


def test_endpoint_urls_and_updates():
    endpoint = EndpointConfig(host="10.0.0.1", port=9091, token="a b&c")
    assert endpoint.stream_url("memory") == "ws://10.0.0.1:9091/memory?token=a%20b%26c"
    assert endpoint.http_url("/connections") == "http://10.0.0.1:9091/connections"
    assert endpoint.auth_headers() == {'Authorization': "Bearer a b&c"}

    updated = endpoint.with_updates({'command': 'update_endpoint', 'secret': None, 'secure': True})
    assert updated.token is None
    assert updated.stream_url("traffic") == "wss://10.0.0.1:9091/traffic"
    assert updated.auth_headers() == {}
    print("✓ Endpoint URL building and partial updates")


def test_auth_token_alias():
    endpoint = EndpointConfig.from_dict({"host": "10.0.0.1", "port": 9091, "authToken": "s3cret"})
    assert endpoint.token == "s3cret"
    assert endpoint.stream_url("traffic") == "ws://10.0.0.1:9091/traffic?token=s3cret"

    rotated = endpoint.with_updates({"authToken": "n3w"})
    assert rotated.token == "n3w"
    assert rotated.with_updates({"authToken": None}).token is None
    print("✓ authToken accepted as the secret's name")


def main():
    print("\n" + "=" * 60)
    print("CONFIGURATION TESTS")
    print("=" * 60)

    test_from_yaml()
    test_example_config_loads()
    test_defaults()
    test_mqtt_topics()
    test_endpoint_urls_and_updates()
    test_auth_token_alias()

    print("\n✅ ALL CONFIG TESTS PASSED")


if __name__ == "__main__":
    main()
