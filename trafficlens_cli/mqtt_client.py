"""
MQTT client wrapper for sending commands to the telemetry service.

Handles MQTT connection, publishing, and disconnection.
"""

import json
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt


class MQTTCommandClient:
    """
    One-shot MQTT publisher for control commands (QoS 1).
    """

    def __init__(
        self,
        broker: str = "localhost",
        port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "",
    ):
        self.broker = broker
        self.port = port

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)

        if username and password:
            self.client.username_pw_set(username, password)

    def send_command(
        self,
        topic: str,
        command: Dict[str, Any],
        qos: int = 1,
        timeout: float = 5.0,
    ) -> None:
        """
        Publish one command and wait until the broker has it.

        Args:
            topic: Command topic (e.g. "trafficlens/control/home/commands")
            command: Command dictionary (JSON serialized)
            qos: Quality of Service (default: 1 for control commands)
            timeout: Seconds to wait for the publish to complete

        Raises:
            ConnectionError: If unable to reach the MQTT broker
            ValueError: If the command is not JSON serializable
            RuntimeError: If the broker did not acknowledge in time
        """
        try:
            payload = json.dumps(command)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid command data: {e}") from e

        try:
            self.client.connect(self.broker, self.port, keepalive=60)
        except OSError as e:
            raise ConnectionError(
                f"Unable to connect to MQTT broker at {self.broker}:{self.port}. "
                "Is mosquitto running?"
            ) from e

        self.client.loop_start()
        try:
            result = self.client.publish(topic, payload, qos=qos)
            result.wait_for_publish(timeout=timeout)
            if not result.is_published():
                raise RuntimeError(
                    f"Command not acknowledged within {timeout}s: {command.get('command')}"
                )
        finally:
            self.client.disconnect()
            self.client.loop_stop()

        print(f"✅ Command sent: {command.get('command', 'unknown')}")
