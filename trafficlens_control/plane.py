"""
MQTTControlPlane - command reception and status reporting.

Commands arrive as JSON on the command topic (QoS 1) and are dispatched
through the CommandRegistry. Status goes out retained on the status topic,
so a client that subscribes late still sees the last state.

Threading:
  - paho-mqtt network loop runs in its own thread (loop_start/loop_stop)
  - Command handlers run in that thread; keep them short
"""

import json
import logging
import threading
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from trafficlens_mqtt import Timestamp
from .registry import CommandNotAvailableError, CommandPayloadError, CommandRegistry

logger = logging.getLogger(__name__)


class MQTTControlPlane:
    """
    MQTT Control Plane for receiving commands and publishing status.

    Example:
        control_plane = MQTTControlPlane(
            broker_host="localhost",
            broker_port=1883,
            command_topic="trafficlens/control/home/commands",
            status_topic="trafficlens/control/home/status",
            client_id="trafficlens_home_control"
        )
        control_plane.command_registry.register(
            'clear_usage', service.clear, "Clear every usage entry"
        )

        if control_plane.connect(timeout=5.0):
            print("Connected to MQTT broker")
    """

    def __init__(
        self,
        broker_host: str,
        broker_port: int,
        command_topic: str,
        status_topic: str,
        client_id: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
    ):
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.command_topic = command_topic
        self.status_topic = status_topic
        self.client_id = client_id

        self.client = mqtt.Client(mqtt.CallbackAPIVersion.VERSION2, client_id=client_id)
        self.client.on_connect = self._on_connect
        self.client.on_message = self._on_message
        self.client.on_disconnect = self._on_disconnect

        if username and password:
            self.client.username_pw_set(username, password)

        self._connected = threading.Event()
        self._running = False

        self.command_registry = CommandRegistry()
        self.commands_executed = 0
        self.commands_rejected = 0

    def connect(self, timeout: float = 5.0) -> bool:
        """
        Connect to the broker and wait for the subscription to be set up.

        Returns:
            True if connected within ``timeout``
        """
        try:
            logger.info(f"🔌 Connecting to MQTT broker: {self.broker_host}:{self.broker_port}")
            self.client.connect(self.broker_host, self.broker_port, keepalive=60)
            self.client.loop_start()
            self._running = True
        except (OSError, ValueError) as e:
            logger.error(f"❌ Error connecting to MQTT: {e}")
            return False

        if self._connected.wait(timeout=timeout):
            logger.info("✅ MQTT Control Plane connected")
            return True

        logger.error(f"❌ Connection timeout after {timeout}s")
        return False

    def disconnect(self) -> None:
        """Safe to call multiple times."""
        if not self._running:
            return
        logger.info("🔌 Disconnecting from MQTT broker")
        self.publish_status("disconnected")
        self.client.loop_stop()
        self.client.disconnect()
        self._running = False
        self._connected.clear()
        logger.info("✅ MQTT Control Plane disconnected")

    def build_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        message = {
            "status": status,
            "timestamp": Timestamp.now().to_dict(),
            "client_id": self.client_id,
        }
        if details:
            message["details"] = details
        return message

    def publish_status(self, status: str, details: Optional[Dict[str, Any]] = None) -> None:
        """
        Publish a retained status message (QoS 1).

        Args:
            status: Status keyword (e.g. "running", "usage_cleared")
            details: Optional JSON-serializable payload
        """
        message = self.build_status(status, details)
        try:
            self.client.publish(
                self.status_topic,
                json.dumps(message, default=str),
                qos=1,
                retain=True,
            )
            logger.debug(f"📤 Status published: {status}")
        except (TypeError, ValueError) as e:
            logger.error(f"❌ Error publishing status: {e}")

    # ===== MQTT Callbacks (run in MQTT thread) =====

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            logger.info(f"✅ Connected to broker (rc={reason_code})")
            client.subscribe(self.command_topic, qos=1)
            logger.info(f"📥 Subscribed to: {self.command_topic} (QoS 1)")
            self.publish_status("connected")
            self._connected.set()
        else:
            logger.error(f"❌ Connection failed (rc={reason_code})")
            self._connected.clear()

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code != 0:
            logger.warning(f"⚠️ Unexpected disconnection (rc={reason_code})")
        else:
            logger.info("✅ Disconnected from broker")
        self._connected.clear()

    def _on_message(self, client, userdata, msg):
        self.handle_payload(msg.payload)

    def handle_payload(self, payload: bytes) -> bool:
        """
        Decode one command message and dispatch it.

        Returns:
            True if a handler ran
        """
        try:
            command_data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"❌ Error decoding command: {payload!r} ({e})")
            self.commands_rejected += 1
            return False

        if not isinstance(command_data, dict):
            logger.warning(f"⚠️ Command must be a JSON object, got {type(command_data).__name__}")
            self.commands_rejected += 1
            return False

        command = str(command_data.get('command', '')).strip().lower()
        if not command:
            logger.warning("⚠️ Empty command received")
            self.commands_rejected += 1
            return False

        logger.info(f"🎯 Executing command: {command}")
        try:
            self.command_registry.execute(command, command_data)
        except CommandNotAvailableError as e:
            logger.warning(f"⚠️ {e}")
            self.commands_rejected += 1
            return False
        except CommandPayloadError as e:
            logger.warning(f"⚠️ {e}")
            self.commands_rejected += 1
            self.publish_status("command_rejected", {"command": command, "error": str(e)})
            return False
        except Exception as e:
            logger.error(f"❌ Command '{command}' failed: {e}", exc_info=True)
            self.commands_rejected += 1
            return False

        self.commands_executed += 1
        return True
