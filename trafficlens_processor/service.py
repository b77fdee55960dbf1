"""
Telemetry Service - orchestrates the usage ledger and the live channels.

Architecture:
- Poll thread: ConnectionsPoller -> ConnectionDeltaTracker -> UsageLedger
  -> UsagePublisher
- One BackoffChannelClient per configured stream, each relaying frames to
  the ChannelFramePublisher
- Control commands arrive on the paho-mqtt thread and go through the
  CommandRegistry

Threading Model:
- Poll Thread (our thread, ticks never overlap)
- Channel socket threads and reconnect timers (BackoffChannelClient)
- Control Plane Thread (paho-mqtt internal, command handlers)

Thread Safety:
- tracker: only touched under _tick_lock
- ledger: internal lock (poll thread and control plane both mutate it)
"""

import logging
import threading
import time
from functools import partial
from typing import Any, Callable, Dict, Optional

from trafficlens_channel import BackoffChannelClient, EndpointConfig, Frame, StreamName
from trafficlens_mqtt import (
    ChannelFrameMessage,
    LogEvent,
    Timestamp,
    UsageReportMessage,
    create_logger,
)
from trafficlens_usage import (
    ConnectionDeltaTracker,
    SnapshotBatch,
    TrackerResult,
    UsageLedger,
    UsageStore,
    UsageView,
)
from trafficlens_processor.config import TelemetryConfig
from trafficlens_processor.poller import ConnectionsPoller

logger = logging.getLogger(__name__)


class TelemetryService:
    """
    Main telemetry service.

    Usage:
        config = TelemetryConfig.from_yaml("config.yaml")
        service = TelemetryService(
            config=config,
            control_plane=control_plane,        # optional
            usage_publisher=usage_publisher,    # optional
            channel_publisher=channel_publisher # optional
        )

        service.setup()
        service.start()
        service.wait()  # Blocks until stop()
    """

    def __init__(
        self,
        config: TelemetryConfig,
        control_plane=None,  # MQTTControlPlane
        usage_publisher=None,  # UsagePublisher
        channel_publisher=None,  # ChannelFramePublisher
        poller: Optional[ConnectionsPoller] = None,
        ledger: Optional[UsageLedger] = None,
        channel_factory: Callable[..., BackoffChannelClient] = BackoffChannelClient,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize telemetry service.

        Args:
            config: Service configuration
            control_plane: MQTT control plane for commands
            usage_publisher: Publisher for usage reports
            channel_publisher: Publisher for live channel frames
            poller: Snapshot source (default: HTTP poller on config.api)
            ledger: Usage ledger (default: persisted at config.ledger_path)
            channel_factory: BackoffChannelClient-compatible constructor
            clock: Time source in epoch seconds
        """
        self.config = config
        self.control_plane = control_plane
        self.usage_publisher = usage_publisher
        self.channel_publisher = channel_publisher
        self._clock = clock

        self.tracker = ConnectionDeltaTracker()
        if ledger is None:
            ledger = UsageLedger(store=UsageStore(config.ledger_path))
        self.ledger = ledger
        self.view = UsageView(self.ledger)
        if poller is None:
            poller = ConnectionsPoller(config.api, timeout=config.request_timeout_s)
        self.poller = poller
        self._endpoint = config.api
        self._events = create_logger("usage")

        self.channels: Dict[StreamName, BackoffChannelClient] = {
            stream: channel_factory(
                stream=stream,
                on_value=partial(self._on_channel_value, stream),
                on_health=partial(self._on_channel_health, stream),
            )
            for stream in config.streams
        }

        self._tick_lock = threading.Lock()
        # Guards channel start/restart against stop()
        self._lifecycle_lock = threading.Lock()
        self.stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        self._running = False

        self.ticks = 0
        self.resets = 0
        self.skipped_ticks = 0

    @property
    def endpoint(self) -> EndpointConfig:
        return self._endpoint

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def setup(self):
        """Register control handlers. Must be called before start()."""
        if self.control_plane is not None:
            self._setup_control_handlers()
        logger.info("Telemetry service setup complete")

    def _setup_control_handlers(self):
        registry = self.control_plane.command_registry

        registry.register(
            "clear_usage",
            self._handle_clear_usage,
            "Clear every usage entry"
        )
        registry.register(
            "remove_entry",
            self._handle_remove_entry,
            "Remove one source from the ledger",
            required=("source",)
        )
        registry.register(
            "update_endpoint",
            self._handle_update_endpoint,
            "Change controller host/port/secret (restarts channels)"
        )
        registry.register(
            "set_details",
            self._handle_set_details,
            "Persist the details-expanded flag",
            required=("expanded",)
        )
        registry.register(
            "status",
            self._handle_status,
            "Publish service status"
        )

        logger.info("Control handlers registered")

    def start(self):
        """
        Start the service (non-blocking).

        Lifecycle:
        1. Connect control plane
        2. Connect publishers
        3. Start live channels
        4. Start poll thread
        """
        if self._running:
            logger.warning("Service already running")
            return

        logger.info("Starting telemetry service")

        if self.control_plane is not None:
            if not self.control_plane.connect(timeout=5.0):
                raise RuntimeError("Failed to connect to MQTT broker (control plane)")

        for publisher in (self.usage_publisher, self.channel_publisher):
            if publisher is not None:
                publisher.connect()

        for client in self.channels.values():
            client.start(self._endpoint)

        self.stop_event.clear()
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            name="SnapshotPollThread",
            daemon=True
        )
        self._poll_thread.start()
        self._running = True

        if self.control_plane is not None:
            self.control_plane.publish_status("running")
        logger.info("✅ Telemetry service started")

    def wait(self):
        """Block until stop() is called."""
        if not self._running:
            logger.warning("Service not running")
            return
        self.stop_event.wait()

    def stop(self):
        """
        Stop the service gracefully.

        Lifecycle:
        1. Disconnect control plane (no more commands)
        2. Stop poll thread
        3. Stop live channels (timers cancelled, sockets closed)
        4. Disconnect publishers
        """
        if not self._running:
            logger.warning("Service not running")
            return

        logger.info("Stopping telemetry service")

        with self._lifecycle_lock:
            self.stop_event.set()

        if self.control_plane is not None:
            self.control_plane.publish_status("stopped")
            self.control_plane.disconnect()

        if self._poll_thread:
            self._poll_thread.join(timeout=self.config.request_timeout_s + 1.0)
            logger.info("Poll thread stopped")

        with self._lifecycle_lock:
            for client in self.channels.values():
                client.stop()

        for publisher in (self.usage_publisher, self.channel_publisher):
            if publisher is not None:
                publisher.disconnect()

        self.poller.close()
        self._running = False
        logger.info("✅ Telemetry service stopped")

    # ─────────────────────────────────────────────────────────────────────
    # Usage path (Poll Thread)
    # ─────────────────────────────────────────────────────────────────────

    def _poll_loop(self):
        logger.info("Snapshot poll loop started")
        while not self.stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"❌ Snapshot tick failed: {e}", exc_info=True)
            self.stop_event.wait(self.config.poll_interval_s)
        logger.info("Snapshot poll loop stopped")

    def tick(self) -> bool:
        """
        Poll once and process the snapshot.

        Returns:
            False when the poll was skipped (controller unreachable)
        """
        batch = self.poller.fetch()
        if batch is None:
            self.skipped_ticks += 1
            return False
        self.process_snapshot(batch)
        return True

    def process_snapshot(
        self,
        batch: SnapshotBatch,
        now: Optional[float] = None
    ) -> TrackerResult:
        """
        Feed one snapshot through tracker and ledger, then publish a report.

        Args:
            batch: Connection snapshot plus aggregate counters
            now: Observation time in epoch seconds (default: clock())
        """
        now = self._clock() if now is None else now

        with self._tick_lock:
            result = self.tracker.update(batch)
            if result.reset:
                self.resets += 1
                self._events.warning(
                    event=LogEvent.USAGE_GLOBAL_RESET,
                    message="Aggregate counters regressed; clearing usage ledger",
                    metadata={
                        'aggregate_upload': batch.aggregate_upload,
                        'aggregate_download': batch.aggregate_download,
                    }
                )
                self.ledger.clear_all()
            self.ledger.apply_deltas(result.deltas, now=now)
            self.ticks += 1

        self._publish_report(reset=result.reset)
        return result

    def build_report(self, reset: bool = False) -> UsageReportMessage:
        return UsageReportMessage(
            timestamp=Timestamp.now(),
            service_id=self.config.service_id,
            reset=reset,
            summary=self.view.summary().to_dict(),
            entries=[e.to_dict() for e in self.view.top(self.config.report_top_n)],
        )

    def _publish_report(self, reset: bool) -> None:
        if self.usage_publisher is None:
            return
        try:
            self.usage_publisher.publish_report(self.build_report(reset=reset))
        except Exception as e:
            logger.error(f"❌ Error publishing usage report: {e}", exc_info=True)

    # ─────────────────────────────────────────────────────────────────────
    # Channel path (channel threads)
    # ─────────────────────────────────────────────────────────────────────

    def _on_channel_value(self, stream: StreamName, frame: Frame) -> None:
        if self.channel_publisher is None:
            return
        client = self.channels.get(stream)
        self.channel_publisher.publish_frame(ChannelFrameMessage(
            timestamp=Timestamp.now(),
            stream=stream.value,
            connected=client.connected if client else False,
            value=frame.to_dict(),
        ))

    def _on_channel_health(self, stream: StreamName, healthy: bool) -> None:
        if healthy:
            logger.info(f"📶 Channel '{stream.value}' connected")
        else:
            logger.warning(f"⚠️ Channel '{stream.value}' disconnected")

    def update_endpoint(self, endpoint: EndpointConfig) -> bool:
        """
        Re-point poller and channels at a new controller endpoint.

        Every channel goes through a full stop + start.

        Returns:
            False if the service is stopping (nothing changed)
        """
        with self._lifecycle_lock:
            if self.stop_event.is_set():
                logger.warning("⚠️ Endpoint change ignored: service is stopping")
                return False
            self._endpoint = endpoint
            self.poller.set_endpoint(endpoint)
            for client in self.channels.values():
                client.restart(endpoint)
        logger.info(f"Controller endpoint changed: {endpoint.host}:{endpoint.port}")
        return True

    def get_status(self) -> Dict[str, Any]:
        return {
            'service_id': self.config.service_id,
            'endpoint': f"{self._endpoint.host}:{self._endpoint.port}",
            'ticks': self.ticks,
            'skipped_ticks': self.skipped_ticks,
            'resets': self.resets,
            'tracked_connections': len(self.tracker),
            'details_expanded': self.ledger.details_expanded,
            'summary': self.view.summary().to_dict(),
            'channels': {
                stream.value: client.get_stats()
                for stream, client in self.channels.items()
            },
        }

    # ─────────────────────────────────────────────────────────────────────
    # Command Handlers (called by Control Plane Thread)
    # ─────────────────────────────────────────────────────────────────────

    def _handle_clear_usage(self, command: Dict):
        with self._tick_lock:
            self.ledger.clear_all()
            self.tracker.reset()

        self.control_plane.publish_status("usage_cleared")
        logger.info("Usage ledger cleared by command")

    def _handle_remove_entry(self, command: Dict):
        source = str(command["source"])
        removed = self.ledger.remove(source)

        self.control_plane.publish_status(
            "entry_removed", {"source": source, "removed": removed}
        )
        logger.info(f"Usage entry removed: {source} (present={removed})")

    def _handle_update_endpoint(self, command: Dict):
        try:
            endpoint = self._endpoint.with_updates(command)
        except ValueError as e:
            logger.warning(f"⚠️ Rejected endpoint update: {e}")
            self.control_plane.publish_status("endpoint_rejected", {"error": str(e)})
            return

        if not self.update_endpoint(endpoint):
            self.control_plane.publish_status(
                "endpoint_rejected", {"error": "service is stopping"}
            )
            return

        self.control_plane.publish_status(
            "endpoint_updated", {"host": endpoint.host, "port": endpoint.port}
        )

    def _handle_set_details(self, command: Dict):
        expanded = bool(command["expanded"])
        self.ledger.set_details_expanded(expanded)

        self.control_plane.publish_status("details_set", {"expanded": expanded})

    def _handle_status(self, command: Dict):
        self.control_plane.publish_status("status", self.get_status())
