#!/usr/bin/env python3
"""
Telemetry Service - Entry Point
===============================

Starts the trafficlens telemetry service, which:
- Polls the controller's connection list and accumulates per-source usage
- Keeps live traffic/memory channels open with capped exponential backoff
- Publishes usage reports and channel frames to MQTT
- Responds to control commands via the MQTT control plane

Usage:
    python run_telemetry_service.py --config config/telemetry.yaml

Lifecycle:
    1. Load configuration from YAML
    2. Setup logging (console + file)
    3. Create control plane and publishers (when MQTT is enabled)
    4. Create TelemetryService and register command handlers
    5. Start service (non-blocking)
    6. Wait for stop signal (Ctrl+C or SIGTERM)
    7. Graceful shutdown
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from trafficlens_control import MQTTControlPlane
from trafficlens_mqtt import ChannelFramePublisher, UsagePublisher, create_logger
from trafficlens_processor import TelemetryConfig, TelemetryService


# ─────────────────────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────────────────────

def setup_logging(log_file: Optional[Path] = None, verbose: bool = False) -> logging.Logger:
    """
    Configure the root logger: stdout plus an optional file.

    Structured component loggers (trafficlens.*) write their own JSON lines
    and do not propagate here.
    """
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            *(
                [logging.FileHandler(log_file)]
                if log_file
                else []
            )
        ]
    )

    return logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Main Service
# ─────────────────────────────────────────────────────────────────────────────

class TelemetryApp:
    """
    Application wrapper for TelemetryService.

    Handles configuration loading, MQTT component wiring, signal handling
    and graceful shutdown.
    """

    def __init__(self, config_path: Path, log_file: Optional[Path] = None, verbose: bool = False):
        self.config_path = config_path
        self.logger = setup_logging(log_file, verbose)

        self.config: Optional[TelemetryConfig] = None
        self.control_plane: Optional[MQTTControlPlane] = None
        self.usage_publisher: Optional[UsagePublisher] = None
        self.channel_publisher: Optional[ChannelFramePublisher] = None
        self.service: Optional[TelemetryService] = None

        self._shutdown_requested = False

    def setup(self):
        self.logger.info("=" * 80)
        self.logger.info("🚀 trafficlens Telemetry Service - Starting")
        self.logger.info("=" * 80)

        self.logger.info(f"📄 Loading configuration: {self.config_path}")
        self.config = TelemetryConfig.from_yaml(self.config_path)
        self.logger.info(
            f"✅ Configuration loaded (service_id={self.config.service_id}, "
            f"controller={self.config.api.host}:{self.config.api.port})"
        )

        mqtt_cfg = self.config.mqtt_config
        if mqtt_cfg.enabled:
            topics = mqtt_cfg.topics(self.config.service_id)
            mqtt_logger = create_logger(component="mqtt_publisher")

            self.logger.info("🔌 Creating MQTT control plane")
            self.control_plane = MQTTControlPlane(
                broker_host=mqtt_cfg.broker,
                broker_port=mqtt_cfg.port,
                command_topic=topics['commands'],
                status_topic=topics['status'],
                client_id=f"trafficlens_{self.config.service_id}_control",
                username=mqtt_cfg.username,
                password=mqtt_cfg.password,
            )

            self.usage_publisher = UsagePublisher(
                broker_host=mqtt_cfg.broker,
                broker_port=mqtt_cfg.port,
                topic=topics['usage'],
                logger=mqtt_logger,
                client_id=f"trafficlens_{self.config.service_id}_usage",
                username=mqtt_cfg.username,
                password=mqtt_cfg.password,
                qos=mqtt_cfg.qos,
            )

            self.channel_publisher = ChannelFramePublisher(
                broker_host=mqtt_cfg.broker,
                broker_port=mqtt_cfg.port,
                topic_prefix=topics['channels'],
                logger=mqtt_logger,
                client_id=f"trafficlens_{self.config.service_id}_channels",
                username=mqtt_cfg.username,
                password=mqtt_cfg.password,
                qos=mqtt_cfg.qos,
            )
            self.logger.info(f"✅ MQTT wiring ready (broker={mqtt_cfg.broker}:{mqtt_cfg.port})")
        else:
            self.logger.info("MQTT disabled; running without control plane or publishers")

        self.service = TelemetryService(
            config=self.config,
            control_plane=self.control_plane,
            usage_publisher=self.usage_publisher,
            channel_publisher=self.channel_publisher,
        )
        self.service.setup()
        self.logger.info("=" * 80)

    def run(self):
        """Blocks until shutdown is requested."""
        if not self.service:
            raise RuntimeError("Service not initialized. Call setup() first.")

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        try:
            self.service.start()

            self.logger.info("✅ Service started successfully")
            self.logger.info("Press Ctrl+C to stop")
            self.logger.info("=" * 80)

            self.service.wait()

        except KeyboardInterrupt:
            self.logger.info("⚠️  KeyboardInterrupt received")
            self.shutdown()

        except Exception as e:
            self.logger.error(f"❌ Service error: {e}", exc_info=True)
            self.shutdown()
            sys.exit(1)

    def shutdown(self):
        """Stops the service; the service disconnects publishers and the control plane."""
        if self._shutdown_requested:
            self.logger.warning("⚠️  Shutdown already in progress")
            return

        self._shutdown_requested = True

        self.logger.info("=" * 80)
        self.logger.info("🛑 Shutting down telemetry service")
        self.logger.info("=" * 80)

        if self.service:
            try:
                self.service.stop()
            except Exception as e:
                self.logger.error(f"❌ Error stopping service: {e}")

        self.logger.info("✅ Shutdown complete")

    def _signal_handler(self, signum, frame):
        signal_name = signal.Signals(signum).name
        self.logger.info(f"⚠️  Received signal {signal_name} ({signum})")
        self.shutdown()
        sys.exit(0)


# ─────────────────────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────────────────────

def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="trafficlens Telemetry Service - usage ledger + live channels + MQTT",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_telemetry_service.py --config config/telemetry.yaml
  python run_telemetry_service.py --config config/telemetry.yaml --no-log-file -v
        """
    )

    parser.add_argument(
        '--config',
        type=Path,
        required=True,
        help='Path to telemetry configuration YAML file'
    )
    parser.add_argument(
        '--log-file',
        type=Path,
        default=Path('logs/telemetry.log'),
        help='Path to log file (default: logs/telemetry.log)'
    )
    parser.add_argument(
        '--no-log-file',
        action='store_true',
        help='Disable file logging (console only)'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug-level console logging'
    )

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)

    log_file = None if args.no_log_file else args.log_file

    if not args.config.exists():
        print(f"❌ Error: Configuration file not found: {args.config}", file=sys.stderr)
        sys.exit(1)

    app = TelemetryApp(
        config_path=args.config,
        log_file=log_file,
        verbose=args.verbose,
    )

    try:
        app.setup()
        app.run()
    except Exception as e:
        print(f"❌ Fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == '__main__':
    main()
