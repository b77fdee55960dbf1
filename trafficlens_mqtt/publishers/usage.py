"""
Usage Report Publisher
=====================

Publishes a UsageReportMessage after each processed snapshot.

Example:
    >>> publisher = UsagePublisher(
    ...     broker_host="localhost",
    ...     topic="trafficlens/data/usage/home",
    ...     logger=create_logger("mqtt_publisher")
    ... )
    >>> publisher.connect()
    >>> publisher.publish_report(report)
"""

from typing import Any, Dict, Optional

from .base import BasePublisher
from ..schemas import UsageReportMessage
from ..logging import StructuredLogger


class UsagePublisher(BasePublisher):
    """Publisher for usage reports (retained, so late subscribers get the last one)."""

    def __init__(
        self,
        broker_host: str,
        topic: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: str = "trafficlens_usage_publisher",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=topic,
            client_id=client_id,
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )

    def format_message(self, report: UsageReportMessage) -> Dict[str, Any]:
        return report.to_dict()

    def publish_report(self, report: UsageReportMessage) -> bool:
        return self.publish(self.format_message(report), retain=True)
