"""
Channel Frame Publisher
======================

Relays live-channel values to ``<topic_prefix>/<stream>``.
"""

from typing import Any, Dict, Optional

from .base import BasePublisher
from ..schemas import ChannelFrameMessage
from ..logging import StructuredLogger


class ChannelFramePublisher(BasePublisher):
    """
    One publisher for every stream; the topic is picked per message.

    Attributes:
        topic_prefix: Topic prefix, the stream name is appended
    """

    def __init__(
        self,
        broker_host: str,
        topic_prefix: str,
        logger: StructuredLogger,
        broker_port: int = 1883,
        client_id: str = "trafficlens_channel_publisher",
        username: Optional[str] = None,
        password: Optional[str] = None,
        qos: int = 0
    ):
        self.topic_prefix = topic_prefix.rstrip('/')
        super().__init__(
            broker_host=broker_host,
            broker_port=broker_port,
            topic=self.topic_prefix,
            client_id=client_id,
            logger=logger,
            username=username,
            password=password,
            qos=qos
        )

    def topic_for(self, stream: str) -> str:
        return f"{self.topic_prefix}/{stream}"

    def format_message(self, frame_msg: ChannelFrameMessage) -> Dict[str, Any]:
        return frame_msg.to_dict()

    def publish_frame(self, frame_msg: ChannelFrameMessage) -> bool:
        return self.publish(
            self.format_message(frame_msg),
            topic=self.topic_for(frame_msg.stream)
        )
