"""
MQTT Publishers
==============

Bounded Context: Message Production

    BasePublisher: Abstract publisher (connection management)
    UsagePublisher: Usage report publisher
    ChannelFramePublisher: Live channel value relay
"""

from .base import BasePublisher
from .usage import UsagePublisher
from .channel import ChannelFramePublisher

__all__ = [
    'BasePublisher',
    'UsagePublisher',
    'ChannelFramePublisher',
]
