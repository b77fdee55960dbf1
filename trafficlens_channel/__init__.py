"""
Live Channel Package
====================

Bounded Context: Near-real-time counter feeds from the controller.

Public API
----------
    BackoffChannelClient, ChannelPhase, ChannelSessionState
    EndpointConfig
    TrafficFrame, MemoryFrame, StreamName, FrameDecodeError, decode_frame
    backoff_delay, ladder, MAX_RECONNECT_ATTEMPTS
"""

from .backoff import (
    BASE_DELAY_S,
    CAP_DELAY_S,
    MAX_RECONNECT_ATTEMPTS,
    backoff_delay,
    ladder,
    next_delay,
)
from .endpoint import EndpointConfig, DEFAULT_API_PORT
from .frames import (
    Frame,
    FrameDecodeError,
    MemoryFrame,
    StreamName,
    TrafficFrame,
    decode_frame,
)
from .client import BackoffChannelClient, ChannelPhase, ChannelSessionState

__all__ = [
    'BASE_DELAY_S',
    'CAP_DELAY_S',
    'MAX_RECONNECT_ATTEMPTS',
    'backoff_delay',
    'ladder',
    'next_delay',
    'EndpointConfig',
    'DEFAULT_API_PORT',
    'Frame',
    'FrameDecodeError',
    'MemoryFrame',
    'StreamName',
    'TrafficFrame',
    'decode_frame',
    'BackoffChannelClient',
    'ChannelPhase',
    'ChannelSessionState',
]
