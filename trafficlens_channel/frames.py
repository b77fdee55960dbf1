"""
Channel Frame Schemas
=====================

Decoded values pushed by the controller's live streams.

- traffic: {"up": <bytes/s>, "down": <bytes/s>}  (instantaneous rates)
- memory:  {"inuse": <bytes>, "oslimit": <bytes>}

Missing numeric fields default to 0. Anything else that is not a number, or
a payload that is not a JSON object, raises FrameDecodeError.
"""

import json
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Type, Union


class FrameDecodeError(ValueError):
    """Payload could not be decoded into the stream's frame type."""


class StreamName(str, Enum):
    TRAFFIC = "traffic"
    MEMORY = "memory"


def _number(data: Dict[str, Any], key: str) -> Union[int, float]:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise FrameDecodeError(f"Field '{key}' must be a number, got {value!r}")
    return value


@dataclass(frozen=True)
class TrafficFrame:
    """Instantaneous upload/download rate in bytes per second."""
    up: Union[int, float] = 0
    down: Union[int, float] = 0

    @classmethod
    def disconnected(cls) -> 'TrafficFrame':
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrafficFrame':
        return cls(up=_number(data, 'up'), down=_number(data, 'down'))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class MemoryFrame:
    """Core memory usage and the OS limit, in bytes."""
    inuse: Union[int, float] = 0
    oslimit: Union[int, float] = 0

    @classmethod
    def disconnected(cls) -> 'MemoryFrame':
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MemoryFrame':
        return cls(inuse=_number(data, 'inuse'), oslimit=_number(data, 'oslimit'))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


Frame = Union[TrafficFrame, MemoryFrame]

FRAME_TYPES: Dict[StreamName, Type] = {
    StreamName.TRAFFIC: TrafficFrame,
    StreamName.MEMORY: MemoryFrame,
}


def frame_type(stream: Union[StreamName, str]) -> Type:
    return FRAME_TYPES[StreamName(stream)]


def decode_frame(stream: Union[StreamName, str], payload: Union[str, bytes]) -> Frame:
    """
    Decode one text frame for ``stream``.

    Raises:
        FrameDecodeError: If the payload is not JSON, not an object, or has
            non-numeric fields
    """
    if isinstance(payload, bytes):
        try:
            payload = payload.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FrameDecodeError(f"Frame is not UTF-8: {e}") from e

    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError) as e:
        raise FrameDecodeError(f"Frame is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise FrameDecodeError(f"Frame must be a JSON object, got {type(data).__name__}")

    return frame_type(stream).from_dict(data)
