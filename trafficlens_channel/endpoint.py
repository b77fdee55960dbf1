"""
Controller endpoint configuration shared by the live channels and the poller.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union
from urllib.parse import quote

DEFAULT_API_PORT = 9091

# Accepted spellings of the shared secret, in precedence order
TOKEN_KEYS = ("token", "authToken", "secret")


@dataclass(frozen=True)
class EndpointConfig:
    """
    Where the controller API lives.

    Attributes:
        host: Controller hostname or address
        port: Controller port
        token: Shared secret (sent as ?token= on streams, Bearer on HTTP)
        secure: Use wss:// and https://
    """
    host: str = "127.0.0.1"
    port: int = DEFAULT_API_PORT
    token: Optional[str] = None
    secure: bool = False

    def __post_init__(self):
        if not isinstance(self.host, str) or not self.host.strip():
            raise ValueError(f"Endpoint host cannot be empty, got {self.host!r}")
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise ValueError(f"Endpoint port must be an integer, got {self.port!r}")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Endpoint port must be in [1, 65535], got {self.port}")
        if self.token is not None and not isinstance(self.token, str):
            raise ValueError("Endpoint token must be a string")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'EndpointConfig':
        """
        Build from a mapping. ``authToken`` and ``secret`` are accepted as
        aliases of ``token``.

        Raises:
            ValueError: If the mapping is not usable
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"Endpoint config must be a mapping, got {type(data).__name__}")
        token = next((data[k] for k in TOKEN_KEYS if data.get(k) is not None), None)
        return cls(
            host=data.get('host', "127.0.0.1"),
            port=data.get('port', DEFAULT_API_PORT),
            token=token or None,
            secure=bool(data.get('secure', False)),
        )

    @classmethod
    def coerce(cls, value: Union['EndpointConfig', Mapping[str, Any]]) -> 'EndpointConfig':
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)

    def with_updates(self, updates: Dict[str, Any]) -> 'EndpointConfig':
        """Copy with some fields replaced (validated again)."""
        merged = {
            'host': self.host,
            'port': self.port,
            'token': self.token,
            'secure': self.secure,
        }
        aliases = [k for k in TOKEN_KEYS if k in updates]
        if aliases:
            updates = {**updates, 'token': updates[aliases[0]]}
        merged.update({k: v for k, v in updates.items() if k in merged})
        return EndpointConfig.from_dict(merged)

    def stream_url(self, stream: str) -> str:
        """ws(s)://host:port/<stream>[?token=<secret>]"""
        scheme = "wss" if self.secure else "ws"
        url = f"{scheme}://{self.host}:{self.port}/{stream}"
        if self.token:
            url += f"?token={quote(self.token, safe='')}"
        return url

    def http_url(self, path: str) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}/{path.lstrip('/')}"

    def auth_headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {'Authorization': f"Bearer {self.token}"}
