"""
ConnectionsPoller - snapshot source for the usage ledger.

Fetches ``GET /connections`` from the controller and parses it into a
SnapshotBatch. A failed poll is logged and skipped; the ledger path
tolerates missed ticks.
"""

import logging
from typing import Optional

import requests

from trafficlens_channel import EndpointConfig
from trafficlens_usage import SnapshotBatch

logger = logging.getLogger(__name__)


class ConnectionsPoller:
    """
    HTTP client for the controller's connection list.

    Example:
        poller = ConnectionsPoller(EndpointConfig(port=9091, token="s3cret"))
        batch = poller.fetch()
        if batch is not None:
            tracker.update(batch)
    """

    def __init__(
        self,
        endpoint: EndpointConfig,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ):
        self._endpoint = endpoint
        self.timeout = timeout
        self._session = session or requests.Session()
        self.failures = 0

    @property
    def endpoint(self) -> EndpointConfig:
        return self._endpoint

    def set_endpoint(self, endpoint: EndpointConfig) -> None:
        """Point subsequent polls at a new controller endpoint."""
        self._endpoint = endpoint

    def fetch(self) -> Optional[SnapshotBatch]:
        """
        Poll once.

        Returns:
            SnapshotBatch, or None when the controller was unreachable or
            answered with something that is not a snapshot
        """
        url = self._endpoint.http_url("connections")
        try:
            response = self._session.get(
                url,
                headers=self._endpoint.auth_headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            batch = SnapshotBatch.from_dict(response.json())
        except requests.RequestException as e:
            self.failures += 1
            logger.warning(f"⚠️ Snapshot poll failed ({url}): {e}")
            return None
        except ValueError as e:
            # Also covers JSON decode errors from response.json()
            self.failures += 1
            logger.warning(f"⚠️ Invalid snapshot payload from {url}: {e}")
            return None

        return batch

    def close(self) -> None:
        self._session.close()
