import logging
import threading

import requests

logger = logging.getLogger(__name__)


class ConnectivityMonitor:
    """Online/offline flag shared by the data access layer and the offline worker."""

    def __init__(self, online: bool = True):
        self._online = bool(online)
        self._lock = threading.Lock()

    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool):
        online = bool(online)
        with self._lock:
            changed = online != self._online
            self._online = online
        if changed:
            logger.info(f"Connection status: {'online' if online else 'offline'}")

    def check(self, url: str, timeout: float = 3) -> bool:
        """Probe a URL and record whether it answered at all."""
        try:
            requests.head(url, timeout=timeout, allow_redirects=True)
            reachable = True
        except requests.RequestException as e:
            logger.debug(f"Connectivity probe to {url} failed: {e}")
            reachable = False
        self.set_online(reachable)
        return reachable
