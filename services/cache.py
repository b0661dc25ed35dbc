import logging
import threading
import time
from datetime import timedelta

from .core import CACHE_FRESHNESS_HOURS
from .store import PersistentStore, now_ms

logger = logging.getLogger(__name__)


class CacheManager:
    """Session-lifetime caches shadowing the persistent store.

    Holds the in-memory maps (entities by key, search results by query, the full
    listing), the store handle and the freshness window. One instance is built per
    application (or per test) and injected into the data access layer.
    """

    def __init__(self, store: PersistentStore, freshness_window=None, clock=time.time):
        if freshness_window is None:
            freshness_window = timedelta(hours=CACHE_FRESHNESS_HOURS)
        if not isinstance(freshness_window, timedelta):
            freshness_window = timedelta(seconds=freshness_window)
        self.store = store
        self.freshness_window = freshness_window
        self.clock = clock
        self.pokemon = {}  # key -> entity record
        self.search_results = {}  # normalized query -> [entity record]
        self.full_list = []  # [basic reference]
        self._lock = threading.Lock()

    def now(self) -> int:
        return now_ms(self.clock)

    def is_stale(self, stamp) -> bool:
        """True when a write timestamp (ms) is older than the freshness window."""
        if not isinstance(stamp, (int, float)):
            return True
        window_ms = self.freshness_window.total_seconds() * 1000
        return self.now() - stamp > window_ms

    # --- in-memory maps ---
    def get_pokemon(self, key):
        with self._lock:
            return self.pokemon.get(key)

    def set_pokemon(self, key, record):
        with self._lock:
            self.pokemon[key] = record

    def get_search(self, key):
        with self._lock:
            return self.search_results.get(key)

    def set_search(self, key, results):
        with self._lock:
            self.search_results[key] = results

    def get_full_list(self):
        with self._lock:
            return list(self.full_list)

    def set_full_list(self, lst):
        with self._lock:
            self.full_list = list(lst)

    def clear_memory(self):
        with self._lock:
            self.pokemon.clear()
            self.search_results.clear()
            self.full_list = []

    def clear(self):
        """Empty every in-memory map and every store cache partition."""
        self.clear_memory()
        self.store.clear_all()
        logger.info("Pokédex caches cleared")

    def stats(self) -> dict:
        with self._lock:
            return {
                'pokemon': len(self.pokemon),
                'search_results': len(self.search_results),
                'full_list': len(self.full_list),
                'freshness_seconds': self.freshness_window.total_seconds(),
            }
