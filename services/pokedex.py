"""
Data access layer for the Pokédex client.

Single Pokémon lookups run through an ordered chain of resolvers; each one
answers HIT (stop, record found), MISS (continue) or STALE (continue, but a
stored record was remembered as a last resort):

    memory -> store (fresh) -> network (online) -> store (stale) -> placeholder

Listing, search and comparison build on that chain.
"""
import logging
from concurrent.futures import as_completed
from enum import Enum

from .api_client import PokedexApiClient
from .cache import CacheManager
from .connectivity import ConnectivityMonitor
from .core import EXECUTOR, FULL_LIST_LIMIT, sprite_url
from .exceptions import CacheStoreError, NetworkUnavailable, PokedexException, PokemonNotFound
from .pokemon import pick_sprite
from .store import POKEMON, POKEMON_LIST, SEARCH_RESULTS
from .text_utils import normalize_key, parse_id, placeholder_name

logger = logging.getLogger(__name__)

FULL_LIST_KEY = 'fullList'
STALE_MARKER = '__stale'
FALLBACK_MARKER = '__fallback'
NOT_FOUND_MARKER = '__notFound'


class Outcome(Enum):
    HIT = 'hit'
    MISS = 'miss'
    STALE = 'stale'


def _unwrap(item, wrapper):
    if isinstance(item, dict):
        return (item.get(wrapper) or {}).get('name') or item.get('name')
    return item


def to_entity_record(data: dict, url: str, stamp: int) -> dict:
    """Normalize a Pokémon body into an entity record.
    Accepts the flat shape served by /api/pokemon as well as the nested upstream
    shape ({'types': [{'type': {'name': ...}}], 'stats': [{'stat': ..., 'base_stat': ...}]}).
    """
    pid = data.get('id')
    stats = []
    for s in data.get('stats') or []:
        if 'base' in s:
            stats.append({'name': s.get('name'), 'base': s.get('base')})
        else:
            stats.append({'name': (s.get('stat') or {}).get('name'), 'base': s.get('base_stat')})
    return {
        'id': pid,
        'name': data.get('name') or placeholder_name(pid),
        'url': url,
        'sprite': data.get('sprite') or pick_sprite(data.get('sprites')) or sprite_url(pid),
        'height': data.get('height') or 0,
        'weight': data.get('weight') or 0,
        'types': [_unwrap(t, 'type') for t in data.get('types') or []],
        'abilities': [_unwrap(a, 'ability') for a in data.get('abilities') or []],
        'stats': stats,
        'lastUpdated': stamp,
    }


def build_placeholder(identifier, key: str, url: str, stamp: int) -> dict:
    """Synthesized record for a Pokémon nothing is known about."""
    pid = parse_id(identifier) or parse_id(key)
    return {
        'id': pid,
        'name': placeholder_name(key),
        'url': url,
        'sprite': sprite_url(pid),
        'height': 0,
        'weight': 0,
        'types': [],
        'abilities': [],
        'stats': [],
        'lastUpdated': stamp,
        FALLBACK_MARKER: True,
    }


def is_fallback(record) -> bool:
    return bool(isinstance(record, dict) and record.get(FALLBACK_MARKER))


class Resolution:
    """State carried along the resolver chain for one lookup."""

    def __init__(self, identifier):
        self.identifier = identifier
        self.key = normalize_key(identifier)
        self.record = None
        self.stale = None
        self.not_found = False
        self.network_failed = False


class MemoryResolver:
    name = 'memory'

    def __init__(self, cache: CacheManager):
        self.cache = cache

    def resolve(self, res: Resolution) -> Outcome:
        record = self.cache.get_pokemon(res.key)
        if record is None:
            return Outcome.MISS
        res.record = record
        return Outcome.HIT


class StoreResolver:
    name = 'store'

    def __init__(self, cache: CacheManager):
        self.cache = cache

    def resolve(self, res: Resolution) -> Outcome:
        try:
            entry = self.cache.store.get_entry(POKEMON, res.key)
        except CacheStoreError as e:
            logger.warning(f"Error reading cache for {res.key}: {e}")
            return Outcome.MISS
        if entry is None or not isinstance(entry.value, dict) or entry.value.get('id') is None:
            return Outcome.MISS
        record = entry.value
        stale = self.cache.is_stale(record.get('lastUpdated'))
        if record.get(NOT_FOUND_MARKER) and not stale:
            # confirmed absence, still within the freshness window
            res.record = record
            return Outcome.HIT
        if entry.is_fallback or is_fallback(record) or stale:
            res.stale = record
            return Outcome.STALE
        self.cache.set_pokemon(res.key, record)
        res.record = record
        return Outcome.HIT


class NetworkResolver:
    name = 'network'

    def __init__(self, cache: CacheManager, client: PokedexApiClient, connectivity: ConnectivityMonitor):
        self.cache = cache
        self.client = client
        self.connectivity = connectivity

    def resolve(self, res: Resolution) -> Outcome:
        if not self.connectivity.is_online():
            return Outcome.MISS
        try:
            data = self.client.get_pokemon(res.key)
        except PokemonNotFound:
            logger.info(f"Pokémon {res.key} not found upstream")
            res.not_found = True
            return Outcome.MISS
        except NetworkUnavailable as e:
            logger.warning(f"Network error for {res.key}: {e}")
            res.network_failed = True
            return Outcome.MISS
        if not isinstance(data, dict) or data.get(STALE_MARKER) or data.get('id') is None:
            # fabricated by the offline worker, not real data
            res.network_failed = True
            return Outcome.MISS
        record = to_entity_record(data, self.client.entity_url(data['id']), self.cache.now())
        self.cache.set_pokemon(res.key, record)
        try:
            self.cache.store.put(POKEMON, res.key, record)
        except CacheStoreError as e:
            logger.warning(f"Could not persist {res.key}: {e}")
        res.record = record
        return Outcome.HIT


class StaleStoreResolver:
    name = 'stale-store'

    def __init__(self, connectivity: ConnectivityMonitor):
        self.connectivity = connectivity

    def resolve(self, res: Resolution) -> Outcome:
        if res.stale is None:
            return Outcome.MISS
        if self.connectivity.is_online() and not res.network_failed:
            return Outcome.MISS
        res.record = res.stale
        return Outcome.HIT


class PlaceholderResolver:
    name = 'placeholder'

    def __init__(self, cache: CacheManager, client: PokedexApiClient):
        self.cache = cache
        self.client = client

    def resolve(self, res: Resolution) -> Outcome:
        record = build_placeholder(res.identifier, res.key, self.client.entity_url(res.key), self.cache.now())
        if res.not_found:
            record[NOT_FOUND_MARKER] = True
        # a transient failure is not a confirmed absence, so it is not remembered
        if not res.network_failed:
            try:
                self.cache.store.put_placeholder(POKEMON, res.key, record)
            except CacheStoreError as e:
                logger.warning(f"Error saving fallback for {res.key}: {e}")
        res.record = record
        return Outcome.HIT


class PokedexService:
    """Lookups, listing, search and comparison over the layered caches."""

    def __init__(self, cache: CacheManager, client: PokedexApiClient, connectivity: ConnectivityMonitor,
                 executor=None):
        self.cache = cache
        self.client = client
        self.connectivity = connectivity
        self.executor = executor or EXECUTOR
        self.resolvers = [
            MemoryResolver(cache),
            StoreResolver(cache),
            NetworkResolver(cache, client, connectivity),
            StaleStoreResolver(connectivity),
            PlaceholderResolver(cache, client),
        ]

    def get_pokemon(self, identifier) -> dict:
        res = Resolution(identifier)
        for resolver in self.resolvers:
            outcome = resolver.resolve(res)
            if outcome is Outcome.HIT:
                logger.debug(f"{res.key} resolved by {resolver.name}")
                return res.record
        raise PokemonNotFound(res.key)

    def _resolve_many(self, identifiers) -> list:
        """Resolve details concurrently, dropping the ones that fail."""
        futures = {self.executor.submit(self.get_pokemon, i): i for i in identifiers}
        results = []
        for f in as_completed(futures):
            try:
                results.append(f.result())
            except Exception as e:
                logger.error(f"Error fetching details for {futures[f]}: {e}")
        return results

    def list_pokemon(self, limit: int = 10, offset: int = 0) -> dict:
        cache_key = f"list-{limit}-{offset}"
        try:
            page = self.client.get_page(limit, offset)
            if page.get(STALE_MARKER):
                if not self.connectivity.is_online():
                    raise NetworkUnavailable(f"No live data for page {cache_key}")
                logger.info(f"Page {cache_key} is stale, forcing refresh")
                page = self.client.get_page(limit, offset, fresh=True)
                if page.get(STALE_MARKER):
                    raise NetworkUnavailable(f"No live data for page {cache_key}")
        except NetworkUnavailable:
            try:
                cached = self.cache.store.get(POKEMON_LIST, cache_key)
            except CacheStoreError as e:
                logger.warning(f"Error reading cached page {cache_key}: {e}")
                cached = None
            if cached:
                return cached
            raise
        try:
            self.cache.store.put(POKEMON_LIST, cache_key, page)
        except CacheStoreError as e:
            logger.warning(f"Could not persist page {cache_key}: {e}")
        return page

    def get_full_list(self) -> list:
        """Every basic reference (id, name, url, sprite), loaded once and kept offline."""
        lst = self.cache.get_full_list()
        if lst:
            return lst
        try:
            stored = self.cache.store.get(POKEMON_LIST, FULL_LIST_KEY)
        except CacheStoreError as e:
            logger.warning(f"Error reading full list: {e}")
            stored = None
        if stored:
            self.cache.set_full_list(stored)
            return stored
        if not self.connectivity.is_online():
            return []
        try:
            page = self.client.get_page(FULL_LIST_LIMIT, 0)
        except PokedexException as e:
            logger.error(f"Error loading full Pokémon list: {e}")
            return []
        if page.get(STALE_MARKER):
            return []
        lst = [
            {
                'id': p['id'],
                'name': p['name'],
                'url': p.get('url') or self.client.entity_url(p['name']),
                'sprite': p.get('sprite') or sprite_url(p['id']),
            }
            for p in page.get('pokemon', [])
        ]
        self.cache.set_full_list(lst)
        try:
            self.cache.store.put(POKEMON_LIST, FULL_LIST_KEY, lst)
        except CacheStoreError as e:
            logger.warning(f"Could not persist full list: {e}")
        return lst

    def search(self, query) -> list:
        if query is None or not str(query).strip():
            return []
        key = normalize_key(query)
        online = self.connectivity.is_online()

        cached = self.cache.get_search(key)
        if cached is not None:
            return cached
        try:
            entry = self.cache.store.get_entry(SEARCH_RESULTS, key)
        except CacheStoreError as e:
            logger.warning(f"Error reading search cache for {key}: {e}")
            entry = None
        if entry is not None and (not online or not self.cache.is_stale(entry.updated_at)):
            results = entry.value.get('results', [])
            self.cache.set_search(key, results)
            return results
        if not online:
            return []

        if key.isdigit():
            candidates = [p for p in self.get_full_list() if key in str(p['id'])]
        else:
            candidates = [p for p in self.get_full_list() if key in p['name'].lower()]
        resolved = self._resolve_many([p['name'] for p in candidates])
        # placeholders stand in for failed lookups and are not search hits
        results = [p for p in resolved if not is_fallback(p)]
        if len(results) < len(resolved):
            logger.warning(f"Dropped {len(resolved) - len(results)} unresolved results for search {key}")
        # earlier matches first, then alphabetical; id matches all find() -1, so they sort by name
        results.sort(key=lambda p: (p['name'].lower().find(key), p['name']))

        self.cache.set_search(key, results)
        try:
            self.cache.store.put(SEARCH_RESULTS, key, {'results': results, 'timestamp': self.cache.now()})
        except CacheStoreError as e:
            logger.warning(f"Could not persist search {key}: {e}")
        return results

    def compare(self, first, second) -> dict:
        """Both records plus per-stat differences (first minus second), aligned by stat order."""
        f1 = self.executor.submit(self.get_pokemon, first)
        f2 = self.executor.submit(self.get_pokemon, second)
        pokemon1, pokemon2 = f1.result(), f2.result()
        stats2 = pokemon2.get('stats') or []
        differences = {}
        for index, stat in enumerate(pokemon1.get('stats') or []):
            if index < len(stats2):
                differences[stat['name']] = stat['base'] - stats2[index]['base']
        return {'pokemon1': pokemon1, 'pokemon2': pokemon2, 'differences': differences}

    def clear_cache(self):
        self.cache.clear()
