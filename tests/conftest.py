"""
Pytest fixtures for the Pokédex tests
"""
import json
import threading
from datetime import timedelta

import pytest
import requests
from requests.adapters import HTTPAdapter

from services.api_client import PokedexApiClient
from services.cache import CacheManager
from services.cache_storage import CacheStorage
from services.connectivity import ConnectivityMonitor
from services.offline import OfflineWorker, build_response
from services.pokedex import PokedexService
from services.store import PersistentStore, make_engine

API_URL = 'http://api.test/api/pokemon'
ORIGIN = 'http://app.test'


class FakeClock:
    """Controllable replacement for time.time"""

    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeNetwork(HTTPAdapter):
    """Transport adapter answering from a url -> response table.
    Unknown urls raise ConnectionError, as an unreachable host would.
    """

    def __init__(self):
        super().__init__()
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def add(self, url, body=None, status=200, content_type='application/json'):
        self.routes[url] = (status, body, content_type)

    def fail(self, url, exc=None):
        self.routes[url] = exc or requests.ConnectionError(f"Connection refused: {url}")

    def count(self, url):
        with self._lock:
            return self.calls.count(url)

    def send(self, request, **kwargs):
        with self._lock:
            self.calls.append(request.url)
        route = self.routes.get(request.url)
        if route is None:
            raise requests.ConnectionError(f"No route to {request.url}")
        if isinstance(route, Exception):
            raise route
        status, body, content_type = route
        if not isinstance(body, (bytes, str)):
            body = json.dumps(body)
        return build_response(request, status, body, content_type)


def flat_pokemon(pid, name, types=('normal',)):
    """A record as served by /api/pokemon/<name>"""
    return {
        'id': pid,
        'name': name,
        'height': 4,
        'weight': 60,
        'types': list(types),
        'sprite': f'https://sprites.test/{pid}.png',
        'abilities': ['static'],
        'stats': [
            {'name': 'hp', 'base': 35 + pid},
            {'name': 'attack', 'base': 55},
            {'name': 'defense', 'base': 40},
            {'name': 'special-attack', 'base': 50},
            {'name': 'special-defense', 'base': 50},
            {'name': 'speed', 'base': 90},
        ],
    }


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine():
    return make_engine('sqlite://')


@pytest.fixture
def store(engine, clock):
    return PersistentStore(engine, clock=clock)


@pytest.fixture
def cache(store, clock):
    return CacheManager(store, freshness_window=timedelta(hours=24), clock=clock)


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def network():
    return FakeNetwork()


@pytest.fixture
def session(network):
    s = requests.Session()
    s.mount('http://', network)
    s.mount('https://', network)
    return s


@pytest.fixture
def api_client(session):
    return PokedexApiClient(session, api_url=API_URL)


@pytest.fixture
def pokedex(cache, api_client, connectivity):
    return PokedexService(cache, api_client, connectivity)


@pytest.fixture
def cache_storage(engine, clock):
    return CacheStorage(engine, clock=clock)


@pytest.fixture
def notifications():
    return []


@pytest.fixture
def worker(cache_storage, connectivity, network, notifications):
    return OfflineWorker(
        cache_storage,
        connectivity,
        origin=ORIGIN,
        network=network,
        notifier=notifications.append,
        assets=['/', '/index.html', '/assets/pikachuError.jpg', '/assets/missing.png'],
    )


@pytest.fixture
def sample_pokemon():
    return {
        'pikachu': flat_pokemon(25, 'pikachu', types=('electric',)),
        'bulbasaur': flat_pokemon(1, 'bulbasaur', types=('grass', 'poison')),
        'charmander': flat_pokemon(4, 'charmander', types=('fire',)),
        'charizard': flat_pokemon(6, 'charizard', types=('fire', 'flying')),
        'pikachar': flat_pokemon(2000, 'pikachar', types=('electric', 'fire')),
    }


@pytest.fixture
def full_listing(sample_pokemon):
    """Body of /api/pokemon?limit=1000&offset=0"""
    return {
        'count': len(sample_pokemon),
        'pokemon': [
            {'id': p['id'], 'name': p['name'], 'url': f"https://pokeapi.test/api/v2/pokemon/{p['id']}/"}
            for p in sample_pokemon.values()
        ],
    }


@pytest.fixture
def api_routes(network, sample_pokemon, full_listing):
    """Serve every sample Pokémon by name, plus the full listing."""
    for name, record in sample_pokemon.items():
        network.add(f'{API_URL}/{name}', record)
    network.add(f'{API_URL}?limit=1000&offset=0', full_listing)
    return network
