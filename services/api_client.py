import logging

import requests

from .core import POKEDEX_API_URL
from .exceptions import NetworkUnavailable, PokemonNotFound, UpstreamError

logger = logging.getLogger(__name__)


class PokedexApiClient:
    """Client for the local /api/pokemon surface.

    Requests go through `session`, which normally has the offline worker's
    intercepting adapter mounted, so responses may come from the edge cache or
    be placeholders flagged with `__stale`.
    """

    def __init__(self, session: requests.Session = None, api_url: str = POKEDEX_API_URL, timeout: int = 12):
        self.session = session or requests.Session()
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout

    def entity_url(self, key) -> str:
        return f"{self.api_url}/{key}"

    def _get_json(self, url, params=None, headers=None, key=None):
        try:
            r = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkUnavailable(f"Request to {url} failed: {e}") from e
        if r.status_code == 404:
            raise PokemonNotFound(key or url)
        if not r.ok:
            raise UpstreamError(f"{url} answered {r.status_code}", status=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamError(f"{url} returned an invalid JSON body", status=r.status_code) from e

    def get_pokemon(self, key) -> dict:
        return self._get_json(self.entity_url(key), key=key)

    def get_page(self, limit: int = 10, offset: int = 0, fresh: bool = False) -> dict:
        headers = {'Cache-Control': 'no-cache'} if fresh else None
        return self._get_json(self.api_url, params={'limit': limit, 'offset': offset}, headers=headers)
