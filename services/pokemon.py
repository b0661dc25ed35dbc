import logging
from urllib.parse import urlparse

import requests

from .core import POKEAPI_BASE
from .text_utils import normalize_key

logger = logging.getLogger(__name__)


def _fetch_json(url: str, params=None, timeout: int = 12):
    r = requests.get(url, params=params, timeout=timeout)
    r.raise_for_status()
    return r.json()


def _id_from_url(u: str):
    try:
        path = urlparse(u or '').path.strip('/').split('/')
        return int(path[-1]) if path[-1].isdigit() else None
    except (IndexError, ValueError):
        return None


def pick_sprite(sprites) -> str:
    """Front sprite, falling back to official artwork, then to any other front image."""
    sprites = sprites or {}
    art = sprites.get('front_default')
    if not art:
        art = (
            sprites.get('other', {})
            .get('official-artwork', {})
            .get('front_default')
        )
    if not art:
        for k in (sprites.get('other') or {}).values():
            if isinstance(k, dict) and k.get('front_default'):
                art = k['front_default']
                break
    return art or ''


def flatten_pokemon(j: dict) -> dict:
    """Reshape an upstream /pokemon record into the flat view served by the API.
    Unwraps the nested type/ability/stat objects:
      {'types': [{'type': {'name': 'electric'}}]} -> {'types': ['electric']}
      {'stats': [{'stat': {'name': 'hp'}, 'base_stat': 35}]} -> {'stats': [{'name': 'hp', 'base': 35}]}
    """
    return {
        'id': j.get('id'),
        'name': j.get('name'),
        'height': j.get('height'),
        'weight': j.get('weight'),
        'types': [(t.get('type') or {}).get('name') for t in j.get('types') or []],
        'sprite': pick_sprite(j.get('sprites')),
        'abilities': [(a.get('ability') or {}).get('name') for a in j.get('abilities') or []],
        'stats': [
            {'name': (s.get('stat') or {}).get('name'), 'base': s.get('base_stat')}
            for s in j.get('stats') or []
        ],
    }


def fetch_pokemon(name) -> dict:
    """Flattened record for a Pokémon name or id. Raises requests.HTTPError on 404."""
    key = normalize_key(name)
    j = _fetch_json(f"{POKEAPI_BASE}/pokemon/{key}", timeout=20)
    return flatten_pokemon(j)


def fetch_pokemon_page(limit: int = 10, offset: int = 0) -> dict:
    """Page of basic references: { 'count': int, 'pokemon': [{ 'id', 'name', 'url' }] }.
    Ids come from the upstream resource url; position in the page is the fallback.
    """
    data = _fetch_json(f"{POKEAPI_BASE}/pokemon", params={'limit': limit, 'offset': offset}, timeout=20)
    lst = []
    for index, item in enumerate(data.get('results', [])):
        u = item.get('url') or ''
        pid = _id_from_url(u) or offset + index + 1
        lst.append({'id': pid, 'name': item.get('name'), 'url': u})
    return {'count': data.get('count', 0), 'pokemon': lst}


def fetch_pokemon_abilities(name) -> dict:
    key = normalize_key(name)
    j = _fetch_json(f"{POKEAPI_BASE}/pokemon/{key}", timeout=20)
    abilities = [(a.get('ability') or {}).get('name') for a in j.get('abilities') or []]
    return {'name': j.get('name'), 'abilities': abilities}
