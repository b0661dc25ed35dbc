import os
from concurrent.futures import ThreadPoolExecutor

# Constants
POKEAPI_BASE = os.environ.get('POKEAPI_BASE', 'https://pokeapi.co/api/v2')
SPRITE_BASE = 'https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/pokemon'
PLACEHOLDER_NAME = 'Pokémon {key}'

# Local API surface (the forwarding blueprint) and the origin the offline worker serves
PORT = int(os.environ.get('PORT', 3000))
POKEDEX_API_URL = os.environ.get('POKEDEX_API_URL') or f'http://localhost:{PORT}/api/pokemon'
APP_ORIGIN = os.environ.get('APP_ORIGIN') or f'http://localhost:{PORT}'

# Persistent store
CACHE_DB_URL = os.environ.get('CACHE_DB_URL', 'sqlite:///pokedex-cache.db')
CACHE_FRESHNESS_HOURS = float(os.environ.get('CACHE_FRESHNESS_HOURS', 24))
FULL_LIST_LIMIT = 1000

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()
OFFLINE_PRECACHE = os.environ.get('OFFLINE_PRECACHE', '1').lower() not in {'0', 'false', 'no', 'off'}

# Thread pool for parallel detail fetches (bounded to be polite to PokeAPI)
EXECUTOR = ThreadPoolExecutor(max_workers=8)


def sprite_url(poke_id) -> str:
    """Default front sprite for a Pokémon id (used for listings and placeholders)."""
    return f"{SPRITE_BASE}/{poke_id}.png"
