import logging
import threading

from .pokedex import PokedexService
from .store import FAVORITES, PersistentStore
from .text_utils import parse_id

logger = logging.getLogger(__name__)

FAVORITES_KEY = 'pokemonFavorites'


class FavoritesService:
    """Favorite Pokémon ids kept in the local store, in the order they were added."""

    def __init__(self, store: PersistentStore, pokedex: PokedexService):
        self.store = store
        self.pokedex = pokedex
        self._lock = threading.Lock()

    def ids(self) -> list:
        ids = self.store.get(FAVORITES, FAVORITES_KEY) or []
        return [i for i in ids if isinstance(i, int)]

    def _save(self, ids):
        self.store.put(FAVORITES, FAVORITES_KEY, ids)

    def toggle(self, pokemon_id) -> bool:
        """Add or remove an id. Returns True when it is a favorite afterwards."""
        pid = parse_id(pokemon_id)
        if pid <= 0:
            raise ValueError(f"Invalid Pokémon id: {pokemon_id!r}")
        with self._lock:
            ids = self.ids()
            if pid in ids:
                ids.remove(pid)
                added = False
            else:
                ids.append(pid)
                added = True
            self._save(ids)
        return added

    def remove(self, pokemon_id) -> list:
        pid = parse_id(pokemon_id)
        with self._lock:
            ids = [i for i in self.ids() if i != pid]
            self._save(ids)
        return ids

    def list(self) -> list:
        """Details for every favorite, skipping the ones that cannot be resolved."""
        records = []
        for pid in self.ids():
            try:
                records.append(self.pokedex.get_pokemon(pid))
            except Exception as e:
                logger.error(f"Error loading favorite {pid}: {e}")
        return records
