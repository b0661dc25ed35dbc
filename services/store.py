"""
Persistent local store for cached Pokédex data.

A key-value store split into named partitions, backed by one SQLAlchemy table:

    pokemon         entity records by normalized name/id
    pokemon_list    list pages ("list-<limit>-<offset>") and the full listing ("fullList")
    search_results  search results by normalized query
    favorites       favorite ids (not a cache partition, survives clear_all)

Every row carries the write timestamp (ms since epoch) used for staleness
checks and a flag marking synthesized placeholder records.
"""
import json
import logging
import threading
import time
from collections import namedtuple
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    delete,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .core import CACHE_DB_URL
from .exceptions import CacheStoreError

logger = logging.getLogger(__name__)

POKEMON = 'pokemon'
POKEMON_LIST = 'pokemon_list'
SEARCH_RESULTS = 'search_results'
FAVORITES = 'favorites'

CACHE_PARTITIONS = (POKEMON, POKEMON_LIST, SEARCH_RESULTS)
PARTITIONS = CACHE_PARTITIONS + (FAVORITES,)

metadata = MetaData()

cache_entries = Table(
    'cache_entries',
    metadata,
    Column('partition', String(32), primary_key=True),
    Column('key', String(255), primary_key=True),
    Column('value', Text, nullable=False),
    Column('is_fallback', Boolean, nullable=False, default=False),
    Column('updated_at', BigInteger, nullable=False),
)

StoredEntry = namedtuple('StoredEntry', ['value', 'updated_at', 'is_fallback'])


def now_ms(clock=time.time) -> int:
    return int(clock() * 1000)


def make_engine(url: str = None):
    """Engine for the cache database. In-memory SQLite shares one connection across threads."""
    url = url or CACHE_DB_URL
    if url in ('sqlite://', 'sqlite:///:memory:'):
        return create_engine(url, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url)


class PersistentStore:
    """Partitioned key -> JSON record store. Last writer wins per key."""

    def __init__(self, engine, clock=time.time):
        self.engine = engine
        self.clock = clock
        # SQLite connections are not safe for interleaved use across threads
        self._lock = threading.Lock()
        metadata.create_all(engine, tables=[cache_entries])

    @staticmethod
    def _check_partition(partition: str):
        if partition not in PARTITIONS:
            raise CacheStoreError(f"Unknown partition: {partition}")

    def get_entry(self, partition: str, key: str) -> Optional[StoredEntry]:
        self._check_partition(partition)
        stmt = select(cache_entries.c.value, cache_entries.c.updated_at, cache_entries.c.is_fallback).where(
            cache_entries.c.partition == partition,
            cache_entries.c.key == key,
        )
        try:
            with self._lock, self.engine.connect() as conn:
                row = conn.execute(stmt).first()
            if row is None:
                return None
            return StoredEntry(json.loads(row.value), row.updated_at, bool(row.is_fallback))
        except (SQLAlchemyError, ValueError) as e:
            raise CacheStoreError(f"Failed reading {partition}/{key}: {e}") from e

    def get(self, partition: str, key: str):
        entry = self.get_entry(partition, key)
        return entry.value if entry else None

    def _write(self, conn, partition, key, value, is_fallback, updated_at):
        conn.execute(delete(cache_entries).where(
            cache_entries.c.partition == partition,
            cache_entries.c.key == key,
        ))
        conn.execute(insert(cache_entries).values(
            partition=partition,
            key=key,
            value=json.dumps(value, ensure_ascii=False),
            is_fallback=bool(is_fallback),
            updated_at=updated_at,
        ))

    def _stamp(self, value) -> int:
        if isinstance(value, dict):
            stamp = value.get('lastUpdated') or value.get('timestamp')
            if isinstance(stamp, int):
                return stamp
        return now_ms(self.clock)

    def put(self, partition: str, key: str, value, is_fallback: bool = False):
        """Insert or overwrite a record."""
        self._check_partition(partition)
        try:
            with self._lock, self.engine.begin() as conn:
                self._write(conn, partition, key, value, is_fallback, self._stamp(value))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed writing {partition}/{key}: {e}") from e

    def put_placeholder(self, partition: str, key: str, value) -> bool:
        """Persist a synthesized record unless a genuine record already holds the key.
        Returns False when the write was refused.
        """
        self._check_partition(partition)
        try:
            with self._lock, self.engine.begin() as conn:
                existing = conn.execute(select(cache_entries.c.is_fallback).where(
                    cache_entries.c.partition == partition,
                    cache_entries.c.key == key,
                )).first()
                if existing is not None and not existing.is_fallback:
                    logger.debug(f"Keeping genuine record for {partition}/{key} over placeholder")
                    return False
                self._write(conn, partition, key, value, True, self._stamp(value))
            return True
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed writing {partition}/{key}: {e}") from e

    def keys(self, partition: str) -> list:
        self._check_partition(partition)
        stmt = select(cache_entries.c.key).where(cache_entries.c.partition == partition).order_by(cache_entries.c.key)
        try:
            with self._lock, self.engine.connect() as conn:
                return [row[0] for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed listing {partition}: {e}") from e

    def clear(self, partition: str):
        self._check_partition(partition)
        try:
            with self._lock, self.engine.begin() as conn:
                conn.execute(delete(cache_entries).where(cache_entries.c.partition == partition))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed clearing {partition}: {e}") from e
        logger.info(f"Cleared store partition {partition}")

    def clear_all(self):
        """Empty every cache partition. The first failure aborts the remaining clears."""
        for partition in CACHE_PARTITIONS:
            self.clear(partition)
