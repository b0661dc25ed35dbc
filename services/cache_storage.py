"""
Named response caches for the offline worker.

Mirrors the browser Cache Storage model: a set of named caches, each mapping a
request URL to a stored response (status, headers, body). Persisted in the
same database as the data store so caches survive restarts.
"""
import json
import logging
import threading
import time
from collections import namedtuple

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
)
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import CacheStoreError
from .store import now_ms

logger = logging.getLogger(__name__)

metadata = MetaData()

response_cache = Table(
    'response_cache',
    metadata,
    Column('cache_name', String(64), primary_key=True),
    Column('url', String(1024), primary_key=True),
    Column('status', Integer, nullable=False),
    Column('headers', Text, nullable=False),
    Column('body', LargeBinary, nullable=False),
    Column('stored_at', BigInteger, nullable=False),
)

CachedResponse = namedtuple('CachedResponse', ['url', 'status', 'headers', 'body'])


class NamedCache:
    def __init__(self, storage, name: str):
        self.storage = storage
        self.name = name

    def match(self, url: str):
        return self.storage._match(url, self.name)

    def put(self, url: str, status: int, headers: dict, body: bytes):
        self.storage._put(self.name, url, status, headers, body)

    def keys(self) -> list:
        return self.storage._urls(self.name)


class CacheStorage:
    def __init__(self, engine, clock=time.time):
        self.engine = engine
        self.clock = clock
        self._lock = threading.Lock()
        metadata.create_all(engine, tables=[response_cache])

    def open(self, name: str) -> NamedCache:
        return NamedCache(self, name)

    def keys(self) -> list:
        """Names of every cache holding at least one response."""
        stmt = select(response_cache.c.cache_name).distinct().order_by(response_cache.c.cache_name)
        try:
            with self._lock, self.engine.connect() as conn:
                return [row[0] for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed listing response caches: {e}") from e

    def delete(self, name: str):
        try:
            with self._lock, self.engine.begin() as conn:
                conn.execute(delete(response_cache).where(response_cache.c.cache_name == name))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed deleting cache {name}: {e}") from e

    def match(self, url: str):
        """First stored response for the URL across all caches, or None."""
        return self._match(url, None)

    def _match(self, url, name):
        stmt = select(response_cache).where(response_cache.c.url == url)
        if name is not None:
            stmt = stmt.where(response_cache.c.cache_name == name)
        stmt = stmt.order_by(response_cache.c.cache_name)
        try:
            with self._lock, self.engine.connect() as conn:
                row = conn.execute(stmt).first()
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed matching {url}: {e}") from e
        if row is None:
            return None
        return CachedResponse(row.url, row.status, json.loads(row.headers), bytes(row.body))

    def _put(self, name, url, status, headers, body):
        try:
            with self._lock, self.engine.begin() as conn:
                conn.execute(delete(response_cache).where(
                    response_cache.c.cache_name == name,
                    response_cache.c.url == url,
                ))
                conn.execute(insert(response_cache).values(
                    cache_name=name,
                    url=url,
                    status=status,
                    headers=json.dumps(dict(headers or {})),
                    body=body or b'',
                    stored_at=now_ms(self.clock),
                ))
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed caching {url} in {name}: {e}") from e

    def _urls(self, name):
        stmt = select(response_cache.c.url).where(response_cache.c.cache_name == name).order_by(response_cache.c.url)
        try:
            with self._lock, self.engine.connect() as conn:
                return [row[0] for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise CacheStoreError(f"Failed listing {name}: {e}") from e
