"""SQLAlchemy-backed durable stores (SQLite file by default).

Two tables live in the same database:

- `offline_guides`: one row per resource key (the Persistent Local Store).
- `kv_entries`: small string values (TTL feed entries, cooldown markers).

Both are written with replace semantics: the row for a key is deleted and
re-inserted inside one transaction, so readers see either the old record or the
new one, never a mix.
"""

from __future__ import annotations

import json
import os
import shutil
import time
from typing import Any, Callable, List, Optional

from sqlalchemy import Column, Float, MetaData, String, Table, Text, create_engine, delete, insert, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from guide_sync.app_types import CacheRecord, StorageQuota, StorageSize
from guide_sync.errors import StorageWriteError
from guide_sync.storage.base import KeyValueStore, LocalStore, estimate_size_bytes, total_size_of
from utils.logging_utils import get_tagged_logger, mask_url

logger = get_tagged_logger(__name__, tag="storage/sql")

metadata = MetaData()

offline_guides = Table(
    "offline_guides",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("payload_json", Text, nullable=False),
    Column("saved_at", Float, nullable=False),
)

kv_entries = Table(
    "kv_entries",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
)


def build_engine(database_url: str) -> Engine:
    """Create an engine and make sure the directory for a SQLite file exists."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        directory = os.path.dirname(os.path.abspath(url.database))
        os.makedirs(directory, exist_ok=True)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        # stores are called from worker threads
        connect_args["check_same_thread"] = False
    engine_kwargs = {"connect_args": connect_args}
    if url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:"):
        # one shared connection, otherwise each thread sees its own empty database
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, future=True, **engine_kwargs)
    metadata.create_all(engine)
    logger.info("Opened guide store database", extra={"db_url": mask_url(database_url)})
    return engine


def _sqlite_file(engine: Engine) -> Optional[str]:
    """Path of the SQLite database file, or None for other backends/in-memory DBs."""
    url = engine.url
    if url.get_backend_name() != "sqlite" or not url.database or url.database == ":memory:":
        return None
    return os.path.abspath(url.database)


class SqlLocalStore(LocalStore):
    """Persistent Local Store on a relational database; survives restarts."""

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time) -> None:
        logger.debug("Initializing SqlLocalStore")
        self.engine = engine
        self._clock = clock

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SqlLocalStore":
        """Create an engine from a URL and build the store."""
        return cls(build_engine(database_url), **kwargs)

    @staticmethod
    def _row_to_record(row) -> CacheRecord:
        return CacheRecord(key=row.key, payload=json.loads(row.payload_json), saved_at=float(row.saved_at))

    def put(self, key: str, payload: Any) -> CacheRecord:
        saved_at = self._clock()
        try:
            payload_json = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"Payload for '{key}' is not JSON serializable", key=key) from exc
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(offline_guides).where(offline_guides.c.key == key))
                conn.execute(insert(offline_guides).values(key=key, payload_json=payload_json, saved_at=saved_at))
        except (SQLAlchemyError, OSError) as exc:
            raise StorageWriteError(f"Failed to persist '{key}': {exc}", key=key) from exc
        return CacheRecord(key=key, payload=json.loads(payload_json), saved_at=saved_at)

    def get(self, key: str) -> Optional[Any]:
        record = self.get_record(key)
        return record.payload if record else None

    def get_record(self, key: str) -> Optional[CacheRecord]:
        with self.engine.connect() as conn:
            row = conn.execute(select(offline_guides).where(offline_guides.c.key == key)).first()
        if row is None:
            return None
        try:
            return self._row_to_record(row)
        except ValueError:
            logger.warning("Dropping undecodable offline record", extra={"key": key})
            self.delete(key)
            return None

    def get_all(self) -> List[CacheRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(select(offline_guides).order_by(offline_guides.c.saved_at.desc())).all()
        out: List[CacheRecord] = []
        for row in rows:
            try:
                out.append(self._row_to_record(row))
            except ValueError:
                logger.warning("Skipping undecodable offline record", extra={"key": row.key})
        return out

    def delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(offline_guides).where(offline_guides.c.key == key))

    def clear(self) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(offline_guides))

    def estimate_size_bytes(self, record: CacheRecord) -> int:
        return estimate_size_bytes(record)

    def total_size(self) -> StorageSize:
        return total_size_of(self.get_all())

    def storage_quota(self) -> Optional[StorageQuota]:
        path = _sqlite_file(self.engine)
        if path is None:
            return None
        try:
            used = os.path.getsize(path) if os.path.exists(path) else 0
            disk = shutil.disk_usage(os.path.dirname(path))
        except OSError as exc:
            logger.warning("Storage quota unavailable: %s", exc)
            return None
        return StorageQuota(used=used, quota=used + disk.free)

    def is_available_offline(self, key: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(select(offline_guides.c.key).where(offline_guides.c.key == key)).first()
        return row is not None


class SqlKeyValueStore(KeyValueStore):
    """String key/value table; shares the engine with SqlLocalStore."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with self.engine.connect() as conn:
            row = conn.execute(select(kv_entries.c.value).where(kv_entries.c.key == key)).first()
        return row.value if row else None

    def set(self, key: str, value: str) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(kv_entries).where(kv_entries.c.key == key))
                conn.execute(insert(kv_entries).values(key=key, value=value))
        except (SQLAlchemyError, OSError) as exc:
            raise StorageWriteError(f"Failed to persist '{key}': {exc}", key=key) from exc

    def delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(delete(kv_entries).where(kv_entries.c.key == key))

    def keys(self, prefix: str = "") -> List[str]:
        query = select(kv_entries.c.key)
        if prefix:
            query = query.where(kv_entries.c.key.startswith(prefix, autoescape=True))
        with self.engine.connect() as conn:
            return [row.key for row in conn.execute(query)]
