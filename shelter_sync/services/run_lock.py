"""
Single-flight guard for sync runs.

An in-process lock stops overlapping runs from the scheduler and the HTTP
trigger; on PostgreSQL a session-level advisory lock extends the guarantee
across processes sharing the same database.
"""
import hashlib
import threading
from contextlib import contextmanager

from sqlalchemy import text
from sqlalchemy.engine import Engine

from shelter_sync.services.exceptions import SyncInProgressError
from shelter_sync.utils.logger import log

_run_lock = threading.Lock()


def lock_id_from_key(key: str) -> int:
    """Map a lock name to a signed 64-bit Postgres advisory lock id"""
    digest = hashlib.sha256(key.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=True)


def is_running() -> bool:
    return _run_lock.locked()


@contextmanager
def _advisory_lock(engine: Engine, key: str):
    lock_id = lock_id_from_key(key)
    with engine.connect() as conn:
        acquired = bool(conn.execute(text("SELECT pg_try_advisory_lock(:lock_id)"), {"lock_id": lock_id}).scalar())
        if not acquired:
            raise SyncInProgressError(f"Advisory lock {key} held by another process")
        log.debug(f"Advisory lock acquired: {key} ({lock_id})")
        try:
            yield
        finally:
            released = bool(conn.execute(text("SELECT pg_advisory_unlock(:lock_id)"), {"lock_id": lock_id}).scalar())
            if not released:
                log.warning(f"Advisory lock release returned false: {key} ({lock_id})")


@contextmanager
def single_flight(engine: Engine, key: str = "shelter_sync"):
    """Hold the run lock for the duration of the block, failing fast if it is taken"""
    if not _run_lock.acquire(blocking=False):
        raise SyncInProgressError("A shelter sync is already running in this process")
    try:
        if engine.dialect.name == "postgresql":
            with _advisory_lock(engine, key):
                yield
        else:
            yield
    finally:
        _run_lock.release()
