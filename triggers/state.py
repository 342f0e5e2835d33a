"""
Consolidator State Management
Typed access to the three durable values a run depends on:
    last_processed_iso  -> watermark (ISO-8601 string)
    recent_ids          -> bounded recency list (JSON array)
    consolidated_doc_id -> destination Google Doc id

Two backends share the same key-value primitives:
    FileStateStore      JSON file, every write is one atomic replace
    PostgresStateStore  consolidation_state table, every write is one transaction

Reads and writes raise on failure: a defaulted watermark would reprocess
the whole label.
"""
import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import psycopg2
import psycopg2.pool

logger = logging.getLogger("consolidator.state")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

WATERMARK_KEY = "last_processed_iso"
RECENT_IDS_KEY = "recent_ids"
DOCUMENT_KEY = "consolidated_doc_id"


class RunInProgressError(RuntimeError):
    """Another run holds the consolidation lock."""


def parse_watermark(value: Optional[str]) -> datetime:
    """ISO-8601 string → timezone-aware UTC datetime. Missing means epoch."""
    if not value:
        return EPOCH
    # fromisoformat() before 3.11 does not accept a trailing "Z"
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_watermark(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


class StateStore:
    """Typed state interface. Backends implement _get / _put_many / run_lock."""

    # -------------------------------------------------------
    # Backend primitives
    # -------------------------------------------------------

    def _get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _put_many(self, values: Dict[str, Optional[str]]):
        """Write all values atomically. A None value deletes the key."""
        raise NotImplementedError

    def run_lock(self):
        """Context manager giving one run exclusive access to the state."""
        raise NotImplementedError

    # -------------------------------------------------------
    # Watermark
    # -------------------------------------------------------

    def has_watermark(self) -> bool:
        return self._get(WATERMARK_KEY) is not None

    def get_watermark(self) -> datetime:
        return parse_watermark(self._get(WATERMARK_KEY))

    def seed_watermark(self):
        """Initialize the watermark to epoch if it was never written."""
        if not self.has_watermark():
            self._put_many({WATERMARK_KEY: format_watermark(EPOCH)})
            logger.info(f"Watermark seeded: {format_watermark(EPOCH)}")

    # -------------------------------------------------------
    # Recency list
    # -------------------------------------------------------

    def get_recent_ids(self) -> List[str]:
        raw = self._get(RECENT_IDS_KEY)
        if not raw:
            return []
        ids = json.loads(raw)
        if not isinstance(ids, list):
            raise ValueError(f"Corrupt {RECENT_IDS_KEY} entry: expected a JSON array")
        return [str(i) for i in ids]

    # -------------------------------------------------------
    # Destination document
    # -------------------------------------------------------

    def get_document_id(self) -> Optional[str]:
        return self._get(DOCUMENT_KEY) or None

    def set_document_id(self, doc_id: str):
        self._put_many({DOCUMENT_KEY: doc_id})
        logger.info(f"Consolidated doc id stored: {doc_id}")

    # -------------------------------------------------------
    # Commit boundary
    # -------------------------------------------------------

    def commit_progress(self, watermark: datetime, recent_ids: List[str]):
        """Write watermark and recency list together, or neither."""
        self._put_many({
            WATERMARK_KEY: format_watermark(watermark),
            RECENT_IDS_KEY: json.dumps(list(recent_ids)),
        })
        logger.info(
            f"Progress committed: watermark={format_watermark(watermark)} | "
            f"recent_ids={len(recent_ids)}"
        )

    def reset_progress(self):
        """Watermark back to epoch, recency list cleared, doc id untouched."""
        self._put_many({
            WATERMARK_KEY: format_watermark(EPOCH),
            RECENT_IDS_KEY: None,
        })
        logger.info("Progress reset: watermark=epoch, recent_ids cleared")


class FileStateStore(StateStore):
    """JSON file state, for local runs."""

    def __init__(self, path):
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Corrupt state file {self.path}: expected a JSON object")
        return data

    def _get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def _put_many(self, values: Dict[str, Optional[str]]):
        data = self._load()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write to a sibling temp file then rename, so readers never see half a file
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @contextmanager
    def run_lock(self):
        """Non-blocking flock on a sibling .lock file, shared by every process using this path."""
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_path, "w", encoding="utf-8")
        try:
            try:
                fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                raise RunInProgressError(
                    f"Consolidation already running (lock file {self.lock_path})"
                ) from None
            logger.debug(f"Acquired run lock {self.lock_path}")
            try:
                yield
            finally:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
                logger.debug(f"Released run lock {self.lock_path}")
        finally:
            lock_file.close()


class PostgresStateStore(StateStore):
    """PostgreSQL state via a psycopg2 connection pool."""

    def __init__(self, dsn_params: dict, table: str = "consolidation_state",
                 lock_key: int = 72_101_337, pool=None):
        self.table = table
        self.lock_key = lock_key
        self._pool = pool or psycopg2.pool.SimpleConnectionPool(minconn=1, maxconn=3, **dsn_params)
        self._ensure_table()

    @contextmanager
    def _conn(self):
        conn = self._pool.getconn()
        try:
            yield conn
        finally:
            self._pool.putconn(conn)

    def _ensure_table(self):
        """Create the key-value table if it doesn't exist."""
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(f"""
                    CREATE TABLE IF NOT EXISTS {self.table} (
                        key         TEXT PRIMARY KEY,
                        value       TEXT NOT NULL,
                        updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
                    )
                """)
            conn.commit()
        logger.info(f"State table verified: {self.table}")

    def _get(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(f"SELECT value FROM {self.table} WHERE key = %s", (key,))
                    row = cur.fetchone()
            finally:
                # End the read transaction so the pooled connection is idle
                conn.rollback()
        return row[0] if row else None

    def _put_many(self, values: Dict[str, Optional[str]]):
        with self._conn() as conn:
            try:
                with conn.cursor() as cur:
                    for key, value in values.items():
                        if value is None:
                            cur.execute(f"DELETE FROM {self.table} WHERE key = %s", (key,))
                        else:
                            cur.execute(
                                f"""
                                INSERT INTO {self.table} (key, value, updated_at)
                                VALUES (%s, %s, NOW())
                                ON CONFLICT (key) DO UPDATE
                                    SET value = EXCLUDED.value, updated_at = NOW()
                                """,
                                (key, value),
                            )
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    @contextmanager
    def run_lock(self):
        """Session-level advisory lock held on one pooled connection for the run."""
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT pg_try_advisory_lock(%s)", (self.lock_key,))
                acquired = cur.fetchone()[0]
            conn.commit()
            if not acquired:
                raise RunInProgressError(f"Consolidation already running (advisory lock {self.lock_key})")
            try:
                yield
            finally:
                with conn.cursor() as cur:
                    cur.execute("SELECT pg_advisory_unlock(%s)", (self.lock_key,))
                conn.commit()


def get_state_store(state_config, postgres_config=None) -> StateStore:
    """Build the configured backend. Unknown backend names are fatal."""
    backend = (state_config.backend or "").lower()
    if backend == "file":
        return FileStateStore(state_config.file_path)
    if backend == "postgres":
        return PostgresStateStore(
            postgres_config.dsn_params,
            table=state_config.table,
            lock_key=state_config.advisory_lock_key,
        )
    raise ValueError(f"Unknown STATE_BACKEND: {state_config.backend!r}")
