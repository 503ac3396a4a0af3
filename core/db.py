"""Document persistence for the leaderboard, pending slips and cooldowns.

Each record is a small JSON document that is read-modify-written on every
mutation. Backends share the same tiny interface (``load`` / ``save``), so
tests can run against :class:`MemoryDocumentStore`.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import random
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from .config import DATA_DIR, DB_PATH, STORAGE_BACKEND

log = logging.getLogger(__name__)

T = TypeVar("T")
Document = Dict[str, Any]


def run_db(
    fn: Callable[[], T],
    *,
    retries: int = 5,
    base_delay: float = 0.12,
    jitter: float = 0.08,
) -> T:
    """Retry wrapper for SQLite writes in WAL mode.

    Retries only `sqlite3.OperationalError` containing "locked" or "busy".
    """
    last_err: Optional[Exception] = None

    for attempt in range(1, retries + 1):
        try:
            return fn()
        except sqlite3.OperationalError as e:
            msg = str(e).lower()
            if ("locked" not in msg) and ("busy" not in msg):
                raise

            last_err = e
            if attempt == retries:
                break

            time.sleep(base_delay * attempt + random.uniform(0, jitter))

    raise last_err  # type: ignore[misc]


def get_db_connection(db_path: Path = DB_PATH) -> sqlite3.Connection:
    """Create a configured SQLite connection for bot concurrency."""
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode = WAL;")
    conn.execute("PRAGMA synchronous = NORMAL;")
    conn.execute("PRAGMA busy_timeout = 30000;")
    conn.execute("PRAGMA temp_store = MEMORY;")

    return conn


class DocumentStore:
    """Key -> JSON document persistence."""

    def load(self, key: str, default: Optional[Document] = None) -> Document:
        raise NotImplementedError

    def save(self, key: str, doc: Document) -> None:
        raise NotImplementedError


class MemoryDocumentStore(DocumentStore):
    """In-process store. Documents are deep-copied both ways, like a real backend."""

    def __init__(self):
        self._docs: Dict[str, Document] = {}
        self._lock = threading.Lock()

    def load(self, key: str, default: Optional[Document] = None) -> Document:
        with self._lock:
            if key in self._docs:
                return copy.deepcopy(self._docs[key])
        return copy.deepcopy(default) if default is not None else {}

    def save(self, key: str, doc: Document) -> None:
        with self._lock:
            self._docs[key] = copy.deepcopy(doc)


class JsonFileStore(DocumentStore):
    """One ``<key>.json`` file per document, replaced atomically on save."""

    def __init__(self, directory: Path = DATA_DIR):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str, default: Optional[Document] = None) -> Document:
        path = self._path(key)
        fallback = copy.deepcopy(default) if default is not None else {}
        if not path.exists():
            return fallback
        try:
            with path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError:
            # keep the bad file for recovery; the next save would overwrite it
            corrupt = path.with_suffix(".json.corrupt")
            with self._lock:
                os.replace(path, corrupt)
            log.exception("Corrupt JSON document %s; moved to %s, starting from default.", path, corrupt)
            return fallback
        return data if isinstance(data, dict) else fallback

    def save(self, key: str, doc: Document) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".json.tmp")
        with self._lock:
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
            os.replace(tmp, path)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS documents (
    key         TEXT PRIMARY KEY,
    body        TEXT NOT NULL,
    updated_at  INTEGER NOT NULL
);
"""


class SqliteDocumentStore(DocumentStore):
    """Documents kept as JSON text rows in a single SQLite table."""

    def __init__(self, db_path: Path = DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = get_db_connection(self.db_path)
        self._lock = threading.Lock()

        def _write():
            self._conn.executescript(SCHEMA_SQL)

        with self._lock:
            run_db(_write)

    def load(self, key: str, default: Optional[Document] = None) -> Document:
        with self._lock:
            row = self._conn.execute(
                "SELECT body FROM documents WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return copy.deepcopy(default) if default is not None else {}
        return json.loads(row["body"])

    def save(self, key: str, doc: Document) -> None:
        body = json.dumps(doc)

        def _write():
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO documents (key, body, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        body = excluded.body,
                        updated_at = excluded.updated_at
                    """,
                    (key, body, int(time.time())),
                )

        with self._lock:
            run_db(_write)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def open_store(backend: Optional[str] = None) -> DocumentStore:
    """Build the configured production store."""
    backend = (backend or STORAGE_BACKEND).lower()
    if backend == "json":
        log.info("Using JSON document store in %s", DATA_DIR)
        return JsonFileStore(DATA_DIR)
    if backend != "sqlite":
        log.warning("Unknown STORAGE_BACKEND %r, falling back to sqlite.", backend)
    log.info("Using SQLite document store at %s", DB_PATH)
    return SqliteDocumentStore(DB_PATH)
