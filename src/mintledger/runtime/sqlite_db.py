# src/mintledger/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

from mintledger.runtime.kvstore import Batch

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def canon_json(obj: Any) -> str:
    """Canonical JSON encoding.

    Keep this stable across nodes: persisted records are compared byte for byte.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the ledger store.

    Design goals:
      - single durable DB file
      - cross-thread safe by never sharing connections
      - bounded retry when another writer holds the lock
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value.

        prod -> FULL, dev/testnet -> NORMAL.
        Override with MINTLEDGER_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("MINTLEDGER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("MINTLEDGER_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("MINTLEDGER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("MINTLEDGER_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key BLOB PRIMARY KEY,
                  value BLOB NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return "database is locked" in msg or "database is busy" in msg

    def _backoff(self, attempt: int) -> None:
        base_sleep = max(0.001, float(_env_int("MINTLEDGER_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("MINTLEDGER_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention.

        BEGIN IMMEDIATE and COMMIT are retried with jittered exponential backoff
        until MINTLEDGER_SQLITE_WRITE_DEADLINE_MS, then the error is raised.
        Any exception inside the block rolls the transaction back.
        """
        deadline_ts = _now_ms() + max(250, _env_int("MINTLEDGER_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt)
                    attempt += 1

            try:
                yield con
                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(c_attempt)
                        c_attempt += 1
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    # transaction already closed by the failed statement
                    pass
                raise


class SqliteKVStore:
    """KVStore backed by the `kv` table.

    Individual set()/delete() calls each commit on their own; block commits go
    through write_batch() so a whole branch lands in one transaction.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def get(self, key: bytes) -> Optional[bytes]:
        with self._db.connection() as con:
            row = con.execute("SELECT value FROM kv WHERE key=?;", (bytes(key),)).fetchone()
            return bytes(row["value"]) if row is not None else None

    def set(self, key: bytes, value: bytes) -> None:
        self.write_batch([(bytes(key), bytes(value))])

    def delete(self, key: bytes) -> None:
        self.write_batch([(bytes(key), None)])

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        with self._db.connection() as con:
            if prefix:
                rows = con.execute(
                    "SELECT key, value FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key;",
                    (len(prefix), bytes(prefix)),
                ).fetchall()
            else:
                rows = con.execute("SELECT key, value FROM kv ORDER BY key;").fetchall()
        for r in rows:
            yield bytes(r["key"]), bytes(r["value"])

    def write_batch(self, ops: Batch) -> None:
        if not ops:
            return
        now = _now_ms()
        with self._db.write_tx() as con:
            for k, v in ops:
                if v is None:
                    con.execute("DELETE FROM kv WHERE key=?;", (bytes(k),))
                else:
                    con.execute(
                        """
                        INSERT INTO kv(key, value, updated_ts_ms) VALUES(?, ?, ?)
                        ON CONFLICT(key) DO UPDATE SET
                          value=excluded.value,
                          updated_ts_ms=excluded.updated_ts_ms;
                        """,
                        (bytes(k), bytes(v), now),
                    )


__all__ = ["SqliteDB", "SqliteKVStore", "canon_json"]
