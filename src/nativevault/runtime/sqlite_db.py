# src/nativevault/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # Do not coerce unknown types (no default=str): a non-JSON value leaking
    # into the snapshot must fail the commit.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the ledger host.

    Design goals:
      - single durable DB file for the ledger snapshot and transaction log
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time; BEGIN IMMEDIATE can transiently
    fail with "database is locked", so write_tx() retries within a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """PRAGMA synchronous value: FULL in prod, NORMAL otherwise.

        Override with NATIVEVAULT_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("NATIVEVAULT_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("NATIVEVAULT_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()
        connect_timeout_s = float(_env_int("NATIVEVAULT_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        con.execute("PRAGMA journal_mode=WAL;")
        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        busy_ms = max(0, _env_int("NATIVEVAULT_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  slot INTEGER NOT NULL,
                  unix_timestamp INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS tx_log (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  ok INTEGER NOT NULL,
                  code TEXT NOT NULL,
                  record_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
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
        return ("database is locked" in msg) or ("database is busy" in msg)

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ms = max(250, _env_int("NATIVEVAULT_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("NATIVEVAULT_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("NATIVEVAULT_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
                    time.sleep(sleep_s * (0.5 + random.random()))
                    attempt += 1

            try:
                yield con
                con.execute("COMMIT;")
            except Exception:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Ledger snapshot store persisted in SQLite.

      - read(): load latest ledger snapshot
      - commit(st, record): overwrite the snapshot and append a tx_log row atomically
      - recent_tx_log(): newest-first transaction outcomes
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
            if row is None:
                raise FileNotFoundError("sqlite ledger_state is missing")
            st = json.loads(str(row["state_json"]))
            if not isinstance(st, dict):
                raise ValueError("ledger_state is not a JSON object")
            return st

    def commit(self, st: Json, record: Optional[Json] = None) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        clock = st.get("clock") if isinstance(st.get("clock"), dict) else {}
        slot = int(clock.get("slot", 0))
        ts = int(clock.get("unix_timestamp", 0))
        now = _now_ms()
        payload = _canon_json(st)
        rec_payload = _canon_json(record) if record is not None else None

        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, slot, unix_timestamp, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  slot=excluded.slot,
                  unix_timestamp=excluded.unix_timestamp,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (slot, ts, payload, now),
            )
            if rec_payload is not None:
                con.execute(
                    "INSERT INTO tx_log(ok, code, record_json, created_ts_ms) VALUES(?, ?, ?, ?);",
                    (1 if record.get("ok") else 0, str(record.get("code") or ""), rec_payload, now),
                )

    def append_tx_log(self, record: Json) -> None:
        with self._db.write_tx() as con:
            con.execute(
                "INSERT INTO tx_log(ok, code, record_json, created_ts_ms) VALUES(?, ?, ?, ?);",
                (1 if record.get("ok") else 0, str(record.get("code") or ""), _canon_json(record), _now_ms()),
            )

    def recent_tx_log(self, *, limit: int = 50) -> List[Json]:
        with self._db.connection() as con:
            rows = con.execute("SELECT record_json FROM tx_log ORDER BY seq DESC LIMIT ?;", (int(limit),)).fetchall()
        return [json.loads(str(r["record_json"])) for r in rows]
