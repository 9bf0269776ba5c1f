"""
Review Ledger — Hash-Chained Outcome Log

Every review outcome and every feedback decision is appended to a
SHA-256 hash chain. This is the caller-side record of what happened:
failed reviews land here, not in the learning store.

Event types:
  - review_completed:  page reviewed, learning example recorded
  - review_failed:     reviewer error; nothing recorded for learning
  - feedback_recorded: human verdict applied to an example
  - feedback_rejected: verdict refused (unknown id, duplicate, invalid)

Each entry's hash covers the previous entry's hash, so editing any row
after the fact breaks verify_chain().
"""

from __future__ import annotations

import hashlib
import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from compliancebot.rules import CATALOG_VERSION

GENESIS_HASH = "0" * 64


def _entry_hash(prev_hash: str, event_type: str, data_str: str,
                timestamp: str, catalog_version: str) -> str:
    chain_input = f"{prev_hash}{event_type}{data_str}{timestamp}{catalog_version}"
    return hashlib.sha256(chain_input.encode()).hexdigest()


class ReviewLedger:
    """Append-only, hash-chained event log backed by SQLite."""

    def __init__(self, db_path: str = "compliancebot_ledger.db"):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    def open(self) -> "ReviewLedger":
        with self._lock:
            if self._conn is None:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._init_db(self._conn)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "ReviewLedger":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("ReviewLedger is not open; call open() first")
        return self._conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS review_ledger (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                prev_hash TEXT NOT NULL,
                hash TEXT NOT NULL,
                event_type TEXT NOT NULL,
                data TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                catalog_version TEXT NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_ledger_event_type
            ON review_ledger(event_type)
        """)
        conn.commit()

    def log(self, event_type: str, data: Any,
            catalog_version: str = CATALOG_VERSION) -> str:
        """Append an event and return the SHA-256 hash of the new entry."""
        with self._lock:
            conn = self._require_conn()
            row = conn.execute(
                "SELECT hash FROM review_ledger ORDER BY id DESC LIMIT 1"
            ).fetchone()
            prev_hash = row[0] if row else GENESIS_HASH
            timestamp = datetime.now(timezone.utc).isoformat()
            data_str = json.dumps(data, default=str, sort_keys=True)
            new_hash = _entry_hash(prev_hash, event_type, data_str, timestamp, catalog_version)

            conn.execute(
                """INSERT INTO review_ledger
                   (prev_hash, hash, event_type, data, timestamp, catalog_version)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (prev_hash, new_hash, event_type, data_str, timestamp, catalog_version),
            )
            conn.commit()
            return new_hash

    def get_recent(self, limit: int = 20, event_type: Optional[str] = None) -> list[dict]:
        """Most recent entries first, optionally filtered by event type."""
        query = (
            "SELECT id, prev_hash, hash, event_type, data, timestamp, catalog_version "
            "FROM review_ledger"
        )
        params: list = []
        if event_type:
            query += " WHERE event_type = ?"
            params.append(event_type)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._lock:
            rows = self._require_conn().execute(query, params).fetchall()

        return [
            {
                "id": r[0], "prev_hash": r[1], "hash": r[2],
                "event_type": r[3], "data": json.loads(r[4]),
                "timestamp": r[5], "catalog_version": r[6],
            }
            for r in rows
        ]

    def verify_chain(self, limit: int = 100) -> dict:
        """Recompute hashes over the oldest `limit` entries."""
        with self._lock:
            rows = self._require_conn().execute(
                """SELECT id, prev_hash, hash, event_type, data, timestamp, catalog_version
                   FROM review_ledger ORDER BY id ASC LIMIT ?""",
                (limit,),
            ).fetchall()

        broken = []
        for i, (entry_id, prev_hash, stored_hash, event_type,
                data_str, timestamp, catalog_version) in enumerate(rows):
            computed = _entry_hash(prev_hash, event_type, data_str, timestamp, catalog_version)
            if computed != stored_hash:
                broken.append({
                    "id": entry_id,
                    "issue": "hash_mismatch",
                    "expected": computed,
                    "stored": stored_hash,
                })

            expected_prev = rows[i - 1][2] if i > 0 else GENESIS_HASH
            if prev_hash != expected_prev:
                broken.append({
                    "id": entry_id,
                    "issue": "chain_break",
                    "expected_prev": expected_prev,
                    "stored_prev": prev_hash,
                })

        return {
            "verified": len(broken) == 0,
            "entries_checked": len(rows),
            "broken_links": broken,
        }

    def get_count(self) -> int:
        with self._lock:
            row = self._require_conn().execute(
                "SELECT COUNT(*) FROM review_ledger"
            ).fetchone()
        return row[0] if row else 0
