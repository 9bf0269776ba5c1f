"""
Learning Store — Feedback-Driven Rule Performance

Every reviewed page is recorded as a learning example. When a human
later confirms or rejects the verdict, the example's rules get their
confusion-matrix counters updated and precision / recall / F1
recomputed.

Counter table (ai_decision × feedback):

                 correct          incorrect         needs_review
    violation    true_positive    false_positive    -
    clean        -                false_negative    -

Lifecycle:
  1. record_example() appends with human_feedback = "pending"
  2. update_example_feedback() resolves it exactly once
  3. A second verdict on a resolved example is rejected, never re-counted

Backed by SQLite. One connection per store, opened by open() and
released by close(). All access is serialized by a store-wide lock, so
concurrent verdicts on the same rule cannot lose an update.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from compliancebot.errors import (
    ExampleNotFoundError,
    FeedbackAlreadyRecordedError,
    InvalidFeedbackError,
)
from compliancebot.models import (
    FEEDBACK_PENDING,
    FEEDBACK_VALUES,
    LearningExample,
    PolicyPerformance,
)

logger = logging.getLogger(__name__)

# (ai_decision, feedback) → counter column. Pairs not listed move nothing.
OUTCOME_COUNTERS: dict[tuple[str, str], str] = {
    ("violation", "correct"): "true_positives",
    ("violation", "incorrect"): "false_positives",
    ("clean", "incorrect"): "false_negatives",
}

_EXAMPLE_COLUMNS = (
    "id, source_ref, text_snippet, ai_decision, ai_confidence, "
    "violations_found, human_feedback, timestamp, reviewer_notes"
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


_id_lock = threading.Lock()
_id_state = {"ms": 0, "seq": 0}
_SEQ_LIMIT = 10_000


def new_example_id() -> str:
    """
    Globally unique, time-ordered id.

    Layout: ex_<millisecond clock>_<4-digit sequence>_<random suffix>. The
    sequence orders ids minted in the same millisecond, and the clock never
    runs backwards within a process, so lexical order is creation order.
    """
    with _id_lock:
        ms = int(time.time() * 1000)
        if ms <= _id_state["ms"]:
            ms = _id_state["ms"]
            seq = _id_state["seq"] + 1
            if seq >= _SEQ_LIMIT:
                ms, seq = ms + 1, 0
        else:
            seq = 0
        _id_state["ms"], _id_state["seq"] = ms, seq
    return f"ex_{ms:013d}_{seq:04d}_{uuid.uuid4().hex[:8]}"


def counter_for(ai_decision: str, feedback: str) -> Optional[str]:
    """The counter a verdict increments, or None for inconclusive pairs."""
    return OUTCOME_COUNTERS.get((ai_decision, feedback))


def _row_to_example(row: tuple) -> LearningExample:
    return LearningExample(
        id=row[0],
        source_ref=row[1],
        text_snippet=row[2],
        ai_decision=row[3],
        ai_confidence=row[4],
        violations_found=json.loads(row[5]),
        human_feedback=row[6],
        timestamp=row[7],
        reviewer_notes=row[8],
    )


class LearningStore:
    """
    Persists learning examples and per-rule performance counters.

    Usage:
        store = LearningStore("learning.db")
        store.open()
        example_id = store.record_example(url, snippet, "violation", 0.9, ["rule_a"])
        store.update_example_feedback(example_id, "correct")
        store.close()
    """

    def __init__(self, db_path: str = "compliancebot_learning.db"):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

    # --- lifecycle ---

    def open(self) -> "LearningStore":
        with self._lock:
            if self._conn is None:
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
                self._init_db(self._conn)
                logger.info("Learning store opened at %s", self.db_path)
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.commit()
                self._conn.close()
                self._conn = None
                logger.info("Learning store closed")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "LearningStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("LearningStore is not open; call open() first")
        return self._conn

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS learning_examples (
                id TEXT PRIMARY KEY,
                source_ref TEXT NOT NULL,
                text_snippet TEXT NOT NULL,
                ai_decision TEXT NOT NULL,
                ai_confidence REAL NOT NULL,
                violations_found TEXT NOT NULL,
                human_feedback TEXT NOT NULL DEFAULT 'pending',
                timestamp TEXT NOT NULL,
                reviewer_notes TEXT,
                feedback_at TEXT
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_examples_feedback
            ON learning_examples(human_feedback, timestamp)
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS policy_performance (
                rule_id TEXT PRIMARY KEY,
                true_positives INTEGER NOT NULL DEFAULT 0,
                false_positives INTEGER NOT NULL DEFAULT 0,
                false_negatives INTEGER NOT NULL DEFAULT 0,
                precision REAL NOT NULL DEFAULT 0,
                recall REAL NOT NULL DEFAULT 0,
                f1_score REAL NOT NULL DEFAULT 0,
                last_updated TEXT NOT NULL
            )
        """)
        conn.commit()

    # --- examples ---

    def record_example(
        self,
        source_ref: str,
        text_snippet: str,
        ai_decision: str,
        ai_confidence: float,
        rule_ids: Iterable[str],
    ) -> str:
        """Append a pending example and return its id."""
        example_id = new_example_id()
        with self._lock:
            conn = self._require_conn()
            conn.execute(
                f"""INSERT INTO learning_examples ({_EXAMPLE_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL)""",
                (
                    example_id, source_ref, text_snippet, ai_decision,
                    float(ai_confidence), json.dumps(list(rule_ids)),
                    FEEDBACK_PENDING, _now(),
                ),
            )
            conn.commit()
        return example_id

    def get_example(self, example_id: str) -> LearningExample:
        with self._lock:
            row = self._require_conn().execute(
                f"SELECT {_EXAMPLE_COLUMNS} FROM learning_examples WHERE id = ?",
                (example_id,),
            ).fetchone()
        if row is None:
            raise ExampleNotFoundError(example_id)
        return _row_to_example(row)

    def get_pending_examples(self, limit: int = 50) -> list[LearningExample]:
        """Examples still awaiting a verdict, most recent first."""
        with self._lock:
            rows = self._require_conn().execute(
                f"""SELECT {_EXAMPLE_COLUMNS} FROM learning_examples
                    WHERE human_feedback = ?
                    ORDER BY timestamp DESC, id DESC LIMIT ?""",
                (FEEDBACK_PENDING, max(0, int(limit))),
            ).fetchall()
        return [_row_to_example(r) for r in rows]

    # --- feedback ---

    def update_example_feedback(
        self,
        example_id: str,
        feedback: str,
        notes: Optional[str] = None,
    ) -> LearningExample:
        """
        Resolve a pending example and update its rules' counters.

        Safe to call from many threads: the pending check and the counter
        updates run in one transaction under the store lock.

        Raises:
            InvalidFeedbackError: feedback is not correct/incorrect/needs_review.
            ExampleNotFoundError: no example has this id. Nothing is created.
            FeedbackAlreadyRecordedError: the example was already resolved.
        """
        if feedback not in FEEDBACK_VALUES:
            raise InvalidFeedbackError(
                f"Invalid feedback '{feedback}'. Expected one of: {', '.join(FEEDBACK_VALUES)}"
            )

        with self._lock:
            conn = self._require_conn()
            row = conn.execute(
                f"SELECT {_EXAMPLE_COLUMNS} FROM learning_examples WHERE id = ?",
                (example_id,),
            ).fetchone()
            if row is None:
                raise ExampleNotFoundError(example_id)

            example = _row_to_example(row)
            if not example.is_pending:
                raise FeedbackAlreadyRecordedError(example_id, example.human_feedback)

            now = _now()
            try:
                conn.execute(
                    """UPDATE learning_examples
                       SET human_feedback = ?, reviewer_notes = ?, feedback_at = ?
                       WHERE id = ?""",
                    (feedback, notes, now, example_id),
                )
                # A rule cited twice on one page is still one verdict for it
                for rule_id in dict.fromkeys(example.violations_found):
                    self._apply_verdict(conn, rule_id, example.ai_decision, feedback, now)
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise

        example.human_feedback = feedback
        example.reviewer_notes = notes
        return example

    def _apply_verdict(
        self,
        conn: sqlite3.Connection,
        rule_id: str,
        ai_decision: str,
        feedback: str,
        now: str,
    ) -> None:
        """Read-modify-write one rule's counters. Caller holds the lock."""
        row = conn.execute(
            """SELECT true_positives, false_positives, false_negatives
               FROM policy_performance WHERE rule_id = ?""",
            (rule_id,),
        ).fetchone()
        perf = PolicyPerformance(rule_id=rule_id, last_updated=now)
        if row:
            perf.true_positives, perf.false_positives, perf.false_negatives = row

        counter = counter_for(ai_decision, feedback)
        if counter:
            setattr(perf, counter, getattr(perf, counter) + 1)

        conn.execute(
            """INSERT INTO policy_performance
               (rule_id, true_positives, false_positives, false_negatives,
                precision, recall, f1_score, last_updated)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(rule_id) DO UPDATE SET
                   true_positives = excluded.true_positives,
                   false_positives = excluded.false_positives,
                   false_negatives = excluded.false_negatives,
                   precision = excluded.precision,
                   recall = excluded.recall,
                   f1_score = excluded.f1_score,
                   last_updated = excluded.last_updated""",
            (
                rule_id, perf.true_positives, perf.false_positives,
                perf.false_negatives, perf.precision, perf.recall,
                perf.f1_score, now,
            ),
        )
        logger.debug(
            "Rule %s updated: tp=%d fp=%d fn=%d f1=%.3f",
            rule_id, perf.true_positives, perf.false_positives,
            perf.false_negatives, perf.f1_score,
            extra={"rule_id": rule_id, "feedback": feedback},
        )

    # --- queries ---

    def get_policy_performance(self) -> list[PolicyPerformance]:
        """All tracked rules, best F1 first."""
        with self._lock:
            rows = self._require_conn().execute(
                """SELECT rule_id, true_positives, false_positives,
                          false_negatives, last_updated
                   FROM policy_performance
                   ORDER BY f1_score DESC, rule_id ASC"""
            ).fetchall()

        return [
            PolicyPerformance(
                rule_id=r[0], true_positives=r[1], false_positives=r[2],
                false_negatives=r[3], last_updated=r[4],
            )
            for r in rows
        ]

    def get_stats(self) -> dict:
        """Example counts for health checks and reports."""
        with self._lock:
            conn = self._require_conn()
            total, pending = conn.execute(
                """SELECT COUNT(*),
                          COALESCE(SUM(CASE WHEN human_feedback = ? THEN 1 ELSE 0 END), 0)
                   FROM learning_examples""",
                (FEEDBACK_PENDING,),
            ).fetchone()
            tracked = conn.execute(
                "SELECT COUNT(*) FROM policy_performance"
            ).fetchone()[0]
        return {
            "total_examples": total,
            "pending_examples": pending,
            "reviewed_examples": total - pending,
            "policies_tracked": tracked,
        }

    def export_learning_data(self) -> dict:
        """Everything the store knows, as a JSON-serializable dict."""
        with self._lock:
            rows = self._require_conn().execute(
                f"""SELECT {_EXAMPLE_COLUMNS} FROM learning_examples
                    ORDER BY timestamp DESC, id DESC"""
            ).fetchall()
        examples = [_row_to_example(r).to_dict() for r in rows]
        performance = [p.to_dict() for p in self.get_policy_performance()]

        return {
            "examples": examples,
            "performance": performance,
            "export_date": _now(),
            "total_examples": len(examples),
            "reviewed_examples": sum(
                1 for e in examples if e["human_feedback"] != FEEDBACK_PENDING
            ),
        }
