"""Fingerprint store: knowledge-base entries and the pending-question queue.

Owns both tables. Fingerprints are stored as JSON text so the same schema
works on PostgreSQL and DuckDB; scoring happens in Python (see scorer.py).

Write guarantees:
  - insert_pending_if_absent is an atomic check-and-insert per question text
    (partial unique index + ON CONFLICT on Postgres, write lock on DuckDB)
  - pending status transitions only leave 'pending' (conditional UPDATE)
  - promote_pending marks the row answered and inserts the entry in one
    transaction
"""

from __future__ import annotations

import logging
from numbers import Real

from src.db import Database
from src.faq.errors import InvalidInput, StoreError
from src.faq.models import (
    FEEDBACK_COLUMNS,
    KNOWLEDGE_COLUMNS,
    PENDING_COLUMNS,
    FeedbackKind,
    KnowledgeEntry,
    PendingQuestion,
    PendingStatus,
    Provenance,
    encode_fingerprint,
)

logger = logging.getLogger(__name__)

KB_TABLE = "knowledge_base"
PENDING_TABLE = "pending_questions"

# Attempts at enqueue when the coalesced row is resolved between our
# INSERT and SELECT (Postgres only).
_ENQUEUE_ATTEMPTS = 3

_POSTGRES_SCHEMA = [
    f"""
    CREATE TABLE IF NOT EXISTS {KB_TABLE} (
        id SERIAL PRIMARY KEY,
        question TEXT NOT NULL,
        answer TEXT NOT NULL,
        fingerprint TEXT,
        provenance TEXT NOT NULL DEFAULT 'admin',
        like_count INTEGER NOT NULL DEFAULT 0,
        review_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {PENDING_TABLE} (
        id SERIAL PRIMARY KEY,
        question TEXT NOT NULL,
        session_id TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        asked_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    )
    """,
    # At most one open row per question text
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS idx_pending_open_question
    ON {PENDING_TABLE} (question) WHERE status = 'pending'
    """,
    f"CREATE INDEX IF NOT EXISTS idx_pending_status ON {PENDING_TABLE} (status)",
]

_DUCKDB_SCHEMA = [
    f"CREATE SEQUENCE IF NOT EXISTS {KB_TABLE}_id_seq",
    f"""
    CREATE TABLE IF NOT EXISTS {KB_TABLE} (
        id INTEGER DEFAULT nextval('{KB_TABLE}_id_seq') PRIMARY KEY,
        question TEXT NOT NULL,
        answer TEXT NOT NULL,
        fingerprint TEXT,
        provenance TEXT NOT NULL DEFAULT 'admin',
        like_count INTEGER NOT NULL DEFAULT 0,
        review_count INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
    f"CREATE SEQUENCE IF NOT EXISTS {PENDING_TABLE}_id_seq",
    f"""
    CREATE TABLE IF NOT EXISTS {PENDING_TABLE} (
        id INTEGER DEFAULT nextval('{PENDING_TABLE}_id_seq') PRIMARY KEY,
        question TEXT NOT NULL,
        session_id TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        asked_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
]


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required.")
    return value.strip()


def _coerce(enum_cls, value, field: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInput(f"{field} must be one of: {allowed}.")


def _require_fingerprint(fingerprint, allow_none: bool = False) -> list[float] | None:
    if fingerprint is None and allow_none:
        return None
    if not isinstance(fingerprint, (list, tuple)) or not fingerprint:
        raise InvalidInput("fingerprint must be a non-empty sequence of numbers.")
    if not all(isinstance(v, Real) and not isinstance(v, bool) for v in fingerprint):
        raise InvalidInput("fingerprint must contain only numbers.")
    return [float(v) for v in fingerprint]


class FingerprintStore:
    """Persistence for KnowledgeEntry and PendingQuestion rows."""

    def __init__(self, db: Database):
        self.db = db

    def ensure_schema(self) -> None:
        """Create tables, sequences and indexes if they don't exist."""
        statements = _POSTGRES_SCHEMA if self.db.backend == "postgres" else _DUCKDB_SCHEMA
        with self.db.transaction(write=True) as tx:
            for sql in statements:
                tx.execute(sql)
        logger.info("FAQ schema ensured (backend=%s)", self.db.backend)

    # ── Knowledge base reads ──────────────────────────────────────

    def list_fingerprinted(self) -> list[KnowledgeEntry]:
        """All entries with a readable fingerprint, in id order."""
        rows = self.db.query(
            f"SELECT {KNOWLEDGE_COLUMNS} FROM {KB_TABLE} "
            f"WHERE fingerprint IS NOT NULL ORDER BY id"
        )
        entries = [KnowledgeEntry.from_row(r) for r in rows]
        return [e for e in entries if e.fingerprint is not None]

    def list_unfingerprinted(self) -> list[KnowledgeEntry]:
        rows = self.db.query(
            f"SELECT {KNOWLEDGE_COLUMNS} FROM {KB_TABLE} "
            f"WHERE fingerprint IS NULL ORDER BY id"
        )
        return [KnowledgeEntry.from_row(r) for r in rows]

    def list_knowledge(self) -> list[KnowledgeEntry]:
        """All entries, newest first."""
        rows = self.db.query(
            f"SELECT {KNOWLEDGE_COLUMNS} FROM {KB_TABLE} "
            f"ORDER BY created_at DESC, id DESC"
        )
        return [KnowledgeEntry.from_row(r) for r in rows]

    def get_knowledge(self, entry_id: int) -> KnowledgeEntry | None:
        row = self.db.query_one(
            f"SELECT {KNOWLEDGE_COLUMNS} FROM {KB_TABLE} WHERE id = %s",
            (entry_id,),
        )
        return KnowledgeEntry.from_row(row) if row else None

    # ── Knowledge base writes ─────────────────────────────────────

    def insert_knowledge(self, question: str, answer: str,
                         fingerprint: list[float] | None,
                         provenance: Provenance = Provenance.ADMIN) -> KnowledgeEntry:
        """Insert a new entry and return it."""
        question = _require_text(question, "question")
        answer = _require_text(answer, "answer")
        fingerprint = _require_fingerprint(fingerprint, allow_none=True)
        provenance = _coerce(Provenance, provenance, "provenance")

        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"INSERT INTO {KB_TABLE} (question, answer, fingerprint, provenance) "
                f"VALUES (%s, %s, %s, %s) RETURNING {KNOWLEDGE_COLUMNS}",
                (question, answer, encode_fingerprint(fingerprint), provenance.value),
            )
        entry = KnowledgeEntry.from_row(row)
        logger.info("Inserted knowledge entry %d (source=%s)", entry.id, provenance.value)
        return entry

    def update_answer(self, entry_id: int, answer: str) -> KnowledgeEntry | None:
        """Replace the answer and reset engagement counters.

        The fingerprint is left alone: it is derived from the question.
        Returns None if the entry does not exist.
        """
        answer = _require_text(answer, "answer")
        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"UPDATE {KB_TABLE} SET answer = %s, like_count = 0, review_count = 0, "
                f"updated_at = CURRENT_TIMESTAMP WHERE id = %s "
                f"RETURNING {KNOWLEDGE_COLUMNS}",
                (answer, entry_id),
            )
        return KnowledgeEntry.from_row(row) if row else None

    def set_fingerprint(self, entry_id: int, fingerprint: list[float]) -> bool:
        fingerprint = _require_fingerprint(fingerprint)
        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"UPDATE {KB_TABLE} SET fingerprint = %s WHERE id = %s RETURNING id",
                (encode_fingerprint(fingerprint), entry_id),
            )
        return row is not None

    def delete_knowledge(self, entry_id: int) -> bool:
        """Hard delete. Returns False if the entry did not exist."""
        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"DELETE FROM {KB_TABLE} WHERE id = %s RETURNING id",
                (entry_id,),
            )
        if row:
            logger.info("Deleted knowledge entry %d", entry_id)
        return row is not None

    def bump_counter(self, entry_id: int, kind: FeedbackKind) -> KnowledgeEntry | None:
        """Increment the like or review-request counter in place."""
        column = FEEDBACK_COLUMNS[_coerce(FeedbackKind, kind, "kind")]
        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"UPDATE {KB_TABLE} SET {column} = {column} + 1 WHERE id = %s "
                f"RETURNING {KNOWLEDGE_COLUMNS}",
                (entry_id,),
            )
        return KnowledgeEntry.from_row(row) if row else None

    # ── Pending queue ─────────────────────────────────────────────

    def insert_pending_if_absent(self, question: str, session_id: str | None = None) -> int:
        """Queue a question unless an identical one is already pending.

        Returns the id of the new row, or of the existing pending row.
        """
        question = _require_text(question, "question")
        if self.db.backend == "postgres":
            return self._insert_pending_postgres(question, session_id)

        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"SELECT id FROM {PENDING_TABLE} WHERE question = %s AND status = %s",
                (question, PendingStatus.PENDING.value),
            )
            if row:
                logger.info("Coalesced with pending question %d", row[0])
                return row[0]
            row = tx.fetchone(
                f"INSERT INTO {PENDING_TABLE} (question, session_id) "
                f"VALUES (%s, %s) RETURNING id",
                (question, session_id),
            )
        logger.info("Queued pending question %d", row[0])
        return row[0]

    def _insert_pending_postgres(self, question: str, session_id: str | None) -> int:
        for _ in range(_ENQUEUE_ATTEMPTS):
            with self.db.transaction(write=True) as tx:
                row = tx.fetchone(
                    f"INSERT INTO {PENDING_TABLE} (question, session_id) VALUES (%s, %s) "
                    f"ON CONFLICT (question) WHERE status = 'pending' DO NOTHING "
                    f"RETURNING id",
                    (question, session_id),
                )
                if row:
                    logger.info("Queued pending question %d", row[0])
                    return row[0]
                row = tx.fetchone(
                    f"SELECT id FROM {PENDING_TABLE} WHERE question = %s AND status = %s",
                    (question, PendingStatus.PENDING.value),
                )
                if row:
                    logger.info("Coalesced with pending question %d", row[0])
                    return row[0]
            # The conflicting row was resolved in between; try again.
        raise StoreError("could not enqueue pending question")

    def get_pending(self, pending_id: int) -> PendingQuestion | None:
        row = self.db.query_one(
            f"SELECT {PENDING_COLUMNS} FROM {PENDING_TABLE} WHERE id = %s",
            (pending_id,),
        )
        return PendingQuestion.from_row(row) if row else None

    def list_pending(self, status: PendingStatus | str | None = None) -> list[PendingQuestion]:
        """Pending rows, newest first. Optionally filter by status."""
        if status is None:
            rows = self.db.query(
                f"SELECT {PENDING_COLUMNS} FROM {PENDING_TABLE} "
                f"ORDER BY asked_at DESC, id DESC"
            )
        else:
            rows = self.db.query(
                f"SELECT {PENDING_COLUMNS} FROM {PENDING_TABLE} WHERE status = %s "
                f"ORDER BY asked_at DESC, id DESC",
                (_coerce(PendingStatus, status, "status").value,),
            )
        return [PendingQuestion.from_row(r) for r in rows]

    def set_pending_status(self, pending_id: int,
                           status: PendingStatus | str) -> PendingQuestion | None:
        """Move a row out of 'pending'.

        Returns the updated row, or None when the row is missing or already
        resolved (terminal statuses are never overwritten).
        """
        status = _coerce(PendingStatus, status, "status")
        if status == PendingStatus.PENDING:
            raise InvalidInput("cannot move a question back to pending.")
        with self.db.transaction(write=True) as tx:
            row = tx.fetchone(
                f"UPDATE {PENDING_TABLE} SET status = %s "
                f"WHERE id = %s AND status = %s RETURNING {PENDING_COLUMNS}",
                (status.value, pending_id, PendingStatus.PENDING.value),
            )
        return PendingQuestion.from_row(row) if row else None

    def promote_pending(self, pending_id: int, answer: str,
                        fingerprint: list[float]) -> KnowledgeEntry | None:
        """Mark a pending row answered and insert its knowledge entry.

        Both writes commit together. Returns None (and writes nothing) when
        the row is missing or no longer pending.
        """
        answer = _require_text(answer, "answer")
        fingerprint = _require_fingerprint(fingerprint)
        with self.db.transaction(write=True) as tx:
            pending = tx.fetchone(
                f"UPDATE {PENDING_TABLE} SET status = %s "
                f"WHERE id = %s AND status = %s RETURNING question",
                (PendingStatus.ANSWERED.value, pending_id, PendingStatus.PENDING.value),
            )
            if pending is None:
                return None
            row = tx.fetchone(
                f"INSERT INTO {KB_TABLE} (question, answer, fingerprint, provenance) "
                f"VALUES (%s, %s, %s, %s) RETURNING {KNOWLEDGE_COLUMNS}",
                (pending[0], answer, encode_fingerprint(fingerprint),
                 Provenance.ADMIN_FROM_PENDING.value),
            )
        entry = KnowledgeEntry.from_row(row)
        logger.info("Promoted pending question %d to knowledge entry %d", pending_id, entry.id)
        return entry

    # ── Stats ─────────────────────────────────────────────────────

    def get_stats(self) -> dict:
        """Row counts for the /health endpoint."""
        kb = self.db.query_one(
            f"SELECT COUNT(*), COUNT(fingerprint) FROM {KB_TABLE}"
        )
        by_status = dict(self.db.query(
            f"SELECT status, COUNT(*) FROM {PENDING_TABLE} GROUP BY status"
        ))
        return {
            "knowledge_entries": kb[0],
            "fingerprinted_entries": kb[1],
            "pending_by_status": {s.value: by_status.get(s.value, 0) for s in PendingStatus},
        }
