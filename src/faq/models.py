"""Entity definitions for the knowledge base and the pending queue."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Provenance(str, Enum):
    """How a knowledge entry was created."""
    ADMIN = "admin"
    ADMIN_FROM_PENDING = "admin_from_pending"


class PendingStatus(str, Enum):
    PENDING = "pending"
    ANSWERED = "answered"
    DISMISSED = "dismissed"


class FeedbackKind(str, Enum):
    LIKE = "like"
    REVIEW_REQUEST = "review_request"


# Counter column bumped for each feedback kind
FEEDBACK_COLUMNS = {
    FeedbackKind.LIKE: "like_count",
    FeedbackKind.REVIEW_REQUEST: "review_count",
}


def _iso(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def decode_fingerprint(raw) -> list[float] | None:
    """Decode a stored fingerprint (JSON text) into a list of floats.

    Unreadable values are treated as absent so the entry drops out of
    scoring instead of failing the whole scan.
    """
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        values = raw
    else:
        try:
            values = json.loads(raw)
        except (TypeError, ValueError):
            return None
    if not isinstance(values, list) or not values:
        return None
    try:
        return [float(v) for v in values]
    except (TypeError, ValueError):
        return None


def encode_fingerprint(fingerprint: list[float] | None) -> str | None:
    if fingerprint is None:
        return None
    return json.dumps([float(v) for v in fingerprint])


@dataclass
class KnowledgeEntry:
    """A curated question/answer pair with the fingerprint of its question."""
    id: int
    question: str
    answer: str
    fingerprint: list[float] | None
    provenance: Provenance
    like_count: int = 0
    review_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "KnowledgeEntry":
        """Build from a row in KNOWLEDGE_COLUMNS order."""
        return cls(
            id=row[0],
            question=row[1],
            answer=row[2],
            fingerprint=decode_fingerprint(row[3]),
            provenance=Provenance(row[4]),
            like_count=row[5] or 0,
            review_count=row[6] or 0,
            created_at=row[7],
            updated_at=row[8],
        )

    def to_dict(self) -> dict:
        """Serialize for API responses. The vector itself is not exposed."""
        return {
            "id": self.id,
            "question": self.question,
            "answer": self.answer,
            "source": self.provenance.value,
            "has_fingerprint": self.fingerprint is not None,
            "like_count": self.like_count,
            "review_count": self.review_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class PendingQuestion:
    """A user question that had no confident match when it was asked."""
    id: int
    question: str
    session_id: str | None
    status: PendingStatus
    asked_at: datetime | None = None

    @classmethod
    def from_row(cls, row) -> "PendingQuestion":
        """Build from a row in PENDING_COLUMNS order."""
        return cls(
            id=row[0],
            question=row[1],
            session_id=row[2],
            status=PendingStatus(row[3]),
            asked_at=row[4],
        )

    @property
    def is_resolved(self) -> bool:
        return self.status != PendingStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "question": self.question,
            "session_id": self.session_id,
            "status": self.status.value,
            "asked_at": _iso(self.asked_at),
        }


KNOWLEDGE_COLUMNS = (
    "id, question, answer, fingerprint, provenance, "
    "like_count, review_count, created_at, updated_at"
)

PENDING_COLUMNS = "id, question, session_id, status, asked_at"
