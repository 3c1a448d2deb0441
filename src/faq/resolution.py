"""Admin-side resolution of pending questions and knowledge-base upkeep.

Pending questions leave the queue exactly once: promote (→ answered, with a
new knowledge entry) or dismiss (→ dismissed). Knowledge entries are
fingerprinted from their question text, so editing an answer never changes
what an entry matches.
"""

from __future__ import annotations

import logging

from src.faq.embeddings import fingerprint
from src.faq.errors import InvalidInput, InvalidTransition, NotFound
from src.faq.models import (
    FeedbackKind,
    KnowledgeEntry,
    PendingQuestion,
    PendingStatus,
    Provenance,
)

logger = logging.getLogger(__name__)


def _require_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput(f"{field} is required.")
    return value.strip()


class ResolutionWorkflow:
    """Promote/dismiss pending questions; add/edit/delete knowledge entries."""

    def __init__(self, store, embedder):
        self.store = store
        self.embedder = embedder

    # ── Pending queue ─────────────────────────────────────────────

    def list_pending(self, status: PendingStatus | str = PendingStatus.PENDING) -> list[PendingQuestion]:
        return self.store.list_pending(status)

    def list_all_pending(self) -> list[PendingQuestion]:
        return self.store.list_pending(None)

    def promote(self, pending_id: int, answer: str) -> KnowledgeEntry:
        """Answer a pending question and add it to the knowledge base.

        The fingerprint call is the only fallible external step and happens
        before any write; both writes then commit together. A second promote
        of the same id reports NotFound.
        """
        pending = self.store.get_pending(pending_id)
        if pending is None or pending.is_resolved:
            raise NotFound(f"Pending question {pending_id} not found.")
        answer = _require_text(answer, "answer")

        vector = fingerprint(self.embedder, pending.question)
        entry = self.store.promote_pending(pending_id, answer, vector)
        if entry is None:
            # Resolved by someone else while we were fingerprinting
            raise NotFound(f"Pending question {pending_id} not found.")
        return entry

    def dismiss(self, pending_id: int) -> PendingQuestion:
        """Dismiss a pending question. Dismissing twice is a no-op."""
        pending = self.store.get_pending(pending_id)
        if pending is None:
            raise NotFound(f"Pending question {pending_id} not found.")
        if pending.status == PendingStatus.DISMISSED:
            return pending
        if pending.status == PendingStatus.ANSWERED:
            raise InvalidTransition(f"Pending question {pending_id} is already answered.")

        updated = self.store.set_pending_status(pending_id, PendingStatus.DISMISSED)
        if updated is None:
            # Lost a race: report whatever state the row ended in
            current = self.store.get_pending(pending_id)
            if current is not None and current.status == PendingStatus.DISMISSED:
                return current
            raise InvalidTransition(f"Pending question {pending_id} is already answered.")
        logger.info("Dismissed pending question %d", pending_id)
        return updated

    # ── Knowledge base ────────────────────────────────────────────

    def list_knowledge(self) -> list[KnowledgeEntry]:
        return self.store.list_knowledge()

    def get_entry(self, entry_id: int) -> KnowledgeEntry:
        entry = self.store.get_knowledge(entry_id)
        if entry is None:
            raise NotFound(f"Knowledge entry {entry_id} not found.")
        return entry

    def add_entry(self, question: str, answer: str) -> KnowledgeEntry:
        question = _require_text(question, "question")
        answer = _require_text(answer, "answer")
        vector = fingerprint(self.embedder, question)
        return self.store.insert_knowledge(question, answer, vector, Provenance.ADMIN)

    def edit_entry(self, entry_id: int, answer: str) -> KnowledgeEntry:
        """Replace the answer; counters reset, fingerprint stays."""
        answer = _require_text(answer, "answer")
        entry = self.store.update_answer(entry_id, answer)
        if entry is None:
            raise NotFound(f"Knowledge entry {entry_id} not found.")
        logger.info("Edited knowledge entry %d", entry_id)
        return entry

    def delete_entry(self, entry_id: int) -> None:
        if not self.store.delete_knowledge(entry_id):
            raise NotFound(f"Knowledge entry {entry_id} not found.")

    def feedback(self, entry_id: int, kind: FeedbackKind | str) -> KnowledgeEntry:
        """Record a like or review request. Advisory only; ranking ignores it."""
        try:
            kind = FeedbackKind(kind)
        except ValueError:
            raise InvalidInput(f"Unknown feedback kind: {kind!r}.")
        entry = self.store.bump_counter(entry_id, kind)
        if entry is None:
            raise NotFound(f"Knowledge entry {entry_id} not found.")
        return entry
