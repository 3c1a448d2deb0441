"""Retrieval pipeline: fingerprint → score → generate, or queue for an admin.

Per question:
    1) validate (non-blank after trimming)
    2) fingerprint via the embedding provider
    3) rank every fingerprinted knowledge entry (linear scan)
    4) hit:  generate an answer from the matched entries (no writes)
       miss: insert-or-coalesce a pending question

Provider failures raise UpstreamUnavailable without retry and before any
write, so a failed request leaves the store untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from src.faq.embeddings import fingerprint
from src.faq.errors import InvalidInput
from src.faq.generation import generate_answer
from src.faq.models import KnowledgeEntry
from src.faq.scorer import DEFAULT_THRESHOLD, DEFAULT_TOP_N, rank

logger = logging.getLogger(__name__)

FORWARDED_MESSAGE = (
    "I don't have an answer for that yet. Your question has been forwarded "
    "to our team and will be answered shortly!"
)

DEFAULT_SESSION = "anonymous"


@dataclass
class Source:
    """A matched knowledge entry reported alongside a generated answer."""
    id: int
    question: str
    score: float

    def to_dict(self) -> dict:
        return {"id": self.id, "question": self.question, "score": round(self.score, 3)}


@dataclass
class ChatResult:
    answered: bool
    answer: str
    sources: list[Source] = field(default_factory=list)
    pending_id: int | None = None

    def to_dict(self) -> dict:
        if self.answered:
            return {
                "answered": True,
                "answer": self.answer,
                "sources": [s.to_dict() for s in self.sources],
            }
        return {
            "answered": False,
            "pendingId": self.pending_id,
            "answer": self.answer,
        }


class RetrievalOrchestrator:
    """Answers questions from the knowledge base or queues them as pending."""

    def __init__(self, store, embedder, generator,
                 threshold: float = DEFAULT_THRESHOLD, top_n: int = DEFAULT_TOP_N):
        self.store = store
        self.embedder = embedder
        self.generator = generator
        self.threshold = threshold
        self.top_n = top_n

    @classmethod
    def from_settings(cls, settings, store, embedder, generator) -> "RetrievalOrchestrator":
        return cls(
            store, embedder, generator,
            threshold=settings.similarity_threshold,
            top_n=settings.top_n,
        )

    def find_matches(self, query_fingerprint: list[float]) -> list[tuple[KnowledgeEntry, float]]:
        """Rank fingerprinted entries against a query fingerprint.

        Entries whose fingerprint dimensionality differs from the query's
        are left out entirely.
        """
        dims = len(query_fingerprint)
        entries = {
            e.id: e for e in self.store.list_fingerprinted()
            if len(e.fingerprint) == dims
        }
        matches = rank(
            query_fingerprint,
            ((entry_id, e.fingerprint) for entry_id, e in entries.items()),
            top_n=self.top_n,
            threshold=self.threshold,
        )
        return [(entries[m.id], m.score) for m in matches]

    def ask(self, question: str, session_id: str | None = None) -> ChatResult:
        """Answer a question, or queue it for human resolution.

        Raises:
            InvalidInput: question is blank.
            UpstreamUnavailable: embedding or generation provider failed.
            StoreError: persistence failure.
        """
        if not isinstance(question, str) or not question.strip():
            raise InvalidInput("Question is required.")
        text = question.strip()

        logger.info('[chat] question: "%s"', text[:200])
        query_fingerprint = fingerprint(self.embedder, text)
        matches = self.find_matches(query_fingerprint)

        if matches:
            logger.info(
                "[chat] %d match(es), top score %.3f (entry %d)",
                len(matches), matches[0][1], matches[0][0].id,
            )
            context = [entry for entry, _ in matches]
            answer = generate_answer(self.generator, text, context)
            return ChatResult(
                answered=True,
                answer=answer,
                sources=[Source(id=e.id, question=e.question, score=s) for e, s in matches],
            )

        logger.info("[chat] no match above %.2f, forwarding to pending queue", self.threshold)
        pending_id = self.store.insert_pending_if_absent(text, session_id or DEFAULT_SESSION)
        return ChatResult(answered=False, answer=FORWARDED_MESSAGE, pending_id=pending_id)
