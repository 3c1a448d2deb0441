"""Tests for FingerprintStore against a temp DuckDB database."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from src.faq.errors import InvalidInput
from src.faq.models import FeedbackKind, PendingStatus, Provenance
from src.faq.store import KB_TABLE, PENDING_TABLE, FingerprintStore


def _count(database, table, where="1=1", params=None):
    return database.query_one(f"SELECT COUNT(*) FROM {table} WHERE {where}", params)[0]


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class TestSchema:
    def test_ensure_schema_is_idempotent(self, store, database):
        store.ensure_schema()
        store.ensure_schema()
        assert _count(database, KB_TABLE) == 0
        assert _count(database, PENDING_TABLE) == 0

    def test_second_store_sees_existing_rows(self, database):
        FingerprintStore(database).ensure_schema()
        FingerprintStore(database).insert_knowledge("Q?", "A.", [1.0])
        second = FingerprintStore(database)
        second.ensure_schema()
        assert len(second.list_knowledge()) == 1


# ---------------------------------------------------------------------------
# Knowledge entries
# ---------------------------------------------------------------------------

class TestInsertKnowledge:
    def test_returns_persisted_entry(self, store):
        entry = store.insert_knowledge("What are your hours?", "9 to 5.", [0.1, 0.2, 0.3])
        assert entry.id is not None
        assert entry.question == "What are your hours?"
        assert entry.answer == "9 to 5."
        assert entry.fingerprint == [0.1, 0.2, 0.3]
        assert entry.provenance == Provenance.ADMIN
        assert entry.like_count == 0
        assert entry.review_count == 0
        assert entry.created_at is not None
        assert entry.updated_at is not None

    def test_fingerprint_round_trips_through_storage(self, store):
        entry = store.insert_knowledge("Q?", "A.", [0.25, -0.5, 1e-7])
        assert store.get_knowledge(entry.id).fingerprint == [0.25, -0.5, 1e-7]

    def test_ids_are_unique(self, store):
        ids = {store.insert_knowledge(f"Q{i}?", "A.", [1.0]).id for i in range(5)}
        assert len(ids) == 5

    def test_trims_text(self, store):
        entry = store.insert_knowledge("  Q?  ", "  A.  ", [1.0])
        assert entry.question == "Q?"
        assert entry.answer == "A."

    @pytest.mark.parametrize("question,answer", [
        ("", "A."),
        ("   ", "A."),
        ("Q?", ""),
        (None, "A."),
        ("Q?", None),
    ])
    def test_rejects_blank_text(self, store, database, question, answer):
        with pytest.raises(InvalidInput):
            store.insert_knowledge(question, answer, [1.0])
        assert _count(database, KB_TABLE) == 0

    @pytest.mark.parametrize("fp", [[], ["a", "b"], "1,2,3", [True, False]])
    def test_rejects_bad_fingerprint(self, store, fp):
        with pytest.raises(InvalidInput):
            store.insert_knowledge("Q?", "A.", fp)

    def test_rejects_unknown_provenance(self, store):
        with pytest.raises(InvalidInput):
            store.insert_knowledge("Q?", "A.", [1.0], provenance="import")

    def test_accepts_missing_fingerprint(self, store):
        entry = store.insert_knowledge("Q?", "A.", None)
        assert entry.fingerprint is None


class TestListKnowledge:
    def test_list_fingerprinted_skips_missing(self, store):
        a = store.insert_knowledge("A?", "a", [1.0, 0.0])
        store.insert_knowledge("B?", "b", None)
        c = store.insert_knowledge("C?", "c", [0.0, 1.0])
        assert [e.id for e in store.list_fingerprinted()] == [a.id, c.id]

    def test_list_fingerprinted_skips_unreadable(self, store, database):
        good = store.insert_knowledge("A?", "a", [1.0, 0.0])
        bad = store.insert_knowledge("B?", "b", [0.0, 1.0])
        with database.transaction(write=True) as tx:
            tx.execute(f"UPDATE {KB_TABLE} SET fingerprint = %s WHERE id = %s", ("not json", bad.id))
        assert [e.id for e in store.list_fingerprinted()] == [good.id]

    def test_list_unfingerprinted(self, store):
        store.insert_knowledge("A?", "a", [1.0])
        b = store.insert_knowledge("B?", "b", None)
        assert [e.id for e in store.list_unfingerprinted()] == [b.id]

    def test_list_knowledge_newest_first(self, store):
        ids = [store.insert_knowledge(f"Q{i}?", "A.", [1.0]).id for i in range(3)]
        assert [e.id for e in store.list_knowledge()] == list(reversed(ids))

    def test_get_missing(self, store):
        assert store.get_knowledge(999) is None


class TestUpdateAnswer:
    def test_replaces_answer_and_resets_counters(self, store):
        entry = store.insert_knowledge("Q?", "old", [0.5, 0.5])
        store.bump_counter(entry.id, FeedbackKind.LIKE)
        store.bump_counter(entry.id, FeedbackKind.REVIEW_REQUEST)

        updated = store.update_answer(entry.id, "new")

        assert updated.answer == "new"
        assert updated.like_count == 0
        assert updated.review_count == 0
        assert updated.fingerprint == [0.5, 0.5]
        assert updated.question == "Q?"
        assert updated.updated_at >= entry.updated_at

    def test_missing_entry(self, store):
        assert store.update_answer(999, "new") is None

    def test_blank_answer(self, store):
        entry = store.insert_knowledge("Q?", "old", [1.0])
        with pytest.raises(InvalidInput):
            store.update_answer(entry.id, "  ")
        assert store.get_knowledge(entry.id).answer == "old"


class TestSetFingerprint:
    def test_sets_fingerprint(self, store):
        entry = store.insert_knowledge("Q?", "A.", None)
        assert store.set_fingerprint(entry.id, [0.1, 0.9]) is True
        assert store.get_knowledge(entry.id).fingerprint == [0.1, 0.9]

    def test_missing_entry(self, store):
        assert store.set_fingerprint(999, [1.0]) is False


class TestDeleteKnowledge:
    def test_deletes(self, store):
        entry = store.insert_knowledge("Q?", "A.", [1.0])
        assert store.delete_knowledge(entry.id) is True
        assert store.get_knowledge(entry.id) is None
        assert store.list_fingerprinted() == []

    def test_delete_missing(self, store):
        assert store.delete_knowledge(999) is False


class TestBumpCounter:
    def test_like_and_review(self, store):
        entry = store.insert_knowledge("Q?", "A.", [1.0])
        store.bump_counter(entry.id, FeedbackKind.LIKE)
        store.bump_counter(entry.id, "like")
        updated = store.bump_counter(entry.id, FeedbackKind.REVIEW_REQUEST)
        assert updated.like_count == 2
        assert updated.review_count == 1

    def test_missing_entry(self, store):
        assert store.bump_counter(999, FeedbackKind.LIKE) is None

    def test_unknown_kind(self, store):
        entry = store.insert_knowledge("Q?", "A.", [1.0])
        with pytest.raises(InvalidInput):
            store.bump_counter(entry.id, "dislike")


# ---------------------------------------------------------------------------
# Pending queue
# ---------------------------------------------------------------------------

class TestInsertPending:
    def test_creates_pending_row(self, store):
        pid = store.insert_pending_if_absent("Do you ship to Mars?", "s1")
        pending = store.get_pending(pid)
        assert pending.question == "Do you ship to Mars?"
        assert pending.session_id == "s1"
        assert pending.status == PendingStatus.PENDING
        assert pending.asked_at is not None

    def test_identical_text_coalesces(self, store, database):
        first = store.insert_pending_if_absent("Do you ship to Mars?", "s1")
        second = store.insert_pending_if_absent("Do you ship to Mars?", "s2")
        assert first == second
        assert _count(database, PENDING_TABLE) == 1
        # First asker's session is kept
        assert store.get_pending(first).session_id == "s1"

    def test_different_text_creates_new_row(self, store):
        a = store.insert_pending_if_absent("Question one?")
        b = store.insert_pending_if_absent("Question two?")
        assert a != b

    def test_resolved_row_does_not_coalesce(self, store, database):
        first = store.insert_pending_if_absent("Do you ship to Mars?")
        store.set_pending_status(first, PendingStatus.DISMISSED)
        second = store.insert_pending_if_absent("Do you ship to Mars?")
        assert second != first
        assert _count(database, PENDING_TABLE, "status = %s", ("pending",)) == 1

    def test_blank_question(self, store):
        with pytest.raises(InvalidInput):
            store.insert_pending_if_absent("   ")

    def test_concurrent_identical_inserts_yield_one_row(self, store, database):
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(
                lambda i: store.insert_pending_if_absent("Same question?", f"s{i}"),
                range(16),
            ))
        assert len(set(ids)) == 1
        assert _count(database, PENDING_TABLE) == 1


class TestListPending:
    def test_filter_and_order(self, store):
        a = store.insert_pending_if_absent("A?")
        b = store.insert_pending_if_absent("B?")
        c = store.insert_pending_if_absent("C?")
        store.set_pending_status(b, PendingStatus.DISMISSED)

        assert [p.id for p in store.list_pending(PendingStatus.PENDING)] == [c, a]
        assert [p.id for p in store.list_pending("dismissed")] == [b]
        assert [p.id for p in store.list_pending()] == [c, b, a]

    def test_unknown_status(self, store):
        with pytest.raises(InvalidInput):
            store.list_pending("archived")


class TestSetPendingStatus:
    def test_pending_to_dismissed(self, store):
        pid = store.insert_pending_if_absent("Q?")
        updated = store.set_pending_status(pid, PendingStatus.DISMISSED)
        assert updated.status == PendingStatus.DISMISSED

    def test_terminal_status_is_not_overwritten(self, store):
        pid = store.insert_pending_if_absent("Q?")
        store.set_pending_status(pid, PendingStatus.DISMISSED)
        assert store.set_pending_status(pid, PendingStatus.ANSWERED) is None
        assert store.get_pending(pid).status == PendingStatus.DISMISSED

    def test_cannot_move_back_to_pending(self, store):
        pid = store.insert_pending_if_absent("Q?")
        with pytest.raises(InvalidInput):
            store.set_pending_status(pid, PendingStatus.PENDING)

    def test_missing_row(self, store):
        assert store.set_pending_status(999, PendingStatus.DISMISSED) is None


class TestPromotePending:
    def test_marks_answered_and_inserts_entry(self, store):
        pid = store.insert_pending_if_absent("Do you ship to Mars?")
        entry = store.promote_pending(pid, "Not yet.", [0.0, 1.0])

        assert entry.question == "Do you ship to Mars?"
        assert entry.answer == "Not yet."
        assert entry.provenance == Provenance.ADMIN_FROM_PENDING
        assert entry.fingerprint == [0.0, 1.0]
        assert store.get_pending(pid).status == PendingStatus.ANSWERED

    def test_second_promote_writes_nothing(self, store, database):
        pid = store.insert_pending_if_absent("Q?")
        store.promote_pending(pid, "A.", [1.0])
        assert store.promote_pending(pid, "Again.", [1.0]) is None
        assert _count(database, KB_TABLE) == 1

    def test_dismissed_row_is_not_promoted(self, store, database):
        pid = store.insert_pending_if_absent("Q?")
        store.set_pending_status(pid, PendingStatus.DISMISSED)
        assert store.promote_pending(pid, "A.", [1.0]) is None
        assert _count(database, KB_TABLE) == 0

    def test_concurrent_promotes_insert_once(self, store, database):
        pid = store.insert_pending_if_absent("Q?")
        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(pool.map(
                lambda i: store.promote_pending(pid, f"A{i}.", [1.0]),
                range(8),
            ))
        assert sum(r is not None for r in results) == 1
        assert _count(database, KB_TABLE) == 1


class TestStats:
    def test_counts(self, store):
        store.insert_knowledge("A?", "a", [1.0])
        store.insert_knowledge("B?", "b", None)
        p1 = store.insert_pending_if_absent("X?")
        store.insert_pending_if_absent("Y?")
        store.set_pending_status(p1, PendingStatus.DISMISSED)

        stats = store.get_stats()
        assert stats["knowledge_entries"] == 2
        assert stats["fingerprinted_entries"] == 1
        assert stats["pending_by_status"] == {"pending": 1, "answered": 0, "dismissed": 1}
