#!/usr/bin/env python3
"""Fingerprint knowledge-base entries that were stored without one.

Entries without a fingerprint never match a question. They appear when rows
are imported directly into the database.

Usage:
    python -m scripts.backfill_fingerprints             # Fingerprint missing entries
    python -m scripts.backfill_fingerprints --dry-run   # List them without calling the API
    python -m scripts.backfill_fingerprints --stats     # Show current store statistics

Requires:
    DATABASE_URL or FAQ_DB: which database to use
    OPENAI_API_KEY:         OpenAI API key for embeddings
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from src.config import Settings
from src.db import Database
from src.faq.embeddings import OpenAIEmbedder
from src.faq.errors import FaqError
from src.faq.store import FingerprintStore

logger = logging.getLogger("backfill_fingerprints")


def backfill(store: FingerprintStore, embedder, dry_run: bool = False) -> int:
    """Fingerprint every entry lacking one. Returns the number of entries handled."""
    entries = store.list_unfingerprinted()
    if not entries:
        logger.info("All knowledge entries already have fingerprints")
        return 0

    logger.info("%d entries without a fingerprint", len(entries))
    if dry_run:
        for e in entries:
            logger.info("  [dry-run] #%d %s", e.id, e.question[:80])
        return len(entries)

    t0 = time.time()
    vectors = embedder.embed_texts([e.question for e in entries])
    updated = 0
    for entry, vector in zip(entries, vectors):
        if store.set_fingerprint(entry.id, vector):
            updated += 1
        else:
            logger.warning("Entry %d disappeared before it could be updated", entry.id)
    logger.info("Fingerprinted %d entries in %.1fs", updated, time.time() - t0)
    return updated


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Backfill knowledge-base fingerprints")
    parser.add_argument("--dry-run", action="store_true",
                        help="List entries without calling the embedding API")
    parser.add_argument("--stats", action="store_true",
                        help="Show current store statistics")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    database = Database.from_settings(settings)
    try:
        database.open()
        store = FingerprintStore(database)
        store.ensure_schema()

        if args.stats:
            for key, value in store.get_stats().items():
                print(f"{key}: {value}")
            return 0

        backfill(store, OpenAIEmbedder.from_settings(settings), dry_run=args.dry_run)
        return 0
    except FaqError as e:
        logger.error("Backfill failed: %s", e)
        return 1
    finally:
        database.close()


if __name__ == "__main__":
    sys.exit(main())
