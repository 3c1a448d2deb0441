"""Shared utilities used across the Flask Blueprint modules."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app, request

from src.db import Database
from src.faq.resolution import ResolutionWorkflow
from src.faq.retrieval import RetrievalOrchestrator
from src.faq.store import FingerprintStore

EXTENSION_KEY = "faq"


@dataclass
class Services:
    """Components built once per app by create_app()."""
    database: Database
    store: FingerprintStore
    orchestrator: RetrievalOrchestrator
    workflow: ResolutionWorkflow


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]


def json_body() -> dict:
    """Request JSON as a dict ({} for missing or non-object bodies)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
