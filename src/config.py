"""Runtime configuration for faq-assist.

Everything comes from environment variables, read once at startup:

    DATABASE_URL            PostgreSQL DSN (production). Unset → DuckDB.
    FAQ_DB                  DuckDB file path (local development).
    DB_POOL_MAX             Max pooled Postgres connections (default 20).
    SIMILARITY_THRESHOLD    Minimum cosine score for a match (default 0.75).
    TOP_N                   Matches passed to generation (default 3).
    OPENAI_API_KEY          Embedding provider key.
    EMBEDDING_MODEL         Default text-embedding-3-small.
    ANTHROPIC_API_KEY       Generation provider key.
    GENERATION_MODEL        Default claude-sonnet-4-20250514.
    GENERATION_MAX_TOKENS   Default 1024.
    PROVIDER_TIMEOUT_SECS   Timeout shared by every provider call (default 30).
    FLASK_SECRET_KEY        Flask session key.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_DUCKDB_PATH = str(Path(__file__).parent.parent / "data" / "faq.duckdb")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None
    duckdb_path: str = _DEFAULT_DUCKDB_PATH
    db_pool_max: int = 20
    similarity_threshold: float = 0.75
    top_n: int = 3
    openai_api_key: str | None = None
    embedding_model: str = "text-embedding-3-small"
    anthropic_api_key: str | None = None
    generation_model: str = "claude-sonnet-4-20250514"
    generation_max_tokens: int = 1024
    provider_timeout_secs: float = 30.0
    secret_key: str = "dev-key-change-in-prod"

    def __post_init__(self):
        if not -1.0 <= self.similarity_threshold <= 1.0:
            raise ValueError(
                f"SIMILARITY_THRESHOLD must be within [-1, 1], got {self.similarity_threshold}"
            )
        if self.top_n < 1:
            raise ValueError(f"TOP_N must be >= 1, got {self.top_n}")
        if self.provider_timeout_secs <= 0:
            raise ValueError("PROVIDER_TIMEOUT_SECS must be positive")

    @property
    def backend(self) -> str:
        return "postgres" if self.database_url else "duckdb"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the process environment."""
        return cls(
            database_url=os.environ.get("DATABASE_URL") or None,
            duckdb_path=os.environ.get("FAQ_DB", _DEFAULT_DUCKDB_PATH),
            db_pool_max=_env_int("DB_POOL_MAX", 20),
            similarity_threshold=_env_float("SIMILARITY_THRESHOLD", 0.75),
            top_n=_env_int("TOP_N", 3),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            embedding_model=os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small"),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY") or None,
            generation_model=os.environ.get("GENERATION_MODEL", "claude-sonnet-4-20250514"),
            generation_max_tokens=_env_int("GENERATION_MAX_TOKENS", 1024),
            provider_timeout_secs=_env_float("PROVIDER_TIMEOUT_SECS", 30.0),
            secret_key=os.environ.get("FLASK_SECRET_KEY", "dev-key-change-in-prod"),
        )
