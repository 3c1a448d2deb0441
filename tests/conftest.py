"""Root-level test conftest: fixtures shared across all test files.

Database isolation: each test gets its own temp DuckDB file, so no test can
see another test's rows. Provider calls are replaced by deterministic fakes;
nothing here touches the network.
"""
import pytest

from src.config import Settings
from src.db import Database
from src.faq.errors import UpstreamUnavailable
from src.faq.store import FingerprintStore

# 3-dim fingerprints used across the suite
HOURS = [1.0, 0.0, 0.0]
HOURS_PARAPHRASE = [0.95, 0.2, 0.0]   # cosine vs HOURS ≈ 0.9786
PASSWORD = [0.0, 1.0, 0.0]
UNRELATED = [0.0, 0.0, 1.0]


class FakeEmbedder:
    """Maps known texts to fixed vectors; anything else gets UNRELATED."""

    def __init__(self, vectors=None, default=None):
        self.vectors = dict(vectors or {})
        self.default = default or UNRELATED
        self.calls = []
        self.fail = False

    def embed(self, text):
        self.calls.append(text)
        if self.fail:
            raise UpstreamUnavailable("embedding provider failed: timeout")
        return list(self.vectors.get(text, self.default))

    def embed_texts(self, texts):
        return [self.embed(t) for t in texts]


class FakeGenerator:
    """Records every call and returns a canned answer."""

    def __init__(self, answer="Generated answer."):
        self.answer = answer
        self.calls = []
        self.fail = False

    def generate(self, question, context):
        self.calls.append((question, list(context)))
        if self.fail:
            raise UpstreamUnavailable("generation provider failed: timeout")
        return self.answer


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "faq_test.duckdb")


@pytest.fixture
def database(db_path):
    db = Database(duckdb_path=db_path).open()
    yield db
    db.close()


@pytest.fixture
def store(database):
    s = FingerprintStore(database)
    s.ensure_schema()
    return s


@pytest.fixture
def embedder():
    return FakeEmbedder({
        "What are your support hours?": HOURS,
        "When is support open?": HOURS_PARAPHRASE,
        "How do I reset my password?": PASSWORD,
    })


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def settings(db_path):
    return Settings(duckdb_path=db_path)
