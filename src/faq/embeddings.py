"""OpenAI embedding client (the fingerprint provider).

Uses text-embedding-3-small (1536 dimensions, $0.02/1M tokens) by default.
Batches requests for bulk fingerprinting. The SDK's retry loop is disabled:
the chat path is fail-fast and retries belong to the caller.
"""

from __future__ import annotations

import logging
from typing import Sequence

import openai

from src.faq.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_TIMEOUT_SECS = 30.0
_BATCH_SIZE = 100  # OpenAI allows up to 2048, but 100 keeps memory reasonable
_MAX_CHARS = 30000  # OpenAI limit is 8191 tokens ≈ 30K chars


class OpenAIEmbedder:
    """Maps text to a fixed-length vector via the OpenAI embeddings API."""

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL,
                 timeout: float = DEFAULT_TIMEOUT_SECS):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = None

    @classmethod
    def from_settings(cls, settings) -> "OpenAIEmbedder":
        return cls(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            timeout=settings.provider_timeout_secs,
        )

    def _get_client(self):
        if not self.api_key:
            raise UpstreamUnavailable("OPENAI_API_KEY not configured")
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed a list of texts.

        Returns:
            One vector per input text, in input order.

        Raises:
            UpstreamUnavailable: missing key, API error, timeout, or a
                malformed response.
        """
        client = self._get_client()
        all_embeddings: list[list[float]] = []

        for i in range(0, len(texts), _BATCH_SIZE):
            batch = [t[:_MAX_CHARS] for t in texts[i: i + _BATCH_SIZE]]
            try:
                response = client.embeddings.create(input=batch, model=self.model)
            except openai.OpenAIError as e:
                logger.error("Embedding API error: %s", e)
                raise UpstreamUnavailable(f"embedding provider failed: {e}") from e

            vectors = [item.embedding for item in response.data]
            if len(vectors) != len(batch) or any(not v for v in vectors):
                raise UpstreamUnavailable("embedding provider returned a malformed response")
            all_embeddings.extend(vectors)

            if i + _BATCH_SIZE < len(texts):
                logger.info("Embedded %d/%d texts...", min(i + _BATCH_SIZE, len(texts)), len(texts))

        return all_embeddings

    def embed(self, text: str) -> list[float]:
        """Embed a single text. Convenience wrapper around embed_texts."""
        return self.embed_texts([text])[0]


def fingerprint(embedder, text: str) -> list[float]:
    """Fingerprint text with any embedding provider.

    Provider failures of any kind surface as UpstreamUnavailable, so the
    orchestrator and the resolution workflow see one error type.
    """
    try:
        vector = embedder.embed(text)
    except UpstreamUnavailable:
        raise
    except Exception as e:
        logger.error("Embedding provider failed: %s", e)
        raise UpstreamUnavailable(f"embedding provider failed: {e}") from e
    if not vector:
        raise UpstreamUnavailable("embedding provider returned an empty vector")
    return [float(v) for v in vector]
