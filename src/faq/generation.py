"""Claude answer synthesis from matched knowledge-base entries.

Wraps the Anthropic SDK so the rest of the codebase does not import
``anthropic`` directly. The prompt restricts the model to the supplied
context and asks it to say so when the context falls short.

Environment variables (via src.config):
    ANTHROPIC_API_KEY: Required for generation.
    GENERATION_MODEL: Override model (default: claude-sonnet-4-20250514).
"""

import logging
import time
from typing import Sequence

import anthropic

from src.faq.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 1024
DEFAULT_TIMEOUT_SECS = 30.0

SYSTEM_PROMPT = (
    "You are a helpful FAQ assistant. Use the knowledge base context supplied "
    "with each question to answer it accurately and concisely.\n\n"
    "Instructions:\n"
    "- Only use information from the knowledge base context.\n"
    "- If the context doesn't fully answer the question, say so honestly.\n"
    "- Do NOT make up information that is not in the context.\n"
    "- Keep the answer concise and friendly.\n"
)


def format_context(context: Sequence) -> str:
    """Render entries (anything with .question and .answer) as numbered Q/A pairs."""
    return "\n\n".join(
        f"[{i}] Q: {entry.question}\n    A: {entry.answer}"
        for i, entry in enumerate(context, 1)
    )


def build_prompt(question: str, context: Sequence) -> tuple[str, str]:
    """Return (system, user) prompt text for a question and its context."""
    user = (
        f"KNOWLEDGE BASE CONTEXT:\n{format_context(context)}\n\n"
        f"USER QUESTION: {question}"
    )
    return SYSTEM_PROMPT, user


class AnthropicGenerator:
    """Generates an answer from ranked context with the Claude messages API."""

    def __init__(self, api_key: str | None = None, model: str = DEFAULT_MODEL,
                 max_tokens: int = DEFAULT_MAX_TOKENS,
                 timeout: float = DEFAULT_TIMEOUT_SECS):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = None

    @classmethod
    def from_settings(cls, settings) -> "AnthropicGenerator":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.generation_model,
            max_tokens=settings.generation_max_tokens,
            timeout=settings.provider_timeout_secs,
        )

    def _get_client(self):
        if not self.api_key:
            raise UpstreamUnavailable("ANTHROPIC_API_KEY not configured")
        if self._client is None:
            self._client = anthropic.Anthropic(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def generate(self, question: str, context: Sequence) -> str:
        """Answer ``question`` from ``context``.

        Raises:
            UpstreamUnavailable: missing key, API error/timeout, or no text
                in the response.
        """
        client = self._get_client()
        system, user = build_prompt(question, context)

        t0 = time.perf_counter()
        try:
            response = client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
        except anthropic.AnthropicError as e:
            logger.error("Generation API error: %s", e)
            raise UpstreamUnavailable(f"generation provider failed: {e}") from e
        duration_ms = int((time.perf_counter() - t0) * 1000)

        text = "".join(
            block.text for block in response.content if block.type == "text"
        ).strip()
        logger.info(
            "[generate] model=%s duration_ms=%d in_tok=%d out_tok=%d",
            self.model,
            duration_ms,
            response.usage.input_tokens,
            response.usage.output_tokens,
        )
        if not text:
            raise UpstreamUnavailable("generation provider returned no text")
        return text


def generate_answer(generator, question: str, context: Sequence) -> str:
    """Call any generation provider; failures surface as UpstreamUnavailable."""
    try:
        answer = generator.generate(question, context)
    except UpstreamUnavailable:
        raise
    except Exception as e:
        logger.error("Generation provider failed: %s", e)
        raise UpstreamUnavailable(f"generation provider failed: {e}") from e
    if not answer or not answer.strip():
        raise UpstreamUnavailable("generation provider returned no text")
    return answer.strip()
