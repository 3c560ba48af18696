"""Heuristic token estimation and front-truncation of long prompts."""

import logging
import math

logger = logging.getLogger(__name__)

MAX_CONTEXT_TOKENS = 12000
CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "[... previous content truncated to fit token limit ...]\n\n"


def estimate_tokens(text: str) -> int:
    """Approximate token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_prompt(text: str, max_tokens: int = MAX_CONTEXT_TOKENS) -> str:
    """Drop content from the front of ``text`` until it fits ``max_tokens``.

    The most recent content is kept. The cut lands on a line boundary so
    structured content (transcripts, JSON) is never split mid-line, and the
    result is prefixed with TRUNCATION_MARKER. The marker's own cost is taken
    out of the budget, which keeps the result within ``max_tokens`` and makes
    a second pass a no-op.

    If no newline follows the computed offset the remainder is empty and only
    the marker is returned.
    """
    current = estimate_tokens(text)
    if current <= max_tokens:
        return text

    budget = max_tokens - estimate_tokens(TRUNCATION_MARKER)
    excess = current - budget
    offset = excess * CHARS_PER_TOKEN

    newline = text.find("\n", offset)
    cut = len(text) if newline == -1 else newline + 1
    truncated = TRUNCATION_MARKER + text[cut:]

    logger.warning(
        "Prompt truncated to fit token limit: ~%d -> ~%d tokens (limit %d)",
        current,
        estimate_tokens(truncated),
        max_tokens,
    )
    return truncated
