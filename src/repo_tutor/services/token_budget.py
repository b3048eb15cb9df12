"""Prompt-size guard.

Uses ``tiktoken`` for exact token counting.  A cl100k token always spans
at least one character, so text no longer than the budget in characters
is returned without loading the encoder.
"""

from __future__ import annotations

import tiktoken

_ENCODING_NAME = "cl100k_base"  # GPT-4o family

TRUNCATION_NOTICE = "\n[… truncated to fit token budget]"

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    global _encoder  # noqa: PLW0603
    if _encoder is None:
        _encoder = tiktoken.get_encoding(_ENCODING_NAME)
    return _encoder


def truncate_to_budget(text: str, max_tokens: int) -> str:
    """Truncate *text* to fit within *max_tokens*, cutting at line boundaries.

    Attempts to preserve complete lines rather than splitting mid-word.
    """
    if len(text) <= max_tokens:
        return text

    tokens = _get_encoder().encode(text)
    if len(tokens) <= max_tokens:
        return text

    truncated = _get_encoder().decode(tokens[:max_tokens])

    # Roll back to the last newline for a clean cut
    last_nl = truncated.rfind("\n")
    if last_nl > len(truncated) // 2:
        truncated = truncated[: last_nl + 1]

    return truncated + TRUNCATION_NOTICE
