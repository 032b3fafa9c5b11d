"""
Token counting for context-window management.

Uses a tiktoken encoder when one can be loaded and falls back to a
character-based estimate (roughly 4 characters per token) otherwise.
"""

import math
from typing import Iterable

import structlog
import tiktoken

logger = structlog.get_logger()

CHARS_PER_TOKEN = 4
DEFAULT_ENCODING = "cl100k_base"


class TokenCounter:
    """Counts, checks and truncates text against a token budget.

    Instances hold no per-call state and can be shared between sessions.
    """

    def __init__(self, encoding_name: str = DEFAULT_ENCODING, use_encoder: bool = True):
        self.encoding_name = encoding_name
        self._encoder = None
        if use_encoder:
            try:
                self._encoder = tiktoken.get_encoding(encoding_name)
            except Exception as e:
                logger.warning(
                    "Token encoder unavailable, using character estimate",
                    encoding=encoding_name,
                    error=str(e),
                )

    @property
    def uses_encoder(self) -> bool:
        return self._encoder is not None

    def count_tokens(self, text: str) -> int:
        """Count the tokens in ``text``."""
        if not text:
            return 0
        if self._encoder is not None:
            return len(self._encoder.encode(text, disallowed_special=()))
        return math.ceil(len(text) / CHARS_PER_TOKEN)

    def count_messages(self, contents: Iterable[str]) -> int:
        """Count the tokens of several message contents joined by spaces."""
        return self.count_tokens(" ".join(contents))

    def exceeds_limit(self, text: str, limit: int) -> bool:
        """Check whether ``text`` is over ``limit`` tokens."""
        _check_limit(limit)
        return self.count_tokens(text) > limit

    def truncate_to_fit(self, text: str, limit: int) -> str:
        """Return the longest prefix of ``text`` that fits in ``limit`` tokens."""
        _check_limit(limit)
        if self.count_tokens(text) <= limit:
            return text

        if self._encoder is None:
            return text[: limit * CHARS_PER_TOKEN]

        tokens = self._encoder.encode(text, disallowed_special=())
        keep = limit
        while keep > 0:
            candidate = self._encoder.decode(tokens[:keep])
            # A cut inside a multi-byte character decodes to a replacement char.
            if text.startswith(candidate) and self.count_tokens(candidate) <= limit:
                return candidate
            keep -= 1
        return ""


def _check_limit(limit: int) -> None:
    if limit < 0:
        raise ValueError(f"Token limit must be non-negative, got {limit}")
