from __future__ import annotations

import math

import tiktoken

from fuse_context.logging import logger

APPROXIMATE = "approx"
CHARS_PER_TOKEN = 4


def approximate_token_count(text: str) -> int:
    """Estimate tokens as one per four characters, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class TokenEstimator:
    """Count tokens with one fixed scheme for the whole run.

    The tiktoken encoding is resolved once, at construction. When it cannot be
    loaded (unknown name, or the BPE file cannot be fetched offline) the estimator
    falls back to `approximate_token_count` for every call, so counts stay
    consistent within a run.

    Attributes:
        encoding_name: the requested encoding name.
        scheme: the scheme actually in use (an encoding name or ``approx``).
    """

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self.encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None
        if encoding_name != APPROXIMATE:
            try:
                self._encoding = tiktoken.get_encoding(encoding_name)
            except Exception as e:  # noqa: BLE001
                logger.warning("tokenizer_unavailable", encoding=encoding_name, fallback=APPROXIMATE, error=str(e))
        self.scheme = self._encoding.name if self._encoding is not None else APPROXIMATE

    def __call__(self, text: str) -> int:
        return self.count(text)

    def count(self, text: str) -> int:
        """Return the token count of `text` (>= 0, deterministic)."""
        if not text:
            return 0
        if self._encoding is None:
            return approximate_token_count(text)
        return len(self._encoding.encode(text, disallowed_special=()))
