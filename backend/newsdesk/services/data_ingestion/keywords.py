"""
Keyword extraction for article indexing.
"""

import re
from itertools import islice
from typing import Iterator, Optional

MAX_KEYWORDS = 10
MIN_TOKEN_LENGTH = 3

STOP_WORDS = frozenset({
    "the", "is", "at", "which", "on", "and", "a", "to", "are",
    "as", "was", "will", "for", "of", "with", "in",
})

_NON_WORD = re.compile(r"[^\w\s]")


def _tokens(text: str) -> Iterator[str]:
    for token in _NON_WORD.sub(" ", text.lower()).split():
        if len(token) >= MIN_TOKEN_LENGTH and token not in STOP_WORDS:
            yield token


def extract_keywords(text: Optional[str], limit: int = MAX_KEYWORDS) -> list[str]:
    """
    Up to ``limit`` lower-case tokens in order of first appearance.

    Punctuation becomes whitespace; tokens shorter than three characters and
    stop words are dropped. Repeated tokens are kept as they occur.
    """
    if not text:
        return []
    return list(islice(_tokens(text), limit))
