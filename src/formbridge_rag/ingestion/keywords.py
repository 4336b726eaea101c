"""Keyword extraction for chunk search optimisation."""

from __future__ import annotations

import re
from collections import Counter

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
        "being", "have", "has", "had", "do", "does", "did", "will", "would",
        "could", "should", "may", "might", "must", "shall", "can", "this",
        "that", "these", "those", "i", "you", "he", "she", "it", "we", "they",
        "what", "which", "who", "when", "where", "why", "how", "all", "each",
        "every", "both", "few", "more", "most", "other", "some", "such", "no",
        "nor", "not", "only", "own", "same", "so", "than", "too", "very", "just",
    }
)

MIN_KEYWORD_LENGTH = 4

# Runs of letters/digits in any script; underscores count as separators.
_TOKEN_RE = re.compile(r"[^\W_]+")


def tokenize(text: str) -> list[str]:
    """Lowercase *text* and split it into alphanumeric tokens."""
    return _TOKEN_RE.findall(text.lower())


def extract_keywords(text: str, k: int = 10) -> list[str]:
    """Return up to *k* content tokens of *text*, most frequent first.

    Tokens shorter than four characters and stop words are dropped.  Ties
    keep the order in which tokens first appear, so the result is
    deterministic for a given input.
    """
    if k <= 0:
        return []
    words = [w for w in tokenize(text) if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS]
    # Counter preserves insertion order and sorted() is stable.
    freq = Counter(words)
    ranked = sorted(freq.items(), key=lambda item: -item[1])
    return [word for word, _ in ranked[:k]]


def chunk_keywords(text: str, k: int = 10) -> list[str]:
    """Keywords for a stored chunk, never empty when *text* has any token.

    Short texts made only of short words ("Tax ID: 42") would otherwise
    carry no keywords at all, so fall back to their distinct tokens.
    """
    keywords = extract_keywords(text, k)
    if keywords:
        return keywords
    fallback: list[str] = []
    for token in tokenize(text):
        if token not in fallback:
            fallback.append(token)
    return fallback[:k]
