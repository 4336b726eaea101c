"""Relevance scoring shared by the store backends and the retriever."""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence

from formbridge_rag.ingestion.keywords import STOP_WORDS, tokenize
from formbridge_rag.retrieval.models import KnowledgeChunk

# Relative weight of a term hit in each searchable field.
FIELD_WEIGHTS: dict[str, float] = {"title": 2.0, "keywords": 1.5, "content": 1.0}


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between *a* and *b*, in [-1, 1].

    Returns 0.0 when either vector has zero magnitude.
    """
    if len(a) != len(b):
        raise ValueError(f"Vector dimensions differ: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def query_terms(query: str) -> list[str]:
    """Distinct searchable terms of *query*, in order of appearance."""
    terms: list[str] = []
    for token in tokenize(query):
        if len(token) > 1 and token not in STOP_WORDS and token not in terms:
            terms.append(token)
    return terms


def text_relevance(terms: Sequence[str], chunk: KnowledgeChunk) -> float:
    """Length-normalised, field-weighted term frequency of *terms* in *chunk*.

    A chunk sharing no term with the query scores 0.0.
    """
    if not terms:
        return 0.0
    fields = {
        "title": tokenize(chunk.title),
        "keywords": [kw.lower() for kw in chunk.keywords],
        "content": tokenize(chunk.content),
    }
    score = 0.0
    for name, tokens in fields.items():
        if not tokens:
            continue
        counts = Counter(tokens)
        hits = sum(counts[term] for term in terms)
        if hits:
            score += FIELD_WEIGHTS[name] * hits / len(tokens)
    return score


def rank_by_text(query: str, chunks: Sequence[KnowledgeChunk], limit: int) -> list[tuple[KnowledgeChunk, float]]:
    """Score *chunks* against *query* and return the best *limit* matches."""
    terms = query_terms(query)
    scored = [(chunk, text_relevance(terms, chunk)) for chunk in chunks]
    matched = [(chunk, score) for chunk, score in scored if score > 0.0]
    matched.sort(key=lambda item: -item[1])
    return matched[:limit]
