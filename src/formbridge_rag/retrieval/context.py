"""Context assembly — ranked chunks → one prompt-ready string."""

from __future__ import annotations

from collections.abc import Sequence

from formbridge_rag.retrieval.models import ScoredChunk

CONTEXT_HEADER = "RELEVANT KNOWLEDGE:"
CONTEXT_FOOTER = (
    "---\n"
    "Use the above information to help answer the user's question. "
    "Cite sources when relevant."
)


def build_context(results: Sequence[ScoredChunk]) -> str:
    """Number each result's title and content under a fixed header.

    Returns ``""`` for no results.  The output depends only on the order,
    titles, and contents of *results*.
    """
    if not results:
        return ""
    parts = [f"[Source {i}: {r.chunk.title}]\n{r.chunk.content}" for i, r in enumerate(results, 1)]
    return "\n".join([CONTEXT_HEADER, "\n\n".join(parts), CONTEXT_FOOTER])
