"""Unit tests for keyword extraction."""

from __future__ import annotations

from formbridge_rag.ingestion.keywords import chunk_keywords, extract_keywords, tokenize


class TestExtractKeywords:
    def test_ranks_by_frequency_then_first_occurrence(self) -> None:
        text = (
            "The applicant must declare income. Income from employment counts as income; "
            "employment insurance too."
        )
        assert extract_keywords(text) == [
            "income",
            "employment",
            "applicant",
            "declare",
            "counts",
            "insurance",
        ]

    def test_drops_short_tokens_and_stop_words(self) -> None:
        assert extract_keywords("The tax for each year would be paid") == ["year", "paid"]

    def test_respects_k(self) -> None:
        text = "alpha bravo charlie delta echo foxtrot"
        assert extract_keywords(text, k=3) == ["alpha", "bravo", "charlie"]
        assert extract_keywords(text, k=0) == []

    def test_punctuation_becomes_whitespace(self) -> None:
        assert extract_keywords("e-mail: SUPPORT@example.org") == ["mail", "support", "example"]

    def test_is_deterministic(self) -> None:
        text = "zeta beta zeta gamma beta alpha"
        assert extract_keywords(text) == extract_keywords(text) == ["zeta", "beta", "gamma", "alpha"]

    def test_keywords_are_distinct_and_lowercase(self) -> None:
        keywords = extract_keywords("Income INCOME income Benefits benefits")
        assert keywords == ["income", "benefits"]


class TestTokenize:
    def test_unicode_letters_are_kept(self) -> None:
        assert tokenize("Aide à l'éducation") == ["aide", "à", "l", "éducation"]

    def test_underscores_split_tokens(self) -> None:
        assert tokenize("form_id") == ["form", "id"]


class TestChunkKeywords:
    def test_uses_ranked_keywords_when_available(self) -> None:
        assert chunk_keywords("Disability benefits and disability support") == ["disability", "benefits", "support"]

    def test_falls_back_to_short_tokens(self) -> None:
        assert chunk_keywords("Tax ID: 42, tax") == ["tax", "id", "42"]

    def test_empty_for_text_without_tokens(self) -> None:
        assert chunk_keywords("--- !!!") == []
