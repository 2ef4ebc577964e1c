"""Tests for tokenization and stopword loading."""

from trendwire.trender.tokenizer import (
    MINIMAL_STOPWORDS,
    load_stopwords,
    tokenize,
)


class TestTokenize:
    """Term extraction from free text."""

    def test_lowercases_and_drops_short_tokens(self):
        tokens = tokenize("Kabinet EU op de Agenda", stopwords=frozenset())
        assert tokens == ["kabinet", "agenda"]

    def test_removes_stopwords(self):
        tokens = tokenize("de verkiezingen van het kabinet", stopwords=frozenset({"van", "het"}))
        assert tokens == ["verkiezingen", "kabinet"]

    def test_strips_punctuation_and_digits(self):
        tokens = tokenize("Brand!!! in 2026: (Rotterdam), 1000 doden?", stopwords=frozenset())
        assert tokens == ["brand", "rotterdam", "doden"]

    def test_keeps_internal_hyphen_and_accents(self):
        tokens = tokenize("Noord-Holland café -los- financiële", stopwords=frozenset())
        assert tokens == ["noord-holland", "café", "los", "financiële"]

    def test_empty_text(self):
        assert tokenize("") == []
        assert tokenize(None) == []

    def test_uses_bundled_stopwords_by_default(self):
        tokens = tokenize("Vandaag gaat het kabinet over de begroting praten")
        assert "vandaag" not in tokens
        assert "gaat" not in tokens
        assert tokens == ["kabinet", "begroting", "praten"]


class TestLoadStopwords:
    """Stopword list loading and fallback."""

    def test_bundled_list_loads(self):
        words = load_stopwords()
        assert "de" in words
        assert "het" in words
        assert len(words) > len(MINIMAL_STOPWORDS)

    def test_custom_file(self, tmp_path):
        path = tmp_path / "stopwords.txt"
        path.write_text("# comment\nFoo\n\nbar\n", encoding="utf-8")
        assert load_stopwords(str(path)) == frozenset({"foo", "bar"})

    def test_missing_file_falls_back(self, tmp_path):
        missing = tmp_path / "missing.txt"
        assert load_stopwords(str(missing)) == MINIMAL_STOPWORDS

    def test_empty_file_falls_back(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("\n# nothing here\n", encoding="utf-8")
        assert load_stopwords(str(path)) == MINIMAL_STOPWORDS
