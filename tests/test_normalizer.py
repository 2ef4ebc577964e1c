"""Tests for raw feed item normalization."""

from datetime import datetime, timezone

import pytest

from conftest import NOW
from trendwire.ingestor.normalizer import (
    clean_text,
    normalize_raw_document,
    normalize_url,
    parse_datetime_guess,
)


class TestCleanText:

    def test_strips_html_and_scripts(self):
        raw = "<p>Storm <b>raast</b></p><script>alert(1)</script><style>p{}</style>"
        assert clean_text(raw) == "Storm raast"

    def test_decodes_entities_and_collapses_whitespace(self):
        assert clean_text("Caf&eacute;\n\n  de   Kroon") == "Café de Kroon"

    def test_empty(self):
        assert clean_text("") == ""


class TestParseDatetimeGuess:

    def test_rfc_2822(self):
        parsed = parse_datetime_guess("Sun, 18 Oct 2026 14:00:00 +0200")
        assert parsed == datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def test_iso_naive_is_utc(self):
        assert parse_datetime_guess("2026-10-18T12:00:00") == NOW

    def test_unparseable_falls_back_to_now(self):
        assert parse_datetime_guess("gisteren", now=NOW) == NOW
        assert parse_datetime_guess(None, now=NOW) == NOW


class TestNormalizeUrl:

    def test_removes_tracking_and_fragment(self):
        url = "https://nos.nl/artikel/1?utm_source=rss&b=2&a=1#reacties"
        assert normalize_url(url) == "https://nos.nl/artikel/1?a=1&b=2"

    def test_only_tracking_params(self):
        assert normalize_url("https://nos.nl/a?fbclid=xyz") == "https://nos.nl/a"


class TestNormalizeRawDocument:

    def test_feed_item(self):
        raw = {
            "title": "Storm raast over <em>Nederland</em>",
            "content": "<p>Code oranje in het hele land.</p>",
            "link": "https://nos.nl/artikel/1?utm_medium=feed",
            "pubDate": "Sun, 18 Oct 2026 13:30:00 +0200",
            "medium": "NOS",
            "region": "national",
        }

        document = normalize_raw_document(raw)

        assert document.title == "Storm raast over Nederland"
        assert document.body == "Code oranje in het hele land."
        assert document.identity == "https://nos.nl/artikel/1"
        assert document.published_at == datetime(2026, 10, 18, 11, 30, tzinfo=timezone.utc)
        assert document.source == "NOS"
        assert document.region == "national"
        assert document.keyword is None

    def test_alternative_keys(self):
        raw = {
            "title": "Ajax wint",
            "summary": "Ruime zege",
            "url": "https://example.nl/ajax",
            "isoDate": "2026-10-18T10:00:00Z",
            "source": "RTV",
        }
        document = normalize_raw_document(raw)
        assert document.body == "Ruime zege"
        assert document.identity == "https://example.nl/ajax"
        assert document.source == "RTV"
        assert document.region == ""

    def test_missing_date_uses_now(self):
        document = normalize_raw_document({"title": "T", "link": "https://x.nl/t"}, now=NOW)
        assert document.published_at == NOW

    @pytest.mark.parametrize("raw", [
        {"link": "https://x.nl/a"},
        {"title": "  ", "link": "https://x.nl/a"},
        {"title": "Titel"},
    ])
    def test_incomplete_item_is_rejected(self, raw):
        assert normalize_raw_document(raw) is None
