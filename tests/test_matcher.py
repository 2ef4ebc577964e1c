"""Tests for representative document matching."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW, make_document
from trendwire.trender.matcher import (
    count_occurrences,
    documents_published_today,
    rank_documents,
    recency_bonus,
    representative_document,
    score_document,
)


class TestScoring:

    def test_count_occurrences_is_case_insensitive(self):
        assert count_occurrences("Storm, STORM en stormschade", "storm") == 3
        assert count_occurrences("", "storm") == 0

    def test_score_components(self):
        document = make_document("a", "Storm storm", "storm", region="national")
        expected = 100 + 2 * 10 + 1 + recency_bonus(document.published_at)
        assert score_document(document, "storm") == pytest.approx(expected)

    def test_recency_bonus_below_one(self):
        assert 0 < recency_bonus(NOW) < 1
        assert recency_bonus(NOW) > recency_bonus(NOW - timedelta(hours=1))


class TestRepresentativeDocument:

    def test_national_document_wins(self):
        regional = make_document("a", "Verkiezingen in Utrecht", "verkiezingen verkiezingen", region="utrecht")
        national = make_document("b", "Kabinet", "over de verkiezingen", region="national", minutes_ago=30)

        assert representative_document("verkiezingen", [regional, national]) == national

    def test_title_match_outweighs_body(self):
        body_only = make_document("a", "Nieuws", "storm storm storm")
        in_title = make_document("b", "Storm op komst", "", minutes_ago=10)

        assert representative_document("storm", [body_only, in_title]) == in_title

    def test_recency_only_breaks_ties(self):
        older = make_document("a", "Storm", "", minutes_ago=60)
        newer = make_document("b", "Storm!", "", minutes_ago=1)
        more_mentions = make_document("c", "Storm", "storm", minutes_ago=600)

        assert representative_document("storm", [older, newer]) == newer
        assert representative_document("storm", [older, newer, more_mentions]) == more_mentions

    def test_exact_tie_goes_to_first_document(self):
        first = make_document("a", "Storm", "")
        second = make_document("b", "Storm ", "")

        assert representative_document("storm", [first, second]) == first
        assert representative_document("storm", [second, first]) == second

    def test_deterministic(self):
        docs = [make_document(str(i), f"Storm {i}", "storm" * (i % 3), minutes_ago=i) for i in range(10)]
        results = {representative_document("storm", docs).identity for _ in range(5)}
        assert len(results) == 1

    def test_no_match_returns_none(self):
        docs = [make_document("a", "Ajax wint", "voetbal")]
        assert representative_document("storm", docs) is None
        assert representative_document("", docs) is None
        assert representative_document("storm", []) is None

    def test_multi_word_topic(self):
        docs = [
            make_document("a", "Brand", "in de haven"),
            make_document("b", "Grote brand", "Brand in Rotterdam haven", minutes_ago=5),
        ]
        assert representative_document("brand in rotterdam", docs) == docs[1]

    def test_custom_national_label(self):
        regional = make_document("a", "Storm storm", "", region="noord")
        landelijk = make_document("b", "Storm", "", region="landelijk")
        assert representative_document("storm", [regional, landelijk], national_region="landelijk") == landelijk

    def test_rank_documents_orders_by_score(self):
        low = make_document("a", "Nieuws", "storm")
        high = make_document("b", "Storm", "storm")
        ranked = rank_documents("storm", [low, high])
        assert [s.document for s in ranked] == [high, low]


class TestPublishedToday:

    def test_only_since_local_midnight(self):
        # 2026-10-18 00:00 Europe/Amsterdam is 2026-10-17 22:00 UTC
        before = make_document("a", "Gisteren", now=datetime(2026, 10, 17, 21, 59, tzinfo=timezone.utc))
        after = make_document("b", "Vandaag", now=datetime(2026, 10, 17, 22, 1, tzinfo=timezone.utc))
        current = make_document("c", "Nu")

        result = documents_published_today([before, after, current], NOW, "Europe/Amsterdam")

        assert result == [after, current]
