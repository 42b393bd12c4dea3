"""Tests for merchant similarity scoring."""

import pytest

from txn_dedup.matching.similarity import (
    best_field_similarity,
    combined_similarity,
    field_pairs,
    jaro_winkler,
)
from txn_dedup.models import TransactionRecord


def _rec(description, merchant_name=None, **kw) -> TransactionRecord:
    defaults = dict(amount=-11.99, date="2025-01-16")
    defaults.update(kw)
    return TransactionRecord(
        description=description, merchant_name=merchant_name, **defaults
    )


class TestJaroWinkler:
    def test_identical(self):
        assert jaro_winkler("BURRITO BARN", "burrito barn") == 1.0

    def test_classic_transposition(self):
        assert jaro_winkler("MARTHA", "MARHTA") == pytest.approx(0.961, abs=1e-3)

    def test_empty(self):
        assert jaro_winkler("", "STARBUCKS") == 0.0
        assert jaro_winkler("STARBUCKS", "  ") == 0.0

    def test_bounded(self):
        score = jaro_winkler("STARBUCKS", "DUNKIN DONUTS")
        assert 0.0 <= score < 0.75

    @pytest.mark.parametrize("a,b", [
        ("STARBUCKS", "DUNKIN DONUTS"),
        ("BURRITO BARN", "BURRITO BARN CATERING"),
        ("AWS", "AMAZON WEB SERVICES"),
        ("MARTHA", "MARHTA"),
        ("CHIPOTLE", "CHIPOTLE MEXICAN GRILL"),
    ])
    def test_symmetric(self, a, b):
        assert jaro_winkler(a, b) == pytest.approx(jaro_winkler(b, a), abs=1e-12)


class TestCombinedSimilarity:
    def test_identical(self):
        assert combined_similarity("MUSIC STREAM", "Music Stream") == 1.0

    def test_containment(self):
        assert combined_similarity("MCDONALDS", "DOORDASH MCDONALDS") >= 0.92

    def test_truncated_name(self):
        assert combined_similarity("MUSIC STREAM USA NEW", "MUSIC STREAM") >= 0.88

    def test_distinct_merchants(self):
        assert combined_similarity("STARBUCKS", "DUNKIN DONUTS") < 0.75

    def test_empty(self):
        assert combined_similarity("", "STARBUCKS") == 0.0

    def test_bounded(self):
        for a, b in [("A", "B"), ("TARGET", "TARGET"), ("AWS", "AMAZON WEB SERVICES")]:
            assert 0.0 <= combined_similarity(a, b) <= 1.0


class TestFieldPairs:
    def test_description_only(self):
        pairs = field_pairs(_rec("A"), _rec("B"))
        assert pairs == [("A", "B")]

    def test_both_labels(self):
        pairs = field_pairs(_rec("A", "LA"), _rec("B", "LB"))
        assert pairs == [("A", "B"), ("LA", "B"), ("A", "LB")]


class TestBestFieldSimilarity:
    def test_known_label_rescues_opaque_description(self):
        incoming = _rec("MUSIC STREAM USA    NEW YORK            NY")
        known = _rec("RECURRING CHARGE 99812", merchant_name="Music Stream")
        assert combined_similarity("MUSIC STREAM USA NEW", "CHARGE") < 0.88
        assert best_field_similarity(incoming, known) >= 0.88

    def test_incoming_label_used(self):
        incoming = _rec("PURCHASE 88812345", merchant_name="Burrito Barn")
        known = _rec("AplPay BURRITO BARN 1249RIVERDALE         XX")
        assert best_field_similarity(incoming, known) == 1.0

    def test_takes_maximum(self):
        incoming = _rec("STARBUCKS", merchant_name="Starbucks Coffee")
        known = _rec("STARBUCKS STORE 12345")
        score = best_field_similarity(incoming, known)
        assert score == max(
            combined_similarity("STARBUCKS", "STARBUCKS STORE"),
            combined_similarity("STARBUCKS COFFEE", "STARBUCKS STORE"),
        )
