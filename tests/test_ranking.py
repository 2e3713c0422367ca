# tests/test_ranking.py
"""
Tests for postal-code candidate selection:
- distance metric and bucket bounds
- tie-inclusive rank & cap
- uniform sampling
"""
from __future__ import annotations

import random
from collections import Counter

import pytest

from helpmatch.core.matching.errors import InvalidPostalCodeError
from helpmatch.core.matching.ranking import (
    filter_same_width,
    postal_bucket,
    postal_distance,
    rank_and_cap,
    sample,
    select_candidates,
    validate_postal_code,
)


def _offers(make_offer, *codes: str):
    return [make_offer(f"o{i}", code) for i, code in enumerate(codes)]


# ---------------------------------------------------------------------------
# Distance & bucket
# ---------------------------------------------------------------------------

class TestDistance:
    def test_absolute_difference(self):
        assert postal_distance("04109", "04103") == 6
        assert postal_distance("04103", "04109") == 6

    def test_leading_zeros_are_decimal(self):
        # "08" must not be read as octal
        assert postal_distance("00008", "00010") == 2

    def test_identical_codes(self):
        assert postal_distance("12345", "12345") == 0


class TestPostalBucket:
    def test_bucket_bounds(self):
        assert postal_bucket("04000") == ("04000", "04999")
        assert postal_bucket("04109") == ("04000", "04999")

    def test_bucket_membership(self):
        start, end = postal_bucket("04000")
        assert start <= "04010" <= end
        assert start <= "04500" <= end
        assert not (start <= "05000" <= end)
        assert not (start <= "03999" <= end)

    def test_three_digit_code_is_whole_range(self):
        assert postal_bucket("123") == ("000", "999")

    @pytest.mark.parametrize("code", [None, "", "12", "04a09", "０４１０９", 4109])
    def test_invalid_codes_rejected(self, code):
        with pytest.raises(InvalidPostalCodeError):
            validate_postal_code(code)


class TestFilterSameWidth:
    def test_drops_other_widths(self, make_offer):
        offers = _offers(make_offer, "04109", "0410", "041099", "04999")
        kept = filter_same_width(offers, "04109")
        assert [o.postal_code for o in kept] == ["04109", "04999"]

    def test_drops_non_numeric(self, make_offer):
        offers = _offers(make_offer, "04109", "04x09")
        assert [o.postal_code for o in filter_same_width(offers, "04109")] == ["04109"]


# ---------------------------------------------------------------------------
# Rank & cap
# ---------------------------------------------------------------------------

class TestRankAndCap:
    def test_fewer_than_k_returns_all_sorted(self, make_offer):
        offers = _offers(make_offer, "04120", "04109", "04100")
        ranked = rank_and_cap(offers, "04109", max_results=30)
        assert [c.distance for c in ranked] == [0, 9, 11]

    def test_without_ties_exactly_k(self, make_offer):
        offers = _offers(make_offer, "04101", "04102", "04103", "04104", "04105")
        ranked = rank_and_cap(offers, "04100", max_results=3)
        assert [c.offer.postal_code for c in ranked] == ["04101", "04102", "04103"]

    def test_boundary_is_kth_closest(self, make_offer):
        # distances [1, 1, 5], K=2 → only the two d=1 candidates
        offers = _offers(make_offer, "04101", "04099", "04105")
        ranked = rank_and_cap(offers, "04100", max_results=2)
        assert sorted(c.distance for c in ranked) == [1, 1]

    def test_ties_at_boundary_are_all_kept(self, make_offer):
        # distances [1, 2, 2, 2, 7], K=2 → boundary 2, four kept
        offers = _offers(make_offer, "04101", "04102", "04098", "04102", "04107")
        ranked = rank_and_cap(offers, "04100", max_results=2)
        assert len(ranked) == 4
        assert max(c.distance for c in ranked) == 2

    def test_stable_for_equal_distances(self, make_offer):
        offers = _offers(make_offer, "04102", "04098", "04102")
        ranked = rank_and_cap(offers, "04100", max_results=5)
        assert [c.offer.id for c in ranked] == ["o0", "o1", "o2"]

    def test_zero_k_returns_nothing(self, make_offer):
        offers = _offers(make_offer, "04101", "04102")
        assert rank_and_cap(offers, "04100", max_results=0) == []


# ---------------------------------------------------------------------------
# Sampling
# ---------------------------------------------------------------------------

class TestSample:
    def test_small_input_returned_unchanged(self):
        items = ["a", "b"]
        assert sample(items, 5) == ["a", "b"]

    def test_draws_k_distinct_items(self):
        items = list(range(20))
        picked = sample(items, 7, random.Random(1))
        assert len(picked) == 7
        assert len(set(picked)) == 7
        assert set(picked) <= set(items)

    def test_input_not_mutated(self):
        items = list(range(10))
        sample(items, 3, random.Random(2))
        assert items == list(range(10))

    def test_seeded_rng_is_reproducible(self):
        items = list(range(50))
        assert sample(items, 5, random.Random(42)) == sample(items, 5, random.Random(42))

    def test_every_item_can_be_picked(self):
        rng = random.Random(7)
        seen = Counter()
        for _ in range(400):
            seen.update(sample(list(range(6)), 2, rng))
        assert set(seen) == set(range(6))


class TestSelectCandidates:
    def test_ties_over_k_sampled_down_to_k(self, make_offer):
        offers = _offers(make_offer, *["04101"] * 10)
        picked = select_candidates(offers, "04100", 3, random.Random(3))
        assert len(picked) == 3
        assert len({o.id for o in picked}) == 3

    def test_closest_helpers_win(self, make_offer):
        offers = _offers(make_offer, "04190", "04101", "04150", "04102")
        picked = select_candidates(offers, "04100", 2, random.Random(0))
        assert {o.postal_code for o in picked} == {"04101", "04102"}
