# helpmatch/core/matching/ranking.py
"""
Candidate selection by postal-code proximity.

Postal codes are fixed-width, zero-padded decimal strings. Proximity is the
absolute numeric difference; the candidate pool is the 1000-wide bucket that
shares everything but the last three digits.

Selection is two explicit steps:
1. ``rank_and_cap``: closest first, cut at the K-th distance, keeping ties
2. ``sample``      : if ties pushed the set over K, draw K uniformly
"""
from __future__ import annotations

import random
from typing import Iterable, Sequence, TypeVar

from helpmatch.core.matching.domain import HelpOffer, RankedCandidate
from helpmatch.core.matching.errors import InvalidPostalCodeError

T = TypeVar("T")

BUCKET_DIGITS = 3


def _is_digits(code: object) -> bool:
    return isinstance(code, str) and code.isascii() and code.isdigit()


def postal_distance(search: str, candidate: str) -> int:
    """Absolute difference of two postal codes read as base-10 integers."""
    return abs(int(search, 10) - int(candidate, 10))


def validate_postal_code(code: object) -> str:
    """Return ``code`` if usable as a search key, else raise InvalidPostalCodeError."""
    if not _is_digits(code) or len(code) < BUCKET_DIGITS:
        raise InvalidPostalCodeError(code)
    return code


def postal_bucket(code: str) -> tuple[str, str]:
    """Inclusive string range covering ``code``'s bucket.

    >>> postal_bucket("04000")
    ('04000', '04999')
    """
    prefix = validate_postal_code(code)[:-BUCKET_DIGITS]
    return prefix + "0" * BUCKET_DIGITS, prefix + "9" * BUCKET_DIGITS


def filter_same_width(offers: Iterable[HelpOffer], search: str) -> list[HelpOffer]:
    """Drop offers whose code differs in width from ``search`` or is not numeric."""
    return [
        offer for offer in offers
        if len(offer.postal_code) == len(search) and _is_digits(offer.postal_code)
    ]


def rank_and_cap(
    offers: Iterable[HelpOffer],
    search: str,
    max_results: int,
) -> list[RankedCandidate]:
    """
    Sort offers by distance to ``search`` and apply a tie-inclusive cap.

    The sort is stable, so equal distances keep query order. With more than
    ``max_results`` candidates, everything up to and including the distance
    of the ``max_results``-th closest is kept; the result is longer than
    ``max_results`` only when several candidates tie at that distance.
    """
    ranked = sorted(
        (RankedCandidate(offer, postal_distance(search, offer.postal_code)) for offer in offers),
        key=lambda c: c.distance,
    )

    if len(ranked) <= max_results:
        return ranked
    if max_results <= 0:
        return []

    boundary = ranked[max_results - 1].distance
    return [c for c in ranked if c.distance <= boundary]


def sample(
    candidates: Sequence[T],
    max_results: int,
    rng: random.Random | None = None,
) -> list[T]:
    """
    Uniform random subset of ``max_results`` items, or the input unchanged.

    Uses a full Fisher-Yates shuffle of a copy, so every subset is equally
    likely and the input is never mutated.
    """
    if len(candidates) <= max_results:
        return list(candidates)
    if max_results <= 0:
        return []

    pool = list(candidates)
    (rng or random).shuffle(pool)
    return pool[:max_results]


def select_candidates(
    offers: Iterable[HelpOffer],
    search: str,
    max_results: int,
    rng: random.Random | None = None,
) -> list[HelpOffer]:
    """Rank, cap and sample: the helpers to notify for one request."""
    capped = rank_and_cap(offers, search, max_results)
    return [c.offer for c in sample(capped, max_results, rng)]
