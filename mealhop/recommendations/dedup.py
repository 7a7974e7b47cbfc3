from __future__ import annotations

import logging
import math
import random
import re
from typing import Callable

from .models import Candidate, Restaurant

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3959.0

_MISSING_CALORIES = 9999.0
_MISSING_DISTANCE = 999.0
_MISSING_PRICE = 9999.0
_CALORIE_TOLERANCE = 0.1
_DISTANCE_TOLERANCE = 0.1

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_item_name(name: str) -> str:
    return _WHITESPACE_RE.sub(" ", name.strip().lower())


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _distance(restaurant: Restaurant, user_lat: float | None, user_lng: float | None) -> float:
    if (
        user_lat is not None
        and user_lng is not None
        and restaurant.lat is not None
        and restaurant.lng is not None
    ):
        return haversine_miles(user_lat, user_lng, restaurant.lat, restaurant.lng)
    if restaurant.distance_miles is not None:
        return restaurant.distance_miles
    return _MISSING_DISTANCE


def _value(value: float | None, missing: float) -> float:
    return missing if value is None else value


def _keep_closest(
    group: list[Candidate],
    key: Callable[[Candidate], float],
    tolerance: float,
) -> list[Candidate]:
    # tolerance is measured from the best value, not pairwise
    best = min(key(c) for c in group)
    return [c for c in group if key(c) - best <= tolerance]


def select_best_candidate(
    group: list[Candidate],
    user_lat: float | None = None,
    user_lng: float | None = None,
    rng: random.Random | None = None,
) -> Candidate:
    """Pick the representative for one dish offered by several restaurants.

    Criteria in order: fewest calories, nearest, most protein, best rating,
    cheapest. Calories within 0.1 of the lowest and distances within 0.1 mi
    of the nearest count as ties. Candidates still tied after every
    criterion are chosen between uniformly at random; pass a seeded ``rng``
    for reproducible picks.
    """
    if len(group) == 1:
        return group[0]

    distances = {id(c): _distance(c.restaurant, user_lat, user_lng) for c in group}

    tied = _keep_closest(
        group, lambda c: _value(c.item.calories, _MISSING_CALORIES), _CALORIE_TOLERANCE
    )
    tied = _keep_closest(tied, lambda c: distances[id(c)], _DISTANCE_TOLERANCE)
    tied = _keep_closest(tied, lambda c: -_value(c.item.protein, 0.0), 0.0)
    tied = _keep_closest(tied, lambda c: -_value(c.restaurant.rating, 0.0), 0.0)
    tied = _keep_closest(tied, lambda c: _value(c.item.price, _MISSING_PRICE), 0.0)

    if len(tied) > 1:
        return (rng or random).choice(tied)
    return tied[0]


def deduplicate_candidates(
    candidates: list[Candidate],
    user_lat: float | None = None,
    user_lng: float | None = None,
    rng: random.Random | None = None,
) -> list[Candidate]:
    """Keep one candidate per normalized item name."""
    groups: dict[str, list[Candidate]] = {}
    for candidate in candidates:
        groups.setdefault(normalize_item_name(candidate.item.name), []).append(candidate)

    deduplicated = [
        select_best_candidate(group, user_lat, user_lng, rng) for group in groups.values()
    ]

    logger.info(
        "Deduplication: before=%d after=%d removed=%d",
        len(candidates),
        len(deduplicated),
        len(candidates) - len(deduplicated),
    )
    return deduplicated
