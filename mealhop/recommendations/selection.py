from __future__ import annotations

from .models import Candidate, MenuItem, Restaurant

TOP_K = 60
_MISSING_DISTANCE = 10.0


def build_candidates(restaurants: list[Restaurant], menu_items: list[MenuItem]) -> list[Candidate]:
    """Pair every menu item with its owning restaurant; orphans are skipped."""
    items_by_restaurant: dict[str, list[MenuItem]] = {}
    for item in menu_items:
        items_by_restaurant.setdefault(item.restaurant_id, []).append(item)

    candidates: list[Candidate] = []
    for restaurant in restaurants:
        for item in items_by_restaurant.get(restaurant.id, []):
            candidates.append(Candidate(restaurant=restaurant, item=item))
    return candidates


def base_score(candidate: Candidate) -> float:
    health = candidate.item.health_score or 0.0
    rating = candidate.restaurant.rating or 0.0
    distance = candidate.restaurant.distance_miles
    if distance is None:
        distance = _MISSING_DISTANCE
    return health + rating * 10 - distance * 2


def select_top_k(candidates: list[Candidate], k: int = TOP_K) -> list[Candidate]:
    """Cheaply cut the pool to the ``k`` best candidates by ``base_score``."""
    return sorted(candidates, key=base_score, reverse=True)[:k]
