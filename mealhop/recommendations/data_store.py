from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd
from pydantic import ValidationError

from .cache import TTLCache
from .config import DEFAULT_RECOMMENDATION_CONFIG, RecommendationConfig
from .dedup import EARTH_RADIUS_MILES
from .errors import UpstreamDataError
from .models import CandidatePool, MenuItem, Restaurant

logger = logging.getLogger(__name__)


def haversine_miles_array(
    lat: float,
    lng: float,
    lats: np.ndarray,
    lngs: np.ndarray,
) -> np.ndarray:
    """Vectorised great-circle distance from one point to many, in miles."""
    lat1 = np.radians(lat)
    lat2 = np.radians(lats)
    d_lat = lat2 - lat1
    d_lng = np.radians(lngs) - np.radians(lng)
    a = np.sin(d_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_MILES * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def _records(df: pd.DataFrame) -> list[dict[str, Any]]:
    # NaN -> None so optional fields stay "unknown" rather than zero
    return df.astype(object).where(df.notna(), None).to_dict("records")


class CsvCandidateSource:
    """Candidate source backed by restaurant and menu-item CSV files.

    Files are read once per source; per-query results are memoized in the
    injected ``TTLCache``.
    """

    def __init__(
        self,
        restaurants_path: Path,
        menu_items_path: Path,
        cache: TTLCache | None = None,
        cache_ttl: float = DEFAULT_RECOMMENDATION_CONFIG.candidate_cache_ttl,
    ) -> None:
        self.restaurants_path = Path(restaurants_path)
        self.menu_items_path = Path(menu_items_path)
        self.cache = cache or TTLCache(default_ttl=cache_ttl)
        self.cache_ttl = cache_ttl
        self._restaurants: pd.DataFrame | None = None
        self._menu_items: pd.DataFrame | None = None

    @classmethod
    def from_config(cls, config: RecommendationConfig = DEFAULT_RECOMMENDATION_CONFIG) -> CsvCandidateSource:
        return cls(
            config.restaurants_path,
            config.menu_items_path,
            cache_ttl=config.candidate_cache_ttl,
        )

    def _load(self) -> tuple[pd.DataFrame, pd.DataFrame]:
        if self._restaurants is None or self._menu_items is None:
            try:
                restaurants = pd.read_csv(self.restaurants_path, dtype={"id": str})
                menu_items = pd.read_csv(
                    self.menu_items_path, dtype={"id": str, "restaurant_id": str}
                )
            except FileNotFoundError as exc:
                raise UpstreamDataError(f"Candidate data file missing: {exc.filename}") from exc
            except pd.errors.ParserError as exc:
                raise UpstreamDataError(f"Candidate data file unreadable: {exc}") from exc
            self._restaurants = restaurants
            self._menu_items = menu_items
            logger.info(
                "Loaded %d restaurants and %d menu items",
                len(restaurants),
                len(menu_items),
            )
        return self._restaurants, self._menu_items

    def __call__(
        self,
        lat: float,
        lng: float,
        radius_miles: float,
        budget_max: float,
        context_hints: dict[str, Any] | None = None,
    ) -> CandidatePool:
        key = {
            "lat": round(lat, 3),
            "lng": round(lng, 3),
            "radius_miles": radius_miles,
            "budget_max": budget_max,
        }
        cached = self.cache.get(key, self.cache_ttl)
        if cached is not None:
            return cached

        restaurants, menu_items = self._load()

        distances = haversine_miles_array(
            lat,
            lng,
            restaurants["lat"].to_numpy(dtype=float),
            restaurants["lng"].to_numpy(dtype=float),
        )
        nearby = restaurants.assign(distance_miles=np.round(distances, 2))
        nearby = nearby[nearby["distance_miles"] <= radius_miles].sort_values("distance_miles")

        affordable = menu_items[
            menu_items["restaurant_id"].isin(nearby["id"])
            & (menu_items["price"] > 0)
            & (menu_items["price"] <= budget_max)
        ]

        try:
            pool = CandidatePool(
                restaurants=[Restaurant(**row) for row in _records(nearby)],
                menu_items=[MenuItem(**row) for row in _records(affordable)],
            )
        except ValidationError as exc:
            raise UpstreamDataError(f"Candidate data failed validation: {exc}") from exc

        self.cache.set(key, pool)
        return pool
