from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent.parent / ".env")

_BUNDLED_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@dataclass(frozen=True)
class RecommendationConfig:
    top_k: int = 60
    max_results: int = 8
    data_dir: Path = Path(os.getenv("MEALHOP_DATA_DIR", str(_BUNDLED_DATA_DIR)))
    restaurants_filename: str = "restaurants.csv"
    menu_items_filename: str = "menu_items.csv"
    candidate_cache_ttl: float = 300.0

    @property
    def restaurants_path(self) -> Path:
        return self.data_dir / self.restaurants_filename

    @property
    def menu_items_path(self) -> Path:
        return self.data_dir / self.menu_items_filename


DEFAULT_RECOMMENDATION_CONFIG = RecommendationConfig()
