from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Goal = Literal["high-protein", "low-cal", "balanced", "low-carb"]
TimeOfDay = Literal["breakfast", "lunch", "dinner", "snack"]
ActivityLevel = Literal["sedentary", "light", "workout"]
Heaviness = Literal["light", "medium", "heavy"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Source records ───────────────────────────────────────────────────────


class Restaurant(_CamelModel):
    id: str
    name: str
    cuisine: str | None = None
    rating: float | None = Field(default=None, ge=0.0, le=5.0)
    distance_miles: float | None = Field(default=None, ge=0.0, alias="distanceMiles")
    price_level: int | None = Field(default=None, alias="priceLevel")
    lat: float | None = None
    lng: float | None = None
    delivery_time_estimate: str | None = Field(default=None, alias="deliveryTimeEstimate")
    website: str | None = None


class MenuItem(_CamelModel):
    id: str
    restaurant_id: str
    name: str
    price: float = Field(..., gt=0)
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    sodium_mg: float | None = None
    sugar: float | None = None
    health_score: float | None = Field(default=None, ge=0.0, le=100.0, alias="healthScore")
    description: str | None = None


class CandidatePool(BaseModel):
    restaurants: list[Restaurant] = Field(default_factory=list)
    menu_items: list[MenuItem] = Field(default_factory=list)


@dataclass(frozen=True)
class Candidate:
    """A (restaurant, menu item) pairing; the unit of scoring and dedup."""

    restaurant: Restaurant
    item: MenuItem

    def __post_init__(self) -> None:
        if self.item.restaurant_id != self.restaurant.id:
            raise ValueError(
                f"menu item {self.item.id!r} belongs to restaurant "
                f"{self.item.restaurant_id!r}, not {self.restaurant.id!r}"
            )


# ── Request ──────────────────────────────────────────────────────────────


class RecommendationRequest(_CamelModel):
    goal: Goal
    time_of_day: TimeOfDay = Field(..., alias="timeOfDay")
    last_meal: str | None = Field(default=None, alias="lastMeal")
    last_meal_time: str | None = Field(default=None, alias="lastMealTime")
    activity_level: ActivityLevel | None = Field(default=None, alias="activityLevel")
    last_meal_heaviness: Heaviness | None = Field(default=None, alias="lastMealHeaviness")
    budget_max: float = Field(default=30.0, gt=0, alias="budgetMax")
    radius_miles: float = Field(default=5.0, gt=0, alias="radiusMiles")
    lat: float
    lng: float

    def context_hints(self) -> dict[str, str | None]:
        return {
            "goal": self.goal,
            "timeOfDay": self.time_of_day,
            "lastMeal": self.last_meal,
            "lastMealTime": self.last_meal_time,
        }


# ── Scores & results ─────────────────────────────────────────────────────


class ScoreBreakdown(_CamelModel):
    total: float = Field(..., ge=0.0, le=100.0)
    health: float = Field(..., ge=0.0, le=100.0)
    goal_fit: float = Field(..., ge=0.0, le=100.0, alias="goalFit")
    time_fit: float = Field(..., ge=0.0, le=100.0, alias="timeFit")
    last_meal_fit: float = Field(..., ge=0.0, le=100.0, alias="lastMealFit")
    price_fit: float = Field(..., ge=0.0, le=100.0, alias="priceFit")
    distance_fit: float = Field(..., ge=0.0, le=100.0, alias="distanceFit")


class RestaurantSummary(_CamelModel):
    id: str
    name: str
    cuisine: str | None = None
    rating: float | None = None
    distance_miles: float | None = Field(default=None, alias="distanceMiles")
    delivery_time: str | None = Field(default=None, alias="deliveryTime")
    website: str | None = None


class ItemSummary(_CamelModel):
    id: str
    name: str
    price: float
    calories: float | None = None
    protein: float | None = None
    sodium_mg: float | None = None
    sugar: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    health_score: float


class RecommendationResult(_CamelModel):
    restaurant: RestaurantSummary
    item: ItemSummary
    why: str
    scores: ScoreBreakdown


class ContextGuidance(_CamelModel):
    guidance_preview: str = Field(..., alias="guidancePreview")
    avoid_chips: list[str] = Field(default_factory=list, alias="avoidChips", max_length=3)


class RecommendationResponse(_CamelModel):
    context: str
    avoid_chips: list[str] = Field(default_factory=list, alias="avoidChips")
    results: list[RecommendationResult] = Field(default_factory=list, max_length=8)
    warning: str | None = None
