from __future__ import annotations

import math
from typing import Any

from pydantic import ValidationError

from .errors import InvalidRequestError
from .models import RecommendationRequest

VALID_GOALS = ["high-protein", "low-cal", "balanced", "low-carb"]
VALID_TIMES_OF_DAY = ["breakfast", "lunch", "dinner", "snack"]
VALID_ACTIVITY_LEVELS = ["sedentary", "light", "workout"]
VALID_HEAVINESS = ["light", "medium", "heavy"]

DEFAULT_BUDGET_MAX = 30.0
DEFAULT_RADIUS_MILES = 5.0

_REQUIRED_FIELDS = ("goal", "timeOfDay", "budgetMax", "radiusMiles")


def _positive_float(raw: Any, default: float) -> float:
    """Lenient float parse; anything unusable falls back to ``default``."""
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if math.isnan(value) or math.isinf(value) or value <= 0:
        return default
    return value


def _coordinate(raw: Any, name: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"Invalid {name}. Must be a number") from None
    if math.isnan(value) or math.isinf(value):
        raise InvalidRequestError(f"Invalid {name}. Must be a number")
    return value


def _check_enum(body: dict[str, Any], name: str, allowed: list[str], optional: bool = False) -> None:
    value = body.get(name)
    if optional and not value:
        return
    if value not in allowed:
        raise InvalidRequestError(f"Invalid {name}. Must be one of: {', '.join(allowed)}")


def parse_request(body: Any) -> RecommendationRequest:
    """Validate a raw JSON body and build a normalized request.

    Raises ``InvalidRequestError`` with a caller-facing message.
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    if any(not body.get(name) for name in _REQUIRED_FIELDS):
        raise InvalidRequestError(f"Missing required fields: {', '.join(_REQUIRED_FIELDS)}")

    if body.get("lat") is None or body.get("lng") is None:
        raise InvalidRequestError("Location is required: lat and lng")

    _check_enum(body, "goal", VALID_GOALS)
    _check_enum(body, "timeOfDay", VALID_TIMES_OF_DAY)
    _check_enum(body, "activityLevel", VALID_ACTIVITY_LEVELS, optional=True)
    _check_enum(body, "lastMealHeaviness", VALID_HEAVINESS, optional=True)

    try:
        return RecommendationRequest(
            goal=body["goal"],
            time_of_day=body["timeOfDay"],
            last_meal=body.get("lastMeal") or None,
            last_meal_time=body.get("lastMealTime") or None,
            activity_level=body.get("activityLevel") or None,
            last_meal_heaviness=body.get("lastMealHeaviness") or None,
            budget_max=_positive_float(body["budgetMax"], DEFAULT_BUDGET_MAX),
            radius_miles=_positive_float(body["radiusMiles"], DEFAULT_RADIUS_MILES),
            lat=_coordinate(body["lat"], "lat"),
            lng=_coordinate(body["lng"], "lng"),
        )
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "request"
        raise InvalidRequestError(f"Invalid {field}: {first['msg']}") from exc
