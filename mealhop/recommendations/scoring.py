"""
Context-aware scoring.

Every candidate gets six sub-scores in [0, 100] and a weighted total. The
weights encode product priority: health first, then the stated goal, meal
timing, fit with the last meal, affordability and finally proximity.

Nothing here reads the system clock; callers pass ``now`` so the late-dinner
and last-meal rules can be tested at any hour.
"""
from __future__ import annotations

import re
from datetime import datetime

from .models import Candidate, MenuItem, RecommendationRequest, ScoreBreakdown

WEIGHTS: dict[str, float] = {
    "health": 0.35,
    "goal_fit": 0.25,
    "time_fit": 0.15,
    "last_meal_fit": 0.10,
    "price_fit": 0.08,
    "distance_fit": 0.07,
}

LATE_DINNER_HOUR = 20
_MISSING_DISTANCE = 10.0
_HEAVY_MEAL_RE = re.compile(r"pizza|burger|fried|heavy", re.IGNORECASE)
_CLOCK_RE = re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)?")
_ELAPSED_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(hours?|hrs?|h|minutes?|mins?|m)(?![a-z])")


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _r2(value: float) -> float:
    return round(value, 2)


def _n(value: float | None) -> float:
    return 0.0 if value is None else float(value)


def is_late_dinner(request: RecommendationRequest, now: datetime) -> bool:
    return request.time_of_day == "dinner" and now.hour >= LATE_DINNER_HOUR


# ---------------------------------------------------------------------------
# Last-meal parsing
# ---------------------------------------------------------------------------


def parse_last_meal_time(text: str | None, now: datetime) -> float | None:
    """Return hours elapsed since the last meal, or None if unparseable.

    Accepts relative forms ("2h ago", "45 minutes ago", "1 hour") and clock
    times ("10:30am", "7:15 pm", "18:40"). A clock time later than ``now``
    is taken to be from the previous day.
    """
    if not text:
        return None
    value = text.strip().lower()

    clock = _CLOCK_RE.search(value)
    if clock:
        hour, minute, meridiem = int(clock.group(1)), int(clock.group(2)), clock.group(3)
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
        if hour > 23 or minute > 59:
            return None
        meal = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
        elapsed = (now - meal).total_seconds() / 3600
        if elapsed < 0:
            elapsed += 24
        return elapsed

    # compound durations ("2h30m ago") add up
    hours = None
    for amount, unit in _ELAPSED_RE.findall(value):
        part = float(amount) if unit.startswith("h") else float(amount) / 60
        hours = part if hours is None else hours + part
    return hours


def is_heavy_last_meal(request: RecommendationRequest) -> bool:
    if request.last_meal_heaviness == "heavy":
        return True
    return bool(request.last_meal and _HEAVY_MEAL_RE.search(request.last_meal))


# ---------------------------------------------------------------------------
# Sub-scores
# ---------------------------------------------------------------------------


def health_score(item: MenuItem, request: RecommendationRequest, now: datetime) -> float:
    protein = _n(item.protein)
    calories = _n(item.calories)
    fiber = _n(item.fiber)
    sodium = _n(item.sodium_mg)
    sugar = _n(item.sugar)

    score = 1.2 * protein + 2.5 * fiber - 0.02 * sodium - 0.9 * sugar
    # unknown calories earn no calorie credit
    if item.calories is not None:
        score += max(0.0, 700 - calories) * 0.04

    if request.time_of_day == "breakfast":
        score += min(5.0, sodium * 0.005) + protein * 0.1
    elif is_late_dinner(request, now):
        score -= min(20.0, sodium * 0.01)
        if calories > 600:
            score -= (calories - 600) * 0.02
    elif request.time_of_day == "snack":
        if calories > 300:
            score -= (calories - 300) * 0.05
        score += protein * 0.15 + fiber * 3

    return clamp(score)


def goal_fit_score(item: MenuItem, request: RecommendationRequest) -> float:
    protein = _n(item.protein)
    calories = _n(item.calories)
    carbs = _n(item.carbs)
    fiber = _n(item.fiber)

    if request.goal == "high-protein":
        fit = min(100.0, protein * 2)
    elif request.goal == "low-cal":
        fit = max(0.0, 100 - calories / 10)
    elif request.goal == "low-carb":
        fit = max(0.0, 100 - carbs * 2)
    else:
        fit = 50 + 0.5 * protein - calories / 20 + 2 * fiber
    return clamp(fit)


def time_fit_score(item: MenuItem, request: RecommendationRequest, now: datetime) -> float:
    calories = _n(item.calories)
    protein = _n(item.protein)
    carbs = _n(item.carbs)

    if request.time_of_day == "breakfast":
        if calories < 500 and protein > 15:
            return 80.0
        if calories > 700:
            return 30.0
    elif request.time_of_day == "lunch":
        if 400 <= calories <= 700 or (request.activity_level == "workout" and carbs > 40):
            return 80.0
    elif request.time_of_day == "dinner":
        if is_late_dinner(request, now) and calories > 600:
            return 30.0
        if 400 <= calories <= 800:
            return 80.0
    elif request.time_of_day == "snack":
        if calories < 300:
            return 90.0
        if calories > 400:
            return 20.0
    return 50.0


def last_meal_fit_score(item: MenuItem, request: RecommendationRequest, now: datetime) -> float:
    if not request.last_meal:
        return 50.0

    calories = _n(item.calories)
    sodium = _n(item.sodium_mg)
    fat = _n(item.fat)

    fit = 50.0
    if is_heavy_last_meal(request):
        if calories > 600:
            fit -= 20
        if sodium > 1000:
            fit -= 15
        if fat > 30:
            fit -= 10

    hours = parse_last_meal_time(request.last_meal_time, now)
    if hours is not None:
        if hours < 2:
            if calories < 500:
                fit += 15
            elif calories > 700:
                fit -= 20
        elif hours > 5 and calories > 400:
            fit += 10

    return clamp(fit)


def price_fit_score(item: MenuItem, request: RecommendationRequest) -> float:
    return clamp(100 - (item.price / request.budget_max) * 50)


def distance_fit_score(distance_miles: float | None) -> float:
    distance = _MISSING_DISTANCE if distance_miles is None else distance_miles
    return clamp(100 - distance * 10)


def score_candidate(
    candidate: Candidate,
    request: RecommendationRequest,
    now: datetime,
) -> ScoreBreakdown:
    item = candidate.item
    parts = {
        "health": health_score(item, request, now),
        "goal_fit": goal_fit_score(item, request),
        "time_fit": time_fit_score(item, request, now),
        "last_meal_fit": last_meal_fit_score(item, request, now),
        "price_fit": price_fit_score(item, request),
        "distance_fit": distance_fit_score(candidate.restaurant.distance_miles),
    }
    total = sum(WEIGHTS[name] * value for name, value in parts.items())

    return ScoreBreakdown(
        total=_r2(clamp(total)),
        **{name: _r2(value) for name, value in parts.items()},
    )
