from __future__ import annotations

from datetime import datetime

from .models import ContextGuidance, RecommendationRequest
from .scoring import is_heavy_last_meal, is_late_dinner, parse_last_meal_time

MAX_AVOID_CHIPS = 3
_RECENT_MEAL_HOURS = 3
_EVENING_DINNER_HOUR = 18

HEAVY_RECENT_GUIDANCE = "Last meal was heavy and recent, so lighter, lower-sodium picks are ranked higher."
WORKOUT_LUNCH_GUIDANCE = "Lunch after a workout: protein-forward, balanced meals are ranked higher."
LATE_DINNER_GUIDANCE = "Late dinner: lighter portions and lower sodium are prioritized."
DEFAULT_GUIDANCE = "Recommendations optimized for your goal and time of day."


def generate_context_guidance(request: RecommendationRequest, now: datetime) -> ContextGuidance:
    """Guidance sentence plus up to three "avoid" chips for the request."""
    heavy = bool(request.last_meal) and is_heavy_last_meal(request)
    hours = parse_last_meal_time(request.last_meal_time, now) if request.last_meal else None
    recent = hours is not None and hours < _RECENT_MEAL_HOURS
    late_dinner = is_late_dinner(request, now)

    if heavy and recent:
        guidance = HEAVY_RECENT_GUIDANCE
    elif request.time_of_day == "lunch" and request.activity_level == "workout":
        guidance = WORKOUT_LUNCH_GUIDANCE
    elif late_dinner:
        guidance = LATE_DINNER_GUIDANCE
    else:
        guidance = DEFAULT_GUIDANCE

    chips: list[str] = []

    def add(*names: str) -> None:
        for name in names:
            if name not in chips:
                chips.append(name)

    evening_dinner = request.time_of_day == "dinner" and now.hour >= _EVENING_DINNER_HOUR
    if evening_dinner:
        add("very high sodium", "fried", "heavy portions")
    if heavy or recent:
        add("heavy portions", "fried")
    if request.goal == "low-cal":
        add("sugary drinks", "fried")

    return ContextGuidance(guidance_preview=guidance, avoid_chips=chips[:MAX_AVOID_CHIPS])
