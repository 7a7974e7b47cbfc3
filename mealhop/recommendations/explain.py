from __future__ import annotations

from .models import Candidate, RecommendationRequest, ScoreBreakdown

MAX_REASONS = 2


def _fmt(value: float) -> str:
    return f"{value:g}"


def _goal_reason(candidate: Candidate, request: RecommendationRequest) -> str | None:
    item = candidate.item
    protein = item.protein or 0.0
    calories = item.calories
    carbs = item.carbs

    if request.goal == "high-protein" and protein > 25:
        return f"high protein ({_fmt(protein)}g)"
    if request.goal == "low-cal" and calories is not None and calories < 450:
        return f"low calorie ({_fmt(calories)} cal)"
    if request.goal == "low-carb" and carbs is not None and carbs < 20:
        return f"low carb ({_fmt(carbs)}g carbs)"
    if (
        request.goal == "balanced"
        and protein >= 15
        and calories is not None
        and 400 <= calories <= 700
    ):
        return "well-balanced macros"
    return None


def collect_reasons(
    candidate: Candidate,
    request: RecommendationRequest,
    scores: ScoreBreakdown,
) -> list[str]:
    reasons: list[str] = []
    if scores.health > 70:
        reasons.append("excellent health score")
    goal_reason = _goal_reason(candidate, request)
    if goal_reason:
        reasons.append(goal_reason)
    if scores.time_fit > 70:
        reasons.append(f"great for {request.time_of_day}")
    if scores.last_meal_fit > 60 and request.last_meal:
        reasons.append("complements your last meal well")
    if (candidate.restaurant.rating or 0.0) > 4:
        reasons.append("highly rated")
    return reasons


def generate_why_text(
    candidate: Candidate,
    request: RecommendationRequest,
    scores: ScoreBreakdown,
) -> str:
    """One short sentence built from at most two template reasons."""
    reasons = collect_reasons(candidate, request, scores)[:MAX_REASONS]
    if not reasons:
        return f"Good {request.time_of_day} option with balanced nutrition."
    sentence = " and ".join(reasons)
    return sentence[0].upper() + sentence[1:] + "."
