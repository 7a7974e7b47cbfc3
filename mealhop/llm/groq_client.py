from __future__ import annotations

import json
import logging
import re
from datetime import datetime
from typing import Any

from groq import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    Groq,
    PermissionDeniedError,
)

from ..recommendations.errors import (
    ExternalRankerError,
    ModelLoadingError,
    RankerResponseError,
    RankerUnavailableError,
)
from ..recommendations.models import Candidate, RecommendationRequest
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 10.0
MAX_RESULTS = 8

SYSTEM_PROMPT = (
    "You are a nutrition-aware menu recommendation engine. "
    "Given a user's goal, meal context and a list of candidate menu items, "
    "pick the best items and give a short, friendly one-to-two sentence "
    "explanation for each.\n\n"
    "Rank by these priorities, in order: overall healthiness, fit with the "
    "stated goal, fit with the time of day, fit with the last meal, "
    "affordability within the budget, and finally proximity.\n\n"
    "Return ONLY valid JSON in this exact format:\n"
    '{"results": [{"restaurant": {"id": "...", "name": "...", "cuisine": "...", '
    '"rating": 4.5, "deliveryTime": "..."}, "item": {"id": "...", "name": "...", '
    '"price": 12.5, "calories": 450, "protein": 30, "sodium_mg": 600, "sugar": 4, '
    '"health_score": 80}, "why": "<one or two sentences>"}]}\n'
    "Use restaurant and item ids exactly as given. Copy nutrition numbers from "
    "the candidates, never invent them. Item names must be unique "
    "(case-insensitive). Order from best match to worst."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def _compact_candidate(candidate: Candidate) -> dict[str, Any]:
    restaurant = candidate.restaurant
    item = candidate.item
    return {
        "restaurant": {
            "id": restaurant.id,
            "name": restaurant.name,
            "cuisine": restaurant.cuisine,
            "distanceMiles": restaurant.distance_miles,
            "rating": restaurant.rating,
            "deliveryTime": restaurant.delivery_time_estimate,
        },
        "item": {
            "id": item.id,
            "name": item.name,
            "price": item.price,
            "calories": item.calories,
            "protein": item.protein,
            "carbs": item.carbs,
            "fat": item.fat,
            "fiber": item.fiber,
            "sodium_mg": item.sodium_mg,
            "sugar": item.sugar,
            "healthScore": item.health_score,
            "description": item.description,
        },
    }


def build_user_message(
    candidates: list[Candidate],
    request: RecommendationRequest,
    now: datetime,
) -> str:
    context = request.model_dump(by_alias=True, exclude={"lat", "lng"}, exclude_none=True)
    context["localTime"] = now.strftime("%H:%M")

    lines = ["## User Request", json.dumps(context)]
    lines.append(f"\n## Task\nPick the best {MAX_RESULTS} items (fewer if there are not enough).")
    lines.append("\n## Candidates")
    lines.append(json.dumps([_compact_candidate(c) for c in candidates], default=str))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_model_json(content: str) -> dict[str, Any]:
    """Parse the model output, tolerating markdown fences and chatter.

    Tries the whole (fence-stripped) body first, then the first ``{...}``
    block. Raises ``RankerResponseError`` when neither parses to an object.
    """
    text = _FENCE_RE.sub("", (content or "").strip()).strip()

    candidates = [text]
    match = _OBJECT_RE.search(text)
    if match and match.group(0) != text:
        candidates.append(match.group(0))

    for snippet in candidates:
        try:
            parsed = json.loads(snippet)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise RankerResponseError(f"Failed to parse model JSON. Preview: {text[:200]}")


def _retry_after(exc: APIStatusError) -> float:
    header = exc.response.headers.get("retry-after")
    body = exc.body if isinstance(exc.body, dict) else {}
    for raw in (header, body.get("estimated_time")):
        if raw is None:
            continue
        try:
            return float(raw)
        except (TypeError, ValueError):
            continue
    return DEFAULT_RETRY_AFTER


# ---------------------------------------------------------------------------
# LLM call
# ---------------------------------------------------------------------------


def request_ranking(
    candidates: list[Candidate],
    request: RecommendationRequest,
    now: datetime,
    config: LLMConfig = DEFAULT_LLM_CONFIG,
) -> list[dict[str, Any]]:
    """
    Ask Groq to rank and explain the candidates.

    Returns the raw ``results`` rows from the model, in the model's order.
    Raises an ``ExternalRankerError`` subclass on any failure; nothing is
    retried.
    """
    if not config.enabled:
        raise RankerUnavailableError("LLM ranking is disabled")
    if not config.api_key:
        raise RankerUnavailableError("Groq API key not configured")

    if not candidates:
        return []

    try:
        client = Groq(api_key=config.api_key, timeout=config.timeout, max_retries=0)
        response = client.chat.completions.create(
            model=config.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_message(candidates, request, now)},
            ],
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            response_format={"type": "json_object"},
        )
    except (AuthenticationError, PermissionDeniedError) as exc:
        raise RankerUnavailableError(f"Groq rejected the credentials: {exc}") from exc
    except APIStatusError as exc:
        if exc.status_code == 503:
            raise ModelLoadingError(_retry_after(exc)) from exc
        raise ExternalRankerError(f"Groq API error: {exc.status_code}") from exc
    except APITimeoutError as exc:
        raise ExternalRankerError(f"Groq request timed out after {config.timeout}s") from exc
    except APIConnectionError as exc:
        raise ExternalRankerError(f"Could not reach Groq: {exc}") from exc

    content = response.choices[0].message.content or ""
    parsed = parse_model_json(content)

    results = parsed.get("results")
    if not isinstance(results, list):
        raise RankerResponseError("Model JSON has no 'results' list")

    logger.info("Groq returned %d ranked rows for %d candidates", len(results), len(candidates))
    return [row for row in results if isinstance(row, dict)]
