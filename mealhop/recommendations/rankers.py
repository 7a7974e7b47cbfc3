from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from ..llm.config import DEFAULT_LLM_CONFIG, LLMConfig
from ..llm.groq_client import request_ranking
from .dedup import normalize_item_name
from .errors import ReconciliationError
from .explain import generate_why_text
from .models import (
    Candidate,
    ItemSummary,
    RecommendationRequest,
    RecommendationResult,
    RestaurantSummary,
    ScoreBreakdown,
)
from .scoring import score_candidate

logger = logging.getLogger(__name__)

MAX_RESULTS = 8


class Ranker(Protocol):
    def rank(
        self,
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[RecommendationResult]: ...


def build_result(
    candidate: Candidate,
    request: RecommendationRequest,
    scores: ScoreBreakdown,
    why: str | None = None,
) -> RecommendationResult:
    restaurant = candidate.restaurant
    item = candidate.item
    return RecommendationResult(
        restaurant=RestaurantSummary(
            id=restaurant.id,
            name=restaurant.name,
            cuisine=restaurant.cuisine,
            rating=restaurant.rating,
            distance_miles=restaurant.distance_miles,
            delivery_time=restaurant.delivery_time_estimate,
            website=restaurant.website,
        ),
        item=ItemSummary(
            id=item.id,
            name=item.name,
            price=item.price,
            calories=item.calories,
            protein=item.protein,
            sodium_mg=item.sodium_mg,
            sugar=item.sugar,
            carbs=item.carbs,
            fat=item.fat,
            fiber=item.fiber,
            health_score=scores.health,
        ),
        why=why or generate_why_text(candidate, request, scores),
        scores=scores,
    )


# ── Local ────────────────────────────────────────────────────────────────


@dataclass
class LocalRanker:
    """Deterministic ranking by the context-aware score."""

    max_results: int = MAX_RESULTS

    def score_all(
        self,
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[tuple[Candidate, ScoreBreakdown]]:
        scored = [(c, score_candidate(c, request, now)) for c in candidates]
        # sorted() is stable, so equal totals keep their input order
        return sorted(scored, key=lambda pair: pair[1].total, reverse=True)

    def rank(
        self,
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[RecommendationResult]:
        ranked = self.score_all(candidates, request, now)[: self.max_results]
        return [build_result(c, request, scores) for c, scores in ranked]


# ── External (LLM) ───────────────────────────────────────────────────────


def _row_part(row: dict[str, Any], key: str) -> dict[str, Any]:
    part = row.get(key)
    return part if isinstance(part, dict) else {}


@dataclass
class ExternalRanker:
    """Ranks with the Groq LLM and reconciles its rows with known candidates.

    The model only decides order and prose; scores are always recomputed
    locally. Rows that name unknown items are dropped. When ``fill_remaining``
    is set, open slots are topped up with the best locally scored candidates
    the model did not pick.
    """

    config: LLMConfig = field(default_factory=lambda: DEFAULT_LLM_CONFIG)
    max_results: int = MAX_RESULTS
    fill_remaining: bool = True

    def reconcile(
        self,
        rows: list[dict[str, Any]],
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[RecommendationResult]:
        by_id = {(c.restaurant.id, c.item.id): c for c in candidates}
        by_name = {(c.restaurant.name, c.item.name): c for c in candidates}

        results: list[RecommendationResult] = []
        seen_names: set[str] = set()
        for row in rows:
            restaurant = _row_part(row, "restaurant")
            item = _row_part(row, "item")
            candidate = by_id.get((str(restaurant.get("id")), str(item.get("id"))))
            if candidate is None:
                candidate = by_name.get((restaurant.get("name"), item.get("name")))
            if candidate is None:
                logger.debug("Dropping unmatched ranker row: %s / %s", restaurant, item)
                continue

            name_key = normalize_item_name(candidate.item.name)
            if name_key in seen_names:
                continue
            seen_names.add(name_key)

            why = row.get("why")
            why = why.strip() if isinstance(why, str) else None
            scores = score_candidate(candidate, request, now)
            results.append(build_result(candidate, request, scores, why=why or None))
            if len(results) >= self.max_results:
                break

        return results

    def _fill(
        self,
        results: list[RecommendationResult],
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[RecommendationResult]:
        used_names = {normalize_item_name(r.item.name) for r in results}
        local = LocalRanker(max_results=len(candidates))
        for candidate, scores in local.score_all(candidates, request, now):
            if len(results) >= self.max_results:
                break
            name_key = normalize_item_name(candidate.item.name)
            if name_key in used_names:
                continue
            used_names.add(name_key)
            results.append(build_result(candidate, request, scores))
        return results

    def rank(
        self,
        candidates: list[Candidate],
        request: RecommendationRequest,
        now: datetime,
    ) -> list[RecommendationResult]:
        if not candidates:
            return []

        rows = request_ranking(candidates, request, now, config=self.config)
        results = self.reconcile(rows, candidates, request, now)
        if not results:
            raise ReconciliationError(
                f"none of the {len(rows)} ranked rows matched a known candidate"
            )

        if self.fill_remaining and len(results) < self.max_results:
            results = self._fill(results, candidates, request, now)
        return results
