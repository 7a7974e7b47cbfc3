from __future__ import annotations

import logging
import random
import threading
import time
from datetime import datetime
from typing import Any, Protocol

from .dedup import deduplicate_candidates
from .errors import RequestCancelled, UpstreamDataError, is_network_error
from .guidance import generate_context_guidance
from .models import (
    Candidate,
    CandidatePool,
    ContextGuidance,
    RecommendationRequest,
    RecommendationResponse,
    RecommendationResult,
)
from .rankers import MAX_RESULTS, LocalRanker, Ranker
from .selection import TOP_K, build_candidates, select_top_k

logger = logging.getLogger(__name__)

DATA_UNAVAILABLE_NOTE = "Note: Restaurant data source unavailable."
DATA_UNAVAILABLE_WARNING = "Restaurant data source unavailable. Recommendations are limited."


class CandidateSource(Protocol):
    def __call__(
        self,
        lat: float,
        lng: float,
        radius_miles: float,
        budget_max: float,
        context_hints: dict[str, Any] | None = None,
    ) -> CandidatePool: ...


def _check_cancelled(cancel_event: threading.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise RequestCancelled("recommendation request was cancelled")


def rank_with_fallback(
    candidates: list[Candidate],
    request: RecommendationRequest,
    now: datetime,
    ranker: Ranker,
    fallback: Ranker | None = None,
) -> list[RecommendationResult]:
    """Try ``ranker`` first; any failure or empty answer falls back locally."""
    fallback = fallback or LocalRanker()
    if not candidates:
        return []

    try:
        results = ranker.rank(candidates, request, now)
    except Exception:
        logger.warning(
            "%s failed, falling back to local ranking",
            type(ranker).__name__,
            exc_info=True,
        )
        return fallback.rank(candidates, request, now)

    if not results:
        logger.warning("%s returned no results, falling back to local ranking", type(ranker).__name__)
        return fallback.rank(candidates, request, now)

    logger.info("%s ranked %d results", type(ranker).__name__, len(results))
    return results[:MAX_RESULTS]


def _response(
    guidance: ContextGuidance,
    results: list[RecommendationResult] | None = None,
    warning: str | None = None,
) -> RecommendationResponse:
    context = guidance.guidance_preview
    if warning:
        context = f"{context}\n\n{DATA_UNAVAILABLE_NOTE}"
    return RecommendationResponse(
        context=context,
        avoid_chips=guidance.avoid_chips,
        results=results or [],
        warning=warning,
    )


def get_recommendations(
    request: RecommendationRequest,
    fetch_candidates: CandidateSource,
    ranker: Ranker,
    now: datetime,
    fallback: Ranker | None = None,
    rng: random.Random | None = None,
    top_k: int = TOP_K,
    cancel_event: threading.Event | None = None,
) -> RecommendationResponse:
    """
    Run the full pipeline for one request:
    fetch -> pair -> dedup -> top-K -> rank (external, else local) -> assemble.

    Network failures of the candidate source degrade to an empty, warned
    response; other source failures raise ``UpstreamDataError``.
    """
    start_time = time.time()
    guidance = generate_context_guidance(request, now)

    try:
        pool = fetch_candidates(
            request.lat,
            request.lng,
            request.radius_miles,
            request.budget_max,
            request.context_hints(),
        )
    except Exception as exc:
        if is_network_error(exc):
            logger.warning("Candidate source unreachable, returning guidance only", exc_info=True)
            return _response(guidance, warning=DATA_UNAVAILABLE_WARNING)
        if isinstance(exc, UpstreamDataError):
            raise
        raise UpstreamDataError(str(exc)) from exc

    if not pool.restaurants or not pool.menu_items:
        logger.warning(
            "No restaurants or menu items found: restaurants=%d items=%d lat=%s lng=%s radius=%s",
            len(pool.restaurants),
            len(pool.menu_items),
            request.lat,
            request.lng,
            request.radius_miles,
        )
        return _response(guidance)

    candidates = build_candidates(pool.restaurants, pool.menu_items)
    candidates = deduplicate_candidates(candidates, request.lat, request.lng, rng=rng)
    working_set = select_top_k(candidates, top_k)
    if not working_set:
        return _response(guidance)

    _check_cancelled(cancel_event)
    results = rank_with_fallback(working_set, request, now, ranker, fallback)

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    logger.info(
        "Recommendations ready: candidates=%d working_set=%d results=%d elapsed_ms=%s",
        len(candidates),
        len(working_set),
        len(results),
        elapsed_ms,
    )
    return _response(guidance, results)
