from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from functools import lru_cache
from typing import Callable

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .recommendations.config import DEFAULT_RECOMMENDATION_CONFIG
from .recommendations.data_store import CsvCandidateSource
from .recommendations.errors import (
    InvalidRequestError,
    RequestCancelled,
    UpstreamDataError,
)
from .recommendations.models import RecommendationResponse
from .recommendations.pipeline import CandidateSource, get_recommendations
from .recommendations.rankers import ExternalRanker, Ranker
from .recommendations.validation import parse_request

logger = logging.getLogger(__name__)

RECOMMENDATIONS_PATH = "/api/recommendations"

app = FastAPI(title="MealHop Recommendation API", version="1.0.0")


# ── Collaborators (overridable via app.dependency_overrides) ─────────────


@lru_cache(maxsize=1)
def get_candidate_source() -> CandidateSource:
    return CsvCandidateSource.from_config()


def get_ranker() -> Ranker:
    return ExternalRanker(max_results=DEFAULT_RECOMMENDATION_CONFIG.max_results)


def get_clock() -> Callable[[], datetime]:
    return datetime.now


# ── Error mapping ────────────────────────────────────────────────────────


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def _watch_disconnect(request: Request, cancel_event: threading.Event) -> None:
    while not cancel_event.is_set():
        if await request.is_disconnected():
            cancel_event.set()
            return
        await asyncio.sleep(0.1)


# ── Endpoints ────────────────────────────────────────────────────────────


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get(RECOMMENDATIONS_PATH)
def recommendations_status() -> dict[str, str]:
    return {
        "status": "ok",
        "message": "Recommendations API is running",
        "endpoint": RECOMMENDATIONS_PATH,
        "method": "POST",
    }


@app.post(RECOMMENDATIONS_PATH, response_model=RecommendationResponse)
async def recommendations(
    request: Request,
    source: CandidateSource = Depends(get_candidate_source),
    ranker: Ranker = Depends(get_ranker),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> JSONResponse:
    try:
        body = await request.json()
    except ValueError:
        raise InvalidRequestError("Request body must be valid JSON") from None
    rec_request = parse_request(body)

    cancel_event = threading.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel_event))
    try:
        response = await run_in_threadpool(
            get_recommendations,
            rec_request,
            source,
            ranker,
            clock(),
            top_k=DEFAULT_RECOMMENDATION_CONFIG.top_k,
            cancel_event=cancel_event,
        )
    except RequestCancelled:
        logger.info("Client disconnected before ranking, request abandoned")
        return JSONResponse(status_code=499, content={"error": "Request cancelled"})
    except UpstreamDataError as exc:
        logger.error("Candidate source failed", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to fetch restaurants.", "details": str(exc)},
        )
    except Exception as exc:
        logger.exception("Recommendation pipeline failed")
        return JSONResponse(status_code=500, content={"error": str(exc) or "Internal server error"})
    finally:
        watcher.cancel()

    payload = response.model_dump(mode="json", by_alias=True)
    if payload.get("warning") is None:
        payload.pop("warning", None)
    return JSONResponse(content=payload)
