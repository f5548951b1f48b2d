from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from src import config
from src.fetch.subject import SubjectPageScraper
from src.subjects.service import SubjectDetailsService

log = logging.getLogger(__name__)

SUCCESS_MAX_AGE_S = config.app_config.cache.details_ttl_s
FAILURE_MAX_AGE_S = config.app_config.cache.failure_ttl_s

app = FastAPI(title="Subject Scraper API")


def _error_response(status_code: int, error: str, detail: str) -> JSONResponse:
    """
    Helper to return a JSON error payload with a consistent shape.

    Example:
        { "code": 400, "error": "missing_id", "message": "..." }
    """
    return JSONResponse(
        status_code=status_code,
        content={"code": status_code, "error": error, "message": detail},
    )


def _cache_control(max_age: int) -> str:
    return f"public, max-age={max_age}, s-maxage={max_age}"


def _get_details_service(request: Request) -> SubjectDetailsService:
    """
    Lazily construct and cache the details service on app.state.

    Tests inject their own service (fake store, mocked transport) by setting
    app.state.details_service before the first request.
    """
    service: SubjectDetailsService | None = getattr(request.app.state, "details_service", None)
    if service is not None:
        return service

    service = SubjectDetailsService(SubjectPageScraper())
    request.app.state.details_service = service
    return service


@app.get("/health")
async def health():
    return {"ok": True}


@app.get("/api/douban/details")
async def douban_details(request: Request, id: str | None = None):
    """
    Resolved subject page identity for a Douban subject id.

    Success responses are cacheable for a day; failures for the negative-cache
    window. X-Data-Source tells clients whether the body came from the scraper
    or from a replayed failure.
    """
    subject_id = (id or "").strip()
    if not subject_id:
        return _error_response(400, "missing_id", "query parameter 'id' is required")

    service = _get_details_service(request)
    outcome = await service.get_details(subject_id)

    max_age = SUCCESS_MAX_AGE_S if outcome.ok else FAILURE_MAX_AGE_S
    return JSONResponse(
        status_code=outcome.status,
        content=outcome.body,
        headers={
            "Cache-Control": _cache_control(max_age),
            "X-Data-Source": outcome.source,
        },
    )
