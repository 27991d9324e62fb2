"""
Page-view analytics routes
"""
import secrets

from fastapi import APIRouter, Depends, Query, Request, Response

from src.api.decoders import json_body
from src.api.dependencies import VISITOR_COOKIE, get_metrics_store
from src.api.limiter import BEACON_LIMIT, limiter
from src.api.schemas.metrics import ViewBeacon
from src.api.services.metrics_service import (
    MetricsStore,
    MetricsSummary,
    is_valid_visitor_id,
    normalize_page,
    utc_today,
)
from src.config import config

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])


@router.post("/view", summary="Record a page view")
@limiter.limit(BEACON_LIMIT)
async def record_view(
    request: Request,
    response: Response,
    beacon: ViewBeacon = Depends(json_body(ViewBeacon, allow_empty=True)),
    store: MetricsStore = Depends(get_metrics_store),
):
    """
    Count a view of ``page`` for today (UTC). The visitor is identified by a
    long-lived anonymous cookie, minted on the first beacon.
    """
    visitor_id = request.cookies.get(VISITOR_COOKIE)
    if not is_valid_visitor_id(visitor_id):
        visitor_id = secrets.token_hex(16)
    response.set_cookie(
        VISITOR_COOKIE,
        visitor_id,
        max_age=config.get("session", "visitor_max_age"),
        httponly=True,
        samesite="lax",
        secure=config.is_production,
    )

    page = normalize_page(beacon.page)
    store.record_view(utc_today(), page, visitor_id)
    return {"ok": True, "page": page}


@router.get("/summary", response_model=MetricsSummary, summary="Aggregated page views")
async def metrics_summary(
    days: int = Query(
        config.get("metrics", "default_days"), ge=1, le=config.get("metrics", "max_days")
    ),
    top: int = Query(config.get("metrics", "top_pages"), ge=1, le=50),
    store: MetricsStore = Depends(get_metrics_store),
):
    """Views and unique visitors for each of the last ``days`` days, plus the top pages."""
    return store.summary(days, top)
