"""Prometheus scrape endpoint.

Text exposition format, not JSON.  Besides the HTTP request metrics it
carries the learning counters (progress upserts, enrollment changes,
generated reports) defined in app.core.metrics.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
