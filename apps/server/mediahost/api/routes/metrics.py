"""
apps/server/mediahost/api/routes/metrics.py
Prometheus scrape endpoint for lifecycle and process metrics.
"""

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST

from ..metrics.registry import render_prometheus_metrics

router = APIRouter(tags=["Metrics"])


@router.get("/metrics", include_in_schema=False)
async def prometheus_metrics():
    return Response(content=render_prometheus_metrics(), media_type=CONTENT_TYPE_LATEST)
