"""Prometheus metrics endpoint.

Scrape config:
    ```yaml
    scrape_configs:
      - job_name: 'outbox-service'
        static_configs:
          - targets: ['localhost:8000']
        metrics_path: '/metrics'
    ```
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from outbox_service.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    """Expose the outbox publisher metrics in Prometheus text format."""
    data = generate_latest(REGISTRY)
    return Response(
        content=data,
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
