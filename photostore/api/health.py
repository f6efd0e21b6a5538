"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from photostore.api.deps import get_store
from photostore.schemas.photo import HealthResponse
from photostore.services.content_store import ContentStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

VERSION = "0.1.0"


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    store: Annotated[ContentStore, Depends(get_store)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    status = "ok"
    if not store.base_dir.is_dir():
        logger.warning("Health check: photo directory %s is missing", store.base_dir)
        status = "degraded"

    return HealthResponse(status=status, version=VERSION, photos=len(store))
