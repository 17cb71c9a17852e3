"""Prometheus scrape endpoint."""

from typing import Annotated

from fastapi import APIRouter, Depends, Response
from loguru import logger

from src.api.constants import METRICS_UNAVAILABLE
from src.api.schemas.errors import ErrorResponse
from src.api.services import Services, get_services
from src.api.utils.responses import ORJSONResponse

router = APIRouter(tags=["Operations"])


@router.get("/metrics", response_class=Response)
async def metrics(services: Annotated[Services, Depends(get_services)]) -> Response:
    """Render every registered metric in the text exposition format."""
    registry = services.registry
    try:
        payload = registry.snapshot()
    except Exception as exc:  # noqa: BLE001
        logger.opt(exception=exc).error("Failed to render metrics")
        return ORJSONResponse(
            status_code=500,
            content=ErrorResponse(error=str(exc) or METRICS_UNAVAILABLE).to_content(),
        )

    return Response(content=payload, media_type=registry.content_type)
