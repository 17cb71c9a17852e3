"""Business endpoints under ``/api``."""

import os
import uuid
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from loguru import logger

from src.api.constants import OPERATION_DATA_FETCH, STATUS_ERROR, STATUS_SUCCESS
from src.api.schemas.errors import ErrorResponse
from src.api.services import Services, get_services
from src.api.utils.responses import ORJSONResponse
from src.core.metrics import BUSINESS_OPERATIONS_TOTAL

router = APIRouter(prefix="/api", tags=["API"])


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_sample_data() -> dict[str, Any]:
    """Produce the payload served by ``/api/data``."""
    return {
        "id": uuid.uuid4().hex[:9],
        "message": "Sample data",
        "timestamp": _now_iso(),
        "server": os.getenv("HOSTNAME", "unknown"),
    }


@router.get("")
async def api_root(
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Report that the API is up."""
    return {
        "message": f"{services.settings.app_name} API is working",
        "timestamp": _now_iso(),
        "environment": services.settings.environment,
    }


@router.get("/data")
async def api_data(services: Annotated[Services, Depends(get_services)]) -> Response:
    """Serve sample data and count the operation."""
    labels = {"operation": OPERATION_DATA_FETCH}
    try:
        data = build_sample_data()
    except Exception as exc:  # noqa: BLE001
        logger.opt(exception=exc).error("Data fetch failed")
        services.registry.inc(
            BUSINESS_OPERATIONS_TOTAL, {**labels, "status": STATUS_ERROR}
        )
        return ORJSONResponse(
            status_code=500,
            content=ErrorResponse(error=str(exc) or type(exc).__name__).to_content(),
        )

    services.registry.inc(
        BUSINESS_OPERATIONS_TOTAL, {**labels, "status": STATUS_SUCCESS}
    )
    return ORJSONResponse(content=data)
