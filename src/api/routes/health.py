"""Health endpoint."""

import time
from functools import lru_cache
from typing import Annotated

import psutil
from fastapi import APIRouter, Depends

from src.api.schemas.health import CpuUsage, HealthSnapshot, MemoryUsage
from src.api.services import Services, get_services
from src.core.constants import MILLISECONDS_PER_SECOND

router = APIRouter(tags=["Operations"])


@lru_cache
def _current_process() -> psutil.Process:
    return psutil.Process()


def build_health_snapshot(services: Services) -> HealthSnapshot:
    """Build a fresh health snapshot from the process and the store state.

    Args:
        services: The application's collaborators.

    Returns:
        HealthSnapshot: The snapshot; never cached.
    """
    process = _current_process()
    now = time.time()

    with process.oneshot():
        memory = process.memory_info()
        cpu = process.cpu_times()
        started_at = process.create_time()

    return HealthSnapshot(
        uptime=max(now - started_at, 0.0),
        message="OK",
        timestamp=int(now * MILLISECONDS_PER_SECOND),
        environment=services.settings.environment,
        version=services.settings.app_version,
        store_status=(
            "connected" if services.connection_state.is_connected else "disconnected"
        ),
        memory=MemoryUsage(rss=memory.rss, vms=memory.vms),
        cpu=CpuUsage(user=cpu.user, system=cpu.system),
    )


@router.get("/health", response_model=HealthSnapshot)
async def health_check(
    services: Annotated[Services, Depends(get_services)],
) -> HealthSnapshot:
    """Report process liveness and backing store connectivity."""
    return build_health_snapshot(services)
