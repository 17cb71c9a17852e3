"""Health endpoint schema."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class MemoryUsage(BaseModel):
    """Resident and virtual memory of the process, in bytes."""

    rss: int
    vms: int


class CpuUsage(BaseModel):
    """CPU time consumed by the process, in seconds."""

    user: float
    system: float


class HealthSnapshot(BaseModel):
    """Point-in-time view of the process, built fresh on every call."""

    model_config = ConfigDict(populate_by_name=True)

    uptime: float = Field(..., description="Process uptime in seconds")
    message: str = Field(default="OK")
    timestamp: int = Field(..., description="Epoch milliseconds")
    environment: str
    version: str
    store_status: Literal["connected", "disconnected"] = Field(
        ..., alias="storeStatus"
    )
    memory: MemoryUsage
    cpu: CpuUsage
