"""
Driver Models - Metadata, status and run summary shared by all drivers
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Health(str, Enum):
    """Self-reported operational state of a driver"""

    OK = "OK"
    WARN = "WARN"
    ERROR = "ERROR"


class DriverMetadata(BaseModel):
    """Static description of a driver. Immutable after construction."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    is_automatic: bool = Field(default=False, alias="isAutomatic")
    schedule: str | None = Field(
        default=None,
        description="Cadence rule for automatic runs (falls back to the scheduler default)",
    )


class DriverStatus(BaseModel):
    """Status recomputed on demand, never persisted"""

    model_config = ConfigDict(populate_by_name=True)

    last_pull: datetime | None = Field(default=None, alias="lastPull")
    storage_usage: str = Field(default="0 B", alias="storageUsage")
    health: Health = Health.OK
    message: str = ""

    @classmethod
    def error(cls, message: str) -> DriverStatus:
        """Status reported when a driver cannot be probed"""
        return cls(health=Health.ERROR, message=message, storage_usage="unknown")


class FetchResult(BaseModel):
    """Summary of one fetch cycle"""

    model_config = ConfigDict(populate_by_name=True)

    new_events: int = Field(default=0, ge=0, alias="newEvents")
    warnings: list[str] = Field(default_factory=list)
