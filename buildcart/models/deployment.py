"""Deployment data models."""

import math
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from buildcart.models.store import StoreSummary, utcnow


class DeploymentStatus(str, Enum):
    """Deployment lifecycle status."""

    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.SUCCESS, DeploymentStatus.FAILED)


class DeploymentEnvironment(str, Enum):
    """Target environment of a deployment."""

    PRODUCTION = "production"
    STAGING = "staging"


class Deployment(BaseModel):
    """One versioned attempt to publish a store snapshot."""

    id: UUID = Field(default_factory=uuid4)
    store_id: str
    version: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    environment: DeploymentEnvironment = DeploymentEnvironment.PRODUCTION

    url: str | None = None
    build_path: str | None = None
    build_logs: str = ""

    created_at: datetime = Field(default_factory=utcnow)
    deployed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def duration_seconds(self) -> float | None:
        """Build time from record creation to completion."""
        if self.deployed_at is None:
            return None
        return (self.deployed_at - self.created_at).total_seconds()

    def mark_building(self) -> None:
        """Move a pending deployment into the building state."""
        if self.status != DeploymentStatus.PENDING:
            raise ValueError(f"Cannot start building from status {self.status.value}")
        self.status = DeploymentStatus.BUILDING

    def mark_succeeded(self, url: str, build_path: str, logs: str) -> None:
        """Finish the deployment successfully."""
        self._finish(DeploymentStatus.SUCCESS, logs)
        self.url = url
        self.build_path = build_path

    def mark_failed(self, logs: str) -> None:
        """Finish the deployment as failed."""
        self._finish(DeploymentStatus.FAILED, logs)

    def _finish(self, status: DeploymentStatus, logs: str) -> None:
        if self.is_terminal:
            raise ValueError(f"Deployment {self.id} is already {self.status.value}")
        self.status = status
        self.build_logs = logs
        self.deployed_at = utcnow()


class DeploymentLogs(BaseModel):
    """Build log view of a deployment."""

    logs: str
    status: DeploymentStatus
    deployed_at: datetime | None = None


class Pagination(BaseModel):
    """Pagination metadata."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


class DeploymentPage(BaseModel):
    """One page of a store's deployments, newest first."""

    deployments: list[Deployment]
    pagination: Pagination


class DateRange(BaseModel):
    """Optional creation-date window."""

    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_order(self) -> "DateRange":
        if self.start and self.end and self.start > self.end:
            raise ValueError("start must not be after end")
        return self


class DeploymentStatistics(BaseModel):
    """Aggregated deployment counts for a store."""

    total_deployments: int = 0
    successful_deployments: int = 0
    failed_deployments: int = 0
    success_rate: float = 0.0
    average_build_time: float = 0.0


class DeploymentAnalytics(BaseModel):
    """Statistics plus the most recent deployments."""

    statistics: DeploymentStatistics
    recent_deployments: list[Deployment] = Field(default_factory=list)


class DomainBinding(BaseModel):
    """A custom domain bound to a store."""

    domain: str
    store_id: str
    url: str


class SSLStatus(BaseModel):
    """Result of an SSL enablement request."""

    domain: str
    ssl_enabled: bool = True
    certificate_requested: bool = False
    requested_at: datetime = Field(default_factory=utcnow)


class DeployResult(BaseModel):
    """Outcome of a deploy call."""

    deployment: Deployment
    url: str | None = None
    build_path: str | None = None
    domain: DomainBinding | None = None
    ssl: SSLStatus | None = None
    warnings: list[str] = Field(default_factory=list)


class DeploymentConfig(BaseModel):
    """Current deployment configuration of a store."""

    store: StoreSummary
    latest_deployment: Deployment | None = None
    deployment_url: str | None = None
