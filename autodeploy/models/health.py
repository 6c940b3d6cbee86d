"""Health check result models."""

from datetime import datetime

from pydantic import BaseModel, Field


class EndpointCheck(BaseModel):
    """Outcome of one bounded-timeout request."""

    url: str
    healthy: bool
    status: int = 0
    response_time_ms: int | None = None
    error: str | None = None


class HealthCheckSummary(BaseModel):
    """Aggregate over a fixed endpoint list."""

    healthy: bool
    healthy_count: int
    total_count: int
    health_percentage: int
    results: list[EndpointCheck] = Field(default_factory=list)


class MonitoringCheck(HealthCheckSummary):
    """A health summary taken during continuous monitoring."""

    timestamp: datetime = Field(default_factory=datetime.utcnow)


class MonitoringResult(BaseModel):
    """Outcome of continuous monitoring."""

    success: bool
    success_rate: float = 0.0
    total_checks: int = 0
    successful_checks: int = 0
    reason: str | None = None
    checks: list[MonitoringCheck] = Field(default_factory=list)
