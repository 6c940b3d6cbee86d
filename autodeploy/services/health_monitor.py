"""Health Monitor.

Bounded-timeout HTTP health checks against deployed services: single
checks, poll-until-healthy, and continuous monitoring with a
consecutive-failure circuit breaker. Failures are returned as data
(``healthy=False``), never raised.
"""

import asyncio
import time
from typing import Awaitable, Callable

import httpx

from autodeploy import __version__
from autodeploy.config import settings
from autodeploy.models.health import (
    EndpointCheck,
    HealthCheckSummary,
    MonitoringCheck,
    MonitoringResult,
)
from autodeploy.utils.logging import get_logger

SleepFunc = Callable[[float], Awaitable[None]]


class HealthMonitor:
    """Issues health checks against HTTP endpoints."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc | None = None,
        clock: Callable[[], float] | None = None,
        endpoints: list[str] | None = None,
        timeout_ms: int | None = None,
        circuit_breaker_threshold: int | None = None,
        success_rate_threshold: float | None = None,
    ):
        self.transport = transport
        self.sleep = sleep or asyncio.sleep
        self.clock = clock or time.monotonic
        self.endpoints = endpoints or list(settings.health_endpoints)
        self.timeout_ms = timeout_ms or settings.health_check_timeout_ms
        self.circuit_breaker_threshold = (
            circuit_breaker_threshold or settings.circuit_breaker_threshold
        )
        self.success_rate_threshold = (
            success_rate_threshold
            if success_rate_threshold is not None
            else settings.monitoring_success_rate
        )
        self.logger = get_logger("health_monitor")

    def _client(self, timeout_ms: int) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=timeout_ms / 1000,
            headers={"User-Agent": f"autodeploy-health-check/{__version__}"},
            follow_redirects=True,
        )

    async def check_endpoint(self, url: str, timeout_ms: int | None = None) -> EndpointCheck:
        """Issue one GET; any non-2xx status or transport error is unhealthy."""
        timeout_ms = timeout_ms or self.timeout_ms
        start = time.perf_counter()

        try:
            async with self._client(timeout_ms) as client:
                response = await client.get(url)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            self.logger.warning(
                "health_monitor.endpoint_unreachable",
                url=url,
                error=str(exc) or type(exc).__name__,
            )
            return EndpointCheck(
                url=url,
                healthy=False,
                status=0,
                error=str(exc) or type(exc).__name__,
            )

        response_time_ms = int((time.perf_counter() - start) * 1000)
        healthy = response.is_success

        if healthy:
            self.logger.debug(
                "health_monitor.endpoint_healthy",
                url=url,
                status=response.status_code,
                response_time_ms=response_time_ms,
            )
        else:
            self.logger.warning(
                "health_monitor.endpoint_unhealthy",
                url=url,
                status=response.status_code,
            )

        return EndpointCheck(
            url=url,
            healthy=healthy,
            status=response.status_code,
            response_time_ms=response_time_ms,
        )

    async def perform_health_checks(
        self, base_url: str, endpoints: list[str] | None = None
    ) -> HealthCheckSummary:
        """Check every endpoint; the aggregate is healthy only at 100%."""
        endpoints = endpoints if endpoints is not None else self.endpoints
        results: list[EndpointCheck] = []

        for endpoint in endpoints:
            results.append(await self.check_endpoint(f"{base_url.rstrip('/')}{endpoint}"))

        healthy_count = sum(1 for r in results if r.healthy)
        total = len(endpoints)
        percentage = round(healthy_count / total * 100) if total else 100

        self.logger.info(
            "health_monitor.checks_completed",
            base_url=base_url,
            healthy=healthy_count,
            total=total,
            percentage=percentage,
        )

        return HealthCheckSummary(
            healthy=healthy_count == total,
            healthy_count=healthy_count,
            total_count=total,
            health_percentage=percentage,
            results=results,
        )

    async def wait_for_healthy(
        self,
        base_url: str,
        max_attempts: int = 10,
        interval_ms: int = 3000,
        endpoints: list[str] | None = None,
    ) -> bool:
        """Poll the endpoint list until it is fully healthy or attempts run out."""
        for attempt in range(1, max_attempts + 1):
            summary = await self.perform_health_checks(base_url, endpoints)
            if summary.healthy:
                self.logger.info(
                    "health_monitor.healthy", base_url=base_url, attempts=attempt
                )
                return True

            if attempt < max_attempts:
                await self.sleep(interval_ms / 1000)

        self.logger.error(
            "health_monitor.never_healthy", base_url=base_url, attempts=max_attempts
        )
        return False

    async def wait_for_service(
        self,
        url: str,
        max_attempts: int | None = None,
        delay_ms: int | None = None,
    ) -> bool:
        """Poll a single URL until it responds healthy or attempts run out."""
        max_attempts = max_attempts or settings.service_wait_attempts
        delay_ms = delay_ms if delay_ms is not None else settings.service_wait_delay_ms

        for attempt in range(1, max_attempts + 1):
            result = await self.check_endpoint(url)
            if result.healthy:
                self.logger.info("health_monitor.service_available", url=url, attempts=attempt)
                return True

            self.logger.debug(
                "health_monitor.service_waiting",
                url=url,
                attempt=attempt,
                max_attempts=max_attempts,
            )
            if attempt < max_attempts:
                await self.sleep(delay_ms / 1000)

        return False

    async def continuous_monitoring(
        self,
        base_url: str,
        duration_ms: int,
        interval_ms: int = 30_000,
        endpoints: list[str] | None = None,
    ) -> MonitoringResult:
        """Monitor for a wall-clock duration with a consecutive-failure breaker.

        The breaker trips after ``circuit_breaker_threshold`` unhealthy checks
        in a row, regardless of the remaining duration. Otherwise the run
        succeeds when the overall success rate reaches
        ``success_rate_threshold`` percent.
        """
        start = self.clock()
        checks: list[MonitoringCheck] = []
        consecutive_failures = 0

        self.logger.info(
            "health_monitor.monitoring_started",
            base_url=base_url,
            duration_ms=duration_ms,
            interval_ms=interval_ms,
        )

        while (self.clock() - start) * 1000 < duration_ms:
            summary = await self.perform_health_checks(base_url, endpoints)
            checks.append(MonitoringCheck(**summary.model_dump()))

            if summary.healthy:
                consecutive_failures = 0
            else:
                consecutive_failures += 1
                self.logger.warning(
                    "health_monitor.consecutive_failure", count=consecutive_failures
                )

                if consecutive_failures >= self.circuit_breaker_threshold:
                    self.logger.error(
                        "health_monitor.circuit_open",
                        base_url=base_url,
                        consecutive_failures=consecutive_failures,
                    )
                    successful = sum(1 for c in checks if c.healthy)
                    return MonitoringResult(
                        success=False,
                        success_rate=successful / len(checks) * 100,
                        total_checks=len(checks),
                        successful_checks=successful,
                        reason=f"{consecutive_failures} consecutive failures",
                        checks=checks,
                    )

            if (self.clock() - start) * 1000 < duration_ms:
                await self.sleep(interval_ms / 1000)

        successful = sum(1 for c in checks if c.healthy)
        success_rate = successful / len(checks) * 100 if checks else 0.0

        self.logger.info(
            "health_monitor.monitoring_completed",
            successful=successful,
            total=len(checks),
            success_rate=round(success_rate, 1),
        )

        return MonitoringResult(
            success=success_rate >= self.success_rate_threshold,
            success_rate=success_rate,
            total_checks=len(checks),
            successful_checks=successful,
            checks=checks,
        )
