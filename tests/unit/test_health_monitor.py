"""Unit tests for the health monitor."""

import httpx
import pytest

from autodeploy.services.health_monitor import HealthMonitor
from tests.fakes import FakeClock, failing_transport, status_transport


def monitor_for(transport: httpx.MockTransport, clock: FakeClock, **kwargs) -> HealthMonitor:
    return HealthMonitor(transport=transport, sleep=clock.sleep, clock=clock, **kwargs)


class TestCheckEndpoint:
    """Tests for single endpoint checks."""

    @pytest.mark.asyncio
    async def test_2xx_is_healthy(self, clock: FakeClock):
        monitor = monitor_for(status_transport(lambda r: 204), clock)

        result = await monitor.check_endpoint("https://p.example.com/health")

        assert result.healthy is True
        assert result.status == 204
        assert result.response_time_ms is not None
        assert result.error is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [404, 500, 503])
    async def test_non_2xx_is_unhealthy(self, clock: FakeClock, status_code: int):
        monitor = monitor_for(status_transport(lambda r: status_code), clock)

        result = await monitor.check_endpoint("https://p.example.com/health")

        assert result.healthy is False
        assert result.status == status_code

    @pytest.mark.asyncio
    async def test_network_error_is_data_not_exception(self, clock: FakeClock):
        monitor = monitor_for(failing_transport({"p.example.com"}), clock)

        result = await monitor.check_endpoint("https://p.example.com/health")

        assert result.healthy is False
        assert result.status == 0
        assert "connection refused" in result.error


class TestPerformHealthChecks:
    """Tests for aggregate endpoint checks."""

    @pytest.mark.asyncio
    async def test_all_healthy(self, clock: FakeClock):
        monitor = monitor_for(status_transport(lambda r: 200), clock)

        summary = await monitor.perform_health_checks(
            "https://p.example.com/", ["/health", "/api/health"]
        )

        assert summary.healthy is True
        assert summary.healthy_count == 2
        assert summary.health_percentage == 100
        assert [r.url for r in summary.results] == [
            "https://p.example.com/health",
            "https://p.example.com/api/health",
        ]

    @pytest.mark.asyncio
    async def test_partial_failure_is_unhealthy(self, clock: FakeClock):
        monitor = monitor_for(
            status_transport(lambda r: 500 if r.url.path == "/api/health" else 200), clock
        )

        summary = await monitor.perform_health_checks(
            "https://p.example.com", ["/health", "/api/health"]
        )

        assert summary.healthy is False
        assert summary.healthy_count == 1
        assert summary.total_count == 2
        assert summary.health_percentage == 50


class TestWaiting:
    """Tests for polling until healthy."""

    @pytest.mark.asyncio
    async def test_wait_for_healthy_returns_false_after_attempts(self, clock: FakeClock):
        monitor = monitor_for(status_transport(lambda r: 503), clock)

        healthy = await monitor.wait_for_healthy(
            "https://p.example.com", max_attempts=4, interval_ms=3000
        )

        assert healthy is False
        # No sleep after the final attempt
        assert clock.sleeps == [3.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_wait_for_service_succeeds_once_up(self, clock: FakeClock):
        calls = {"count": 0}

        def status_for(request: httpx.Request) -> int:
            calls["count"] += 1
            return 200 if calls["count"] >= 3 else 503

        monitor = monitor_for(status_transport(status_for), clock)

        available = await monitor.wait_for_service(
            "https://p.example.com", max_attempts=30, delay_ms=2000
        )

        assert available is True
        assert calls["count"] == 3
        assert clock.sleeps == [2.0, 2.0]


class TestContinuousMonitoring:
    """Tests for continuous monitoring and its circuit breaker."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration_ms", [60_000, 300_000, 3_600_000])
    async def test_always_unhealthy_trips_after_exactly_three_checks(
        self, clock: FakeClock, duration_ms: int
    ):
        monitor = monitor_for(status_transport(lambda r: 500), clock)

        result = await monitor.continuous_monitoring(
            "https://p.example.com", duration_ms=duration_ms, interval_ms=1000
        )

        assert result.success is False
        assert result.total_checks == 3
        assert result.successful_checks == 0
        assert result.reason == "3 consecutive failures"

    @pytest.mark.asyncio
    async def test_healthy_check_resets_consecutive_failures(self, clock: FakeClock):
        # Pattern: fail, fail, ok, fail, fail, ok ... never three in a row
        calls = {"count": 0}

        def status_for(request: httpx.Request) -> int:
            calls["count"] += 1
            return 200 if calls["count"] % 3 == 0 else 500

        monitor = monitor_for(status_transport(status_for), clock, endpoints=["/health"])

        result = await monitor.continuous_monitoring(
            "https://p.example.com", duration_ms=9_000, interval_ms=1000
        )

        assert result.reason is None
        assert result.total_checks == 9
        assert result.successful_checks == 3
        assert result.success is False  # 33% is below the 90% bar

    @pytest.mark.asyncio
    async def test_success_rate_threshold(self, clock: FakeClock):
        monitor = monitor_for(status_transport(lambda r: 200), clock)

        result = await monitor.continuous_monitoring(
            "https://p.example.com", duration_ms=10_000, interval_ms=1000
        )

        assert result.success is True
        assert result.success_rate == 100.0
        assert result.total_checks == 10

    @pytest.mark.asyncio
    async def test_thresholds_are_configurable(self, clock: FakeClock):
        monitor = monitor_for(
            status_transport(lambda r: 500), clock, circuit_breaker_threshold=5
        )

        result = await monitor.continuous_monitoring(
            "https://p.example.com", duration_ms=60_000, interval_ms=1000
        )

        assert result.total_checks == 5
        assert result.reason == "5 consecutive failures"
