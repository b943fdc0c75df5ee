"""
Health Check Utilities.

Usage:
    from shared.utils.health import health_check_with_timeout, aggregate_health_checks

    @health_check_with_timeout(timeout=3.0, component="database")
    async def check_database():
        await store.ping()

    result = await aggregate_health_checks([check_database()])
    # {"status": "healthy", "components": {"database": {...}}}
"""

from __future__ import annotations

import asyncio
import functools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Coroutine

from shared.config.logging import get_logger

logger = get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass
class HealthCheckResult:
    """Outcome of one component check."""

    status: HealthStatus
    component: str
    latency_ms: float | None = None
    error: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status.value, "component": self.component}
        if self.latency_ms is not None:
            result["latency_ms"] = round(self.latency_ms, 2)
        if self.error:
            result["error"] = self.error
        if self.details:
            result["details"] = self.details
        return result


def health_check_with_timeout(timeout: float = 5.0, component: str | None = None):
    """
    Wrap an async check so it always returns a HealthCheckResult.

    The check is healthy when it returns (optionally a dict of details) within
    ``timeout`` seconds; a timeout or any exception makes it unhealthy.

    Args:
        timeout: Maximum time to wait for the check (seconds).
        component: Component name (defaults to the function name without
            the ``check_`` prefix).
    """

    def decorator(
        func: Callable[..., Coroutine[Any, Any, dict[str, Any] | None]],
    ) -> Callable[..., Coroutine[Any, Any, HealthCheckResult]]:
        name = component or func.__name__.removeprefix("check_")

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> HealthCheckResult:
            started = time.perf_counter()
            try:
                details = await asyncio.wait_for(func(*args, **kwargs), timeout=timeout)
            except asyncio.TimeoutError:
                latency_ms = (time.perf_counter() - started) * 1000
                logger.warning("Health check timeout", component=name, timeout=timeout)
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=name,
                    latency_ms=latency_ms,
                    error=f"timeout after {timeout}s",
                )
            except Exception as e:
                latency_ms = (time.perf_counter() - started) * 1000
                logger.warning("Health check failed", component=name, error=str(e))
                return HealthCheckResult(
                    status=HealthStatus.UNHEALTHY,
                    component=name,
                    latency_ms=latency_ms,
                    error=str(e),
                )

            return HealthCheckResult(
                status=HealthStatus.HEALTHY,
                component=name,
                latency_ms=(time.perf_counter() - started) * 1000,
                details=details if isinstance(details, dict) else {},
            )

        return wrapper

    return decorator


async def aggregate_health_checks(
    checks: list[Coroutine[Any, Any, HealthCheckResult]],
) -> dict[str, Any]:
    """
    Run checks concurrently. The aggregate is degraded if any component is
    not healthy.
    """
    results = await asyncio.gather(*checks, return_exceptions=True)

    components: dict[str, dict[str, Any]] = {}
    all_healthy = True
    for result in results:
        if isinstance(result, HealthCheckResult):
            components[result.component] = result.to_dict()
            all_healthy = all_healthy and result.status is HealthStatus.HEALTHY
        elif isinstance(result, BaseException):
            components["unknown"] = {"status": HealthStatus.UNHEALTHY.value, "error": str(result)}
            all_healthy = False

    return {
        "status": HealthStatus.HEALTHY.value if all_healthy else HealthStatus.DEGRADED.value,
        "components": components,
    }
