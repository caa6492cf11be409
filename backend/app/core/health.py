"""
Health check aggregation — deep health probe for the edge backend.

Checks:
    • Location directory (database connectivity)
    • Push delivery configuration (provider + credentials present)

Returns a structured health report suitable for:
    - Container liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.config import settings
from backend.app.core.database import get_engine, ping

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_directory() -> ComponentHealth:
    """Check the user_locations database is reachable."""
    comp = ComponentHealth(name="location_directory")
    start = time.monotonic()
    try:
        await ping(get_engine())
        comp.message = "Database reachable"
    except Exception as e:
        logger.warning("Directory health check failed: %s", e)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e)
    comp.details = {"url": settings.DATABASE_URL.split("@")[-1]}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_push_delivery() -> ComponentHealth:
    """Check the push provider is configured (no network call)."""
    comp = ComponentHealth(name="push_delivery")
    start = time.monotonic()
    provider = settings.PUSH_PROVIDER.lower()
    comp.details = {"provider": provider}

    if provider == "simulation":
        comp.status = HealthStatus.DEGRADED
        comp.message = "Simulation mode — notifications are not delivered"
    elif provider == "fcm" and not settings.FCM_SERVER_KEY:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "FCM_SERVER_KEY is not set"
    elif provider != "fcm":
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Unknown provider '{provider}'"
    else:
        comp.message = "FCM configured"

    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check() -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for coro in (check_directory(), check_push_delivery()):
        report.components.append(await coro)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
