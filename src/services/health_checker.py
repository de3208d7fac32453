# src/services/health_checker.py

"""Source connectivity health checker."""

import asyncio
import logging
import time
from dataclasses import dataclass

from src.connectors.base_connector import BaseConnector
from src.services.context import SourcingContext

logger = logging.getLogger("sourcing.health")


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "down", "unconfigured"
    latency_ms: float
    message: str


async def check_source(
    connector: BaseConnector, slow_ms: float = 5000.0,
) -> HealthResult:
    """Check one connector's authentication (or homepage)."""
    source_id = connector.source_id
    if not connector.is_configured():
        return HealthResult(
            source_id=source_id,
            status="unconfigured",
            latency_ms=0.0,
            message="Credentials not configured",
        )

    start = time.monotonic()
    try:
        healthy = await connector.health_check()
    except Exception as exc:
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=(time.monotonic() - start) * 1000,
            message=str(exc)[:80],
        )
    elapsed_ms = (time.monotonic() - start) * 1000

    if not healthy:
        return HealthResult(
            source_id=source_id,
            status="down",
            latency_ms=elapsed_ms,
            message="Authentication failed",
        )
    if elapsed_ms > slow_ms:
        return HealthResult(
            source_id=source_id,
            status="slow",
            latency_ms=elapsed_ms,
            message="High latency",
        )
    return HealthResult(
        source_id=source_id,
        status="ok",
        latency_ms=elapsed_ms,
        message="",
    )


class HealthChecker:
    """Runs concurrent health checks against all sources."""

    def __init__(self, context: SourcingContext) -> None:
        self.context = context

    async def check_all(self) -> list[HealthResult]:
        """Check every registered connector concurrently."""
        slow_ms = self.context.settings.SLOW_SOURCE_MS
        results: list[HealthResult] = list(
            await asyncio.gather(
                *(
                    check_source(connector, slow_ms)
                    for connector in self.context.connectors.values()
                )
            )
        )
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
