"""Fire-and-continue secondary effects.

Some writes are not part of the primary operation (revoking a session before a
device row is removed, mirroring presence to the secondary region). Their
failure is reported as a value, logged, and never raised to the caller.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class BestEffortResult:
    """Outcome of a best-effort operation."""

    operation: str
    ok: bool
    error: str | None = None


async def run_best_effort(operation: str, awaitable: Awaitable[object], **log_context: object) -> BestEffortResult:
    """Await a secondary effect, converting any failure into a logged result."""
    try:
        await awaitable
    except Exception as exc:  # noqa: BLE001
        logger.warning(f"{operation}_failed", error=str(exc), **log_context)
        return BestEffortResult(operation=operation, ok=False, error=str(exc))
    return BestEffortResult(operation=operation, ok=True)
