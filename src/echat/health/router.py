"""Health, readiness, and version endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from echat.config import get_settings
from echat.dependencies import get_registry
from echat.errors import EchatError
from echat.services.factory import ServiceRegistry

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe: returns 200 if the process is alive."""
    return {"status": "healthy"}


@router.get("/ready")
async def readiness(registry: ServiceRegistry = Depends(get_registry)) -> JSONResponse:  # noqa: B008
    """Readiness probe: pings the store of the deployment region, or of every configured region."""
    configured = registry.configured_region
    regions = [configured] if configured else registry.backends.configured_regions()
    checks: dict[str, str] = {}
    for region in regions:
        try:
            backend = await registry.backends.get(region)
            await backend.ping()
            checks[region.value] = "ok"
        except EchatError as exc:
            checks[region.value] = f"error: {exc.message}"

    all_ok = bool(checks) and all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={"status": "ready" if all_ok else "degraded", "checks": checks},
    )


@router.get("/version")
async def version() -> dict[str, str]:
    """Return API version, environment and deployment region."""
    settings = get_settings()
    return {
        "version": settings.app_version,
        "environment": settings.environment,
        "region": settings.deployment_region or "auto",
    }
