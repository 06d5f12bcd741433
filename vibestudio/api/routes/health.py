"""Health & Readiness Probes.

Invariants:
    - GET /health/ is 200 whenever the process is up
    - GET /health/ready is 503 only when the database is unreachable; an
      unconfigured LLM or in-flight runs are reported but never fail the probe
"""

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from vibestudio.api.dependencies import Services, get_services
from vibestudio.infrastructure import database
from vibestudio.services.llm_settings import llm_status

router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def health_check():
    return {"status": "healthy", "service": "vibestudio-api", "version": "0.1.0"}


@router.get("/ready")
async def readiness_check(services: Services = Depends(get_services)):
    """Database connectivity, plus agent-side status for operators."""
    manager = database.db_manager
    if manager is None or not await manager.health_check():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable"},
        )
    llm = await llm_status(services.settings_repo)
    return {
        "status": "ready",
        "checks": {
            "database": "healthy",
            "llm": "configured" if llm["configured"] else "unconfigured",
        },
        "active_runs": len(services.registry.active()),
    }
