"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from scriptwizard.dependencies.services import get_orchestrator, get_store
from scriptwizard.models.schemas import HealthCheckResponse
from scriptwizard.services.orchestrator import IterationOrchestrator
from scriptwizard.services.store import ScriptStore

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(
    store: ScriptStore = Depends(get_store),
    orchestrator: IterationOrchestrator = Depends(get_orchestrator),
):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with store counts and backend configuration
    """
    counts = await store.counts()
    counts["pending_tasks"] = orchestrator.pending

    backends = orchestrator.registry.describe()
    default = orchestrator.registry.default.value

    # Degraded when the fallback backend cannot authenticate
    overall_status = "healthy" if backends.get(default) == "configured" else "degraded"
    if overall_status != "healthy":
        logger.warning("Health check: default backend %s has no credentials", default)

    return HealthCheckResponse(
        status=overall_status,
        store=counts,
        backends=backends,
        timestamp=datetime.now(timezone.utc),
    )
