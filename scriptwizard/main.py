"""
Main FastAPI application for the ScriptWizard backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from scriptwizard.config import settings
from scriptwizard.exceptions import ScriptWizardError
from scriptwizard.routers import health, scripts
from scriptwizard.services.backends import BackendRegistry
from scriptwizard.services.orchestrator import IterationOrchestrator
from scriptwizard.services.store import InMemoryScriptStore

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting ScriptWizard backend …")
    logger.info("=" * 60)

    # 1. Store (volatile; every restart starts empty)
    store = InMemoryScriptStore()
    logger.info("✓ In-memory script store ready")

    # 2. Generation backends (missing credentials only warn)
    registry = BackendRegistry.from_settings()
    for kind, state in registry.describe().items():
        if state == "configured":
            logger.info("  ✓ Backend '%s' configured", kind)
        else:
            logger.warning("  ⚠ Backend '%s' has no API key — its scripts will fail", kind)
    logger.info("  Default backend: %s", registry.default.value)

    # 3. Orchestrator
    orchestrator = IterationOrchestrator(store, registry)

    app.state.store = store
    app.state.orchestrator = orchestrator

    logger.info("=" * 60)
    logger.info("  ScriptWizard backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield  # ← server is running

    logger.info("Shutting down ScriptWizard backend …")
    await orchestrator.shutdown()
    await store.close()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ScriptWizard API",
    description=(
        "**ScriptWizard** — iterative AI script writing.\n\n"
        "Create a script brief, let a language model draft it, refine it over "
        "several passes, edit by hand, and export the result.\n\n"
        "Key endpoints:\n"
        "- `POST /api/scripts` — create a script and start the first draft\n"
        "- `POST /api/scripts/{id}/iterations` — start the next refinement pass\n"
        "- `GET  /api/scripts/{id}/iterations/{iteration_id}` — poll a pass\n"
        "- `PUT  /api/scripts/{id}/iterations/{iteration_id}` — manual edit\n"
        "- `POST /api/scripts/{id}/export` — download HTML, Markdown or text\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Skip noisy health-check polling from the frontend
    if request.url.path not in ("/api/health", "/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

@app.exception_handler(ScriptWizardError)
async def script_wizard_exception_handler(request: Request, exc: ScriptWizardError):
    """Map application errors to their HTTP status."""
    logger.info(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.message,
        exc.error_code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies as 400 with a readable message."""
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "detail": "; ".join(problems) or "Invalid request",
            "error_code": "VALIDATION_ERROR",
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,  prefix="/api/health",  tags=["Health"])
app.include_router(scripts.router, prefix="/api/scripts", tags=["Scripts"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "ScriptWizard API",
        "version": "0.1.0",
        "description": "Iterative AI script writing backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "scripts": "/api/scripts",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "scriptwizard.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
