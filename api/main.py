"""
Main FastAPI application definitions, middleware, and request handlers.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Import exception handlers from separate module
from api.exceptions import add_exception_handlers

# Import route modules
from api.routes import content, system
from config.settings import settings
from container import container, wire_container

# Import structured logging and configure
from infrastructure.monitoring import configure_structlog, get_logger

# Configure structlog for the application
configure_structlog(settings.monitoring.log_level, settings.monitoring.log_format)
logger = get_logger(__name__)

# ============================================================================
# MIDDLEWARE STACK (Cross-Cutting Concerns)
# ============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for distributed tracing and correlation."""

    async def dispatch(self, request: Request, call_next):
        # Get request ID from header or generate new one
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

        # Add to request state for access in route handlers
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================================
# FASTAPI APPLICATION INITIALIZATION
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup/shutdown.

    Starts activity pruning on the serving loop and closes the model client
    on the way out.
    """
    # Startup
    llm = settings.llm
    if not (llm.endpoint and llm.api_key and llm.deployment):
        # Model calls fail with a configuration error until this is fixed
        logger.warning("llm_unconfigured", environment=settings.environment)

    tracker = container.activity_tracker()
    tracker.start()
    logger.info(
        "application_startup_complete",
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    yield  # Application runs here

    # Shutdown
    await tracker.stop()
    await container.llm_client().close()
    logger.info("application_shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Template-driven brand content generation with validation and repair",
    version=settings.app_version,
    debug=settings.debug,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add exception handlers
add_exception_handlers(app)

# Wire container to enable dependency injection BEFORE including routes
wire_container("api.routes.content", "api.routes.system")

# Include route modules
app.include_router(content.router)
app.include_router(system.router)


# API Root - redirect to docs
@app.get("/")
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/docs")


# Middleware stack (order matters: last added = first executed)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Accept-Language", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info", access_log=True
    )
