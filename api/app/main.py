"""
FastAPI application for the Market Translation API.
This module sets up the API server with routes, middleware, and error handling.
"""

import ipaddress
import logging
import sys
from contextlib import asynccontextmanager

from app.core.config import get_settings
from app.core.error_handlers import base_exception_handler, unhandled_exception_handler
from app.core.exceptions import BaseAppException
from app.routes import health, translation
from app.services.translation.bootstrap import create_translation_service
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_fastapi_instrumentator import metrics as instrumentator_metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("app.main")

# Settings will be lazily initialized when first accessed
# No module-level initialization to avoid side effects during imports/testing


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Application startup...")

    settings = get_settings()
    app.state.settings = settings
    logging.getLogger().setLevel(settings.LOG_LEVEL.upper())

    logger.info("Initializing TranslationService...")
    translation_service = create_translation_service(settings)
    translation_service.start()
    app.state.translation_service = translation_service
    logger.info("TranslationService started")

    # Yield control to the application
    yield

    # Shutdown
    logger.info("Application shutdown...")
    await translation_service.stop()
    app.state.translation_service = None


# Create FastAPI application
app = FastAPI(
    title=get_settings().PROJECT_NAME,
    docs_url="/api/docs",
    openapi_url=f"{get_settings().API_V1_STR}/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
# Toggle credentials off when wildcard is used (Starlette forbids wildcard + credentials)
_origins = get_settings().CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_credentials=False if _origins == ["*"] else True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up Prometheus metrics
# DON'T call .expose() - the /metrics endpoint below applies the internal-only check
instrumentator = Instrumentator(
    should_group_status_codes=False,
    should_ignore_untemplated=True,
    should_respect_env_var=False,  # Always enable metrics
    should_instrument_requests_inprogress=True,
    excluded_handlers=["/health", "/healthcheck", "/metrics"],
    inprogress_name="http_requests_inprogress",
    inprogress_labels=True,
)
instrumentator.add(instrumentator_metrics.default())
instrumentator.add(
    instrumentator_metrics.latency(
        buckets=(0.05, 0.1, 0.5, 1, 2, 5, 10, 30)  # Provider calls can take seconds
    )
)
instrumentator.instrument(app)
logger.info("Prometheus metrics instrumentation initialized")


def _is_private_client(client_host: str) -> bool:
    if client_host in ("localhost", "testclient"):
        return True
    try:
        ip = ipaddress.ip_address(client_host.strip("[]"))
    except ValueError:
        # Unparsable address - deny (fail closed)
        return False
    return ip.is_private or ip.is_loopback or ip.is_link_local


@app.get("/metrics", include_in_schema=False)
async def metrics(request: Request):
    """
    Prometheus metrics endpoint (internal-only).

    In production the endpoint is restricted to private networks so it fails
    closed if the reverse proxy is misconfigured.
    """
    settings = get_settings()
    if str(settings.ENVIRONMENT).strip().lower() in {"production", "prod"}:
        client_host = (request.client.host if request.client else "") or ""
        if not _is_private_client(client_host):
            raise HTTPException(status_code=404)

    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(translation.router)


@app.get("/healthcheck")
async def healthcheck():
    return {"status": "healthy"}


# Register exception handlers
# Register specific application exceptions first
app.add_exception_handler(BaseAppException, base_exception_handler)  # type: ignore[arg-type]
# Then register generic exception handler as fallback
app.add_exception_handler(Exception, unhandled_exception_handler)


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    # Bind to 0.0.0.0 only in DEBUG mode (container/development)
    # Otherwise bind to 127.0.0.1 for local security
    host = "0.0.0.0" if settings.DEBUG else "127.0.0.1"

    uvicorn.run(
        "app.main:app",
        host=host,
        port=8000,
        reload=settings.DEBUG,
    )
