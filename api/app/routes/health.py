import os
import time

import psutil  # type: ignore[import-untyped]
from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint that monitors system resources and service status.

    Returns "initializing" until the translation service has been built by the
    lifespan handler; afterwards the overall status mirrors the translation
    health (healthy, degraded or unhealthy).
    """
    # System metrics
    cpu_percent = psutil.cpu_percent()
    memory = psutil.virtual_memory()
    disk = psutil.disk_usage("/")

    translation_service = getattr(request.app.state, "translation_service", None)
    if translation_service is None:
        overall_status = "initializing"
        translation: dict = {"status": "initializing"}
    else:
        health = await translation_service.check_health()
        overall_status = health["status"]
        translation = {
            "status": health["status"],
            "providers": health["providers"],
            "cache_available": health["cache_available"],
            "queue_size": health["queue_size"],
        }

    # BUILD_ID is injected via Docker build arg from git commit hash
    build_id = os.getenv("BUILD_ID", "unknown")

    return {
        "status": overall_status,
        "timestamp": int(time.time()),
        "build_id": build_id,
        "system": {
            "cpu_percent": cpu_percent,
            "memory_percent": memory.percent,
            "disk_percent": disk.percent,
        },
        "services": {"translation": translation},
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness probe: ready once the translation service exists.
    """
    if getattr(request.app.state, "translation_service", None) is None:
        return {"status": "initializing"}
    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """
    Liveness probe that checks if the service is running.
    """
    return {"status": "alive"}
