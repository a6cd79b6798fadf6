"""
Health check API endpoints.
Reports service liveness and database connectivity.
"""

import time

from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ...core.config import Settings
from ...core.dependencies import get_settings_dependency
from ...db.mongo import DatabaseDep
from ...utils.logger import get_logger

logger = get_logger("health")

SERVICE_NAME = "Tessera Backend"

router = APIRouter(
    prefix="/api/v1",
    tags=["health"],
    responses={
        500: {"description": "Internal server error"}
    }
)


@router.get(
    "/health",
    summary="Health Check",
    description="Returns the health status of the service and its database",
    response_description="Service health information"
)
async def health_check(
    db: AsyncIOMotorDatabase = DatabaseDep,
    settings: Settings = Depends(get_settings_dependency),
):
    """
    Ping the database and report the service status.

    Returns:
        Dictionary with service status, version, timestamp and database state
    """
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "error",
            "service": SERVICE_NAME,
            "timestamp": int(time.time()),
            "version": settings.API_VERSION,
            "database": "disconnected",
            "error": str(e)
        }

    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": int(time.time()),
        "version": settings.API_VERSION,
        "database": "connected"
    }


@router.get(
    "/health/ready",
    summary="Readiness Check",
    description="Readiness status for container orchestration"
)
async def readiness_check(db: AsyncIOMotorDatabase = DatabaseDep):
    try:
        await db.command("ping")
    except PyMongoError as e:
        logger.error(f"Readiness check failed: {e}")
        return {
            "status": "not_ready",
            "service": SERVICE_NAME,
            "timestamp": int(time.time()),
            "dependencies": {"database": "unhealthy", "api": "healthy"},
            "error": str(e)
        }

    return {
        "status": "ready",
        "service": SERVICE_NAME,
        "timestamp": int(time.time()),
        "dependencies": {"database": "healthy", "api": "healthy"}
    }


@router.get(
    "/health/live",
    summary="Liveness Check",
    description="Liveness status for container orchestration"
)
async def liveness_check():
    return {
        "status": "alive",
        "service": SERVICE_NAME,
        "timestamp": int(time.time())
    }
