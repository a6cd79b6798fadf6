"""
Main FastAPI application entry point for the Tessera backend.
Configures the application, middleware, exception handlers and routes.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api.v1.certificates import router as certificates_router
from .api.v1.health import router as health_router
from .core.config import get_settings
from .core.errors import PipelineError
from .core.middleware import setup_middleware_stack
from .db.mongo import close_mongo_connection, connect_to_mongo
from .utils.logger import get_logger, setup_logger

settings = get_settings()
setup_logger(level=settings.LOG_LEVEL)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Opens the MongoDB connection on startup and closes it on shutdown.
    """
    logger.info("Starting Tessera Backend...")
    try:
        await connect_to_mongo()
        logger.info("Application startup completed successfully")
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutting down Tessera Backend...")
    await close_mongo_connection()
    logger.info("Application shutdown completed successfully")


app = FastAPI(
    title="Tessera Backend API",
    description="Certificate issuance service: IPFS pinning, blockchain anchoring and QR verification",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

setup_middleware_stack(app)

app.include_router(health_router)
app.include_router(certificates_router)


@app.exception_handler(PipelineError)
async def pipeline_exception_handler(request: Request, exc: PipelineError):
    """
    Render domain errors with the status code their type maps to.
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")

    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle request validation errors with detailed error messages.
    """
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "Validation Error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc)
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions with proper logging and error response.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "message": "An unexpected error occurred"
        }
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the raw exception into "ctx" for some errors
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in exc.errors()
    ]


@app.get(
    "/",
    summary="Root Endpoint",
    description="Welcome endpoint for the Tessera Backend API",
    tags=["root"]
)
async def root():
    return {
        "message": "Welcome to Tessera Backend API",
        "version": __version__,
        "service": "Tessera Backend",
        "docs": "/docs",
        "health": "/api/v1/health",
        "certificates": "/api/v1/certificates"
    }
