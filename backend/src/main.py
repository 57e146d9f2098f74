# pyright: reportMissingTypeStubs=false
"""
MediConnect-BD Scheduling Backend API

A FastAPI application providing appointment slot availability, booking and
same-day queue management for MediConnect-BD hospitals.

Features:
- Weekly slot rules per doctor and on-demand dated sessions
- Capacity-safe booking with sequential queue numbers
- Doctor queue control (call next, start, complete, reset)
- Status notifications to patients and doctors
- PostgreSQL database with SQLAlchemy ORM
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, queue, slots
from core.config import LOG_LEVEL
from core.constants import CORS_ORIGINS
from core.exceptions import SchedulingError
from services.notification_service import NotificationService

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 MediConnect Scheduling API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting MediConnect Scheduling Backend API")

    NotificationService.configure_default_sinks()
    logger.info("✅ Notification sinks configured")

    yield

    logger.info("🛑 Shutting down MediConnect Scheduling Backend API")


# Create FastAPI application
app = FastAPI(
    title="MediConnect Scheduling Backend",
    description="Appointment slots, booking and same-day queues for MediConnect-BD",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    slots.router,
    prefix="/api/slots",
    tags=["slots"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict or session full"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    queue.router,
    prefix="/api/queue",
    tags=["queue"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "MediConnect Scheduling Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


# Global exception handlers
@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Render domain errors with their status code and type."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "detail": exc.message,
            "type": exc.error_type,
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "detail": "Internal server error", "type": "internal_error"},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return JSONResponse(
        status_code=400,
        content={"success": False, "detail": str(exc), "type": "validation_error"},
    )
