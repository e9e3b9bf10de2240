"""
TradeDesk API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from core.errors import NotFoundError, PartialDataError, StorageError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("TradeDesk API starting up", version=settings.app_version)
    yield
    logger.info("TradeDesk API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Small-business sales, inventory and derived business metrics",
    lifespan=lifespan,
)


# ─── Error mapping ──────────────────────────────────────────────────────────


@app.exception_handler(PartialDataError)
async def partial_data_handler(request: Request, exc: PartialDataError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "state": "error",
            "detail": str(exc),
            "failed_sources": exc.failed_sources,
        },
    )


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"state": "error", "detail": str(exc), "failed_sources": [exc.source]},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from api.v1.routers import dashboard, insights, inventory, reminders, sales

app.include_router(dashboard.router)
app.include_router(inventory.router)
app.include_router(sales.router)
app.include_router(insights.router)
app.include_router(reminders.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}
