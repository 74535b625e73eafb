# backend/app/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time
import uuid

from app.core.config import settings
from app.core.logging import logger
from app.db.database import init_db, close_db, async_session_local
from app.api.v1.router import api_router
from app.services.plan_catalog import PlanCatalogService
from app.workers.subscription_scheduler import SubscriptionLifecycleScheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting PharmaPOS API")
    await init_db()

    async with async_session_local() as session:
        await PlanCatalogService(session).seed_default_plans()

    scheduler = SubscriptionLifecycleScheduler(session_factory=async_session_local)
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    app.state.subscription_scheduler = scheduler

    yield

    # Shutdown
    logger.info("Shutting down PharmaPOS API")
    await scheduler.stop()
    await close_db()


app = FastAPI(
    title="PharmaPOS API",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=("/api/docs" if settings.ENVIRONMENT == "development" else None),
    redoc_url=("/api/redoc" if settings.ENVIRONMENT == "development" else None),
    lifespan=lifespan
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


# Include routers
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    scheduler = getattr(app.state, "subscription_scheduler", None)
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT,
        "scheduler_running": bool(scheduler and scheduler.running),
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.exception(
        "Unhandled exception while handling request",
        exc_info=exc,
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
