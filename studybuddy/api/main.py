"""
FastAPI application for StudyBuddy.

Provides REST API for:
- Activity reports and proficiency updates
- Next-activity recommendation and session hydration
- Learner gap analysis and class insights
- Streaming AI tutor chat
"""

from __future__ import annotations

import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from studybuddy import __version__
from studybuddy.core.errors import StudyBuddyError
from studybuddy.core.logging import configure_logging
from studybuddy.core.rate_limit import InMemoryRateLimitStore, RateLimiter
from studybuddy.db.database import check_database_health, init_db
from studybuddy.integrations.ai_gateway_client import AIGatewayClient
from studybuddy.learning.hydration import InMemoryHydrationCache

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging(settings.log_level, settings.log_file)
    logger.info("Starting StudyBuddy service...")
    init_db()
    logger.info("Service started on {}:{}", settings.api_host, settings.api_port)

    yield

    # Shutdown
    logger.info("Shutting down StudyBuddy service...")
    await app.state.ai_gateway.close()


app = FastAPI(
    title="StudyBuddy",
    description="""
    Adaptive practice service for CBC learners.

    ## Features

    - **Reports**: Record graded attempts and update per-skill proficiency
    - **Recommendations**: Next activity matched to the learner's weakest skills
    - **Hydration**: Cached starter activity for instant session start
    - **Insights**: Learner gap analysis and class-wide teacher insights
    - **Chat**: Streaming CBC tutor backed by an AI gateway
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Shared state (replaceable in tests)
# ========================================

app.state.rng = random.Random()
app.state.chat_rate_limiter = RateLimiter(
    limit=settings.chat_rate_limit,
    window_seconds=settings.chat_rate_window_seconds,
    store=InMemoryRateLimitStore(),
)
app.state.hydration_cache = (
    InMemoryHydrationCache(ttl_seconds=settings.hydration_cache_ttl_seconds)
    if settings.hydration_cache_backend == "memory"
    else None
)
app.state.ai_gateway = AIGatewayClient(
    api_url=settings.ai_gateway_url,
    api_key=settings.ai_gateway_api_key,
    model=settings.ai_model,
    timeout_ms=settings.ai_gateway_timeout_ms,
    retry_attempts=settings.ai_gateway_retry_attempts,
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(StudyBuddyError)
async def studybuddy_error_handler(request: Request, exc: StudyBuddyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc.__cause__ or exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Malformed request to {}: {}", request.url.path, exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "An unexpected error occurred. Please try again"},
    )


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "studybuddy",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with a live database probe."""
    db_status, db_error = check_database_health()
    overall_status = "healthy" if db_status == "ok" else "unhealthy"

    result: dict[str, Any] = {
        "status": overall_status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "ai": "configured" if settings.has_ai_configured() else "not_configured",
        },
        "config": {
            "hydration_cache": settings.hydration_cache_backend,
            "chat_rate_limit": settings.chat_rate_limit,
            **settings.get_adaptive_config(),
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from studybuddy.api.routers import chat_router, insights_router, studybuddy_router  # noqa: E402

app.include_router(studybuddy_router.router, prefix="/api/studybuddy", tags=["StudyBuddy"])
app.include_router(insights_router.router, prefix="/api/insights", tags=["Insights"])
app.include_router(chat_router.router, prefix="/api/chat", tags=["Chat"])
