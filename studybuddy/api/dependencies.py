"""Shared FastAPI dependencies backed by ``app.state``."""

from __future__ import annotations

import random

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from studybuddy.core.rate_limit import RateLimiter
from studybuddy.db.database import get_session
from studybuddy.integrations.ai_gateway_client import AIGatewayClient
from studybuddy.learning.hydration import HydrationCache, SqlHydrationCache


def get_rng(request: Request) -> random.Random | None:
    """Random source for activity selection (seeded in tests)."""
    return getattr(request.app.state, "rng", None)


def get_hydration_cache(
    request: Request,
    session: Session = Depends(get_session),
) -> HydrationCache:
    """Process-wide cache when configured, otherwise the hydration_cache table."""
    cache = getattr(request.app.state, "hydration_cache", None)
    if cache is not None:
        return cache
    return SqlHydrationCache(session)


def get_chat_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.chat_rate_limiter


def get_ai_gateway_client(request: Request) -> AIGatewayClient:
    return request.app.state.ai_gateway
