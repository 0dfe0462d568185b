"""
Chat API Router.

Relays the tutor's reply from the AI gateway as a server-sent event stream.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from config import get_settings
from studybuddy.api.auth import CurrentUser, get_current_user
from studybuddy.api.dependencies import get_ai_gateway_client, get_chat_rate_limiter
from studybuddy.core.rate_limit import RateLimiter
from studybuddy.integrations.ai_gateway_client import AIGatewayClient
from studybuddy.services.chat_service import ChatService

router = APIRouter()


@router.post("")
async def chat(
    body: Any = Body(None),
    user: CurrentUser = Depends(get_current_user),
    gateway: AIGatewayClient = Depends(get_ai_gateway_client),
    rate_limiter: RateLimiter = Depends(get_chat_rate_limiter),
) -> StreamingResponse:
    """
    Stream a tutoring reply.

    Body: ``{"messages": [{"role", "content"}, ...], "grade"?, "subject"?}``
    """
    service = ChatService(gateway, rate_limiter, context_messages=get_settings().chat_context_messages)
    upstream = await service.open_stream(user.user_id, body)
    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
        background=BackgroundTask(upstream.aclose),
    )
