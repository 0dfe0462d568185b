"""
Chat Service.

Validates a tutoring conversation, enforces the per-learner chat quota and
opens a streaming completion against the AI gateway with a CBC tutor persona.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import httpx
from loguru import logger

from studybuddy.core.errors import ValidationError
from studybuddy.core.rate_limit import RateLimiter
from studybuddy.integrations.ai_gateway_client import AIGatewayClient

MAX_MESSAGES = 50
MAX_CONTENT_LENGTH = 4000
ALLOWED_ROLES = frozenset({"user", "assistant", "system"})
DEFAULT_CONTEXT_MESSAGES = 12

SYSTEM_PROMPT_TEMPLATE = """You are Happy, a friendly and encouraging AI tutor for the Kenyan Competency-Based Curriculum (CBC).

**How you teach:**
- Follow CBC pedagogy: inquiry, discovery and real-life application
- Use the "Explain -> Example -> Check Understanding" pattern for academic questions
- Keep explanations clear, short and age-appropriate for {grade_range}
- Use Kenyan examples learners recognise (matatu for transport, ugali for food, safari for a journey)
- Encourage with simple Kiswahili now and then: "Hongera!" (Well done!), "Vizuri sana!" (Very good!), "Endelea!" (Continue!)

**Current context:**
- Grade Level: {grade}
- Subject Focus: {subject}

**Answer structure:**
1. **Explain:** a clear, simple explanation of the concept
2. **Example:** a Kenyan example the learner can relate to
3. **Check:** one or two quick questions to check understanding

**Guidelines:**
- Ask a clarifying question when the request is ambiguous
- Break complex topics into small steps
- Finish with a short motivational message
- Gently steer non-academic questions back to learning
- Match your language to the grade level

Make learning fun and relevant, and build the learner's confidence."""


def build_system_prompt(grade: str | None = None, subject: str | None = None) -> str:
    """Render the tutor persona for the learner's grade and subject."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        grade_range=grade or "Grade 1-9",
        grade=grade or "Grade 1",
        subject=subject or "General Learning",
    )


def validate_messages(messages: Any) -> list[dict[str, str]]:
    """
    Check the conversation supplied by the client.

    Raises:
        ValidationError: With the first problem found
    """
    if not isinstance(messages, list):
        raise ValidationError("Messages must be an array")
    if not messages:
        raise ValidationError("Messages array cannot be empty")
    if len(messages) > MAX_MESSAGES:
        raise ValidationError(f"Too many messages. Maximum {MAX_MESSAGES} allowed")

    cleaned = []
    for message in messages:
        if not isinstance(message, Mapping) or message.get("role") not in ALLOWED_ROLES:
            raise ValidationError("Invalid message role")
        content = message.get("content")
        if not isinstance(content, str) or len(content) > MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message content must be string with max {MAX_CONTENT_LENGTH} characters"
            )
        cleaned.append({"role": message["role"], "content": content})
    return cleaned


class ChatService:
    """Rate-limited pass-through to the AI gateway."""

    def __init__(
        self,
        gateway: AIGatewayClient,
        rate_limiter: RateLimiter,
        context_messages: int = DEFAULT_CONTEXT_MESSAGES,
    ):
        self.gateway = gateway
        self.rate_limiter = rate_limiter
        self.context_messages = context_messages

    def build_gateway_messages(
        self,
        messages: list[dict[str, str]],
        grade: str | None = None,
        subject: str | None = None,
    ) -> list[dict[str, str]]:
        """System prompt followed by the trailing conversation window."""
        system = {"role": "system", "content": build_system_prompt(grade, subject)}
        return [system, *messages[-self.context_messages:]]

    async def open_stream(self, user_id: str, body: Any) -> httpx.Response:
        """
        Validate the request and start streaming the tutor's reply.

        Raises:
            RateLimited: Caller exceeded the chat quota, or the gateway throttled
            ValidationError: Malformed conversation
            UpstreamUnavailable: Gateway unreachable or failing
        """
        self.rate_limiter.check(user_id)

        if not isinstance(body, Mapping):
            raise ValidationError("Request body must be a JSON object")
        messages = validate_messages(body.get("messages"))
        grade = body.get("grade") if isinstance(body.get("grade"), str) else None
        subject = body.get("subject") if isinstance(body.get("subject"), str) else None

        logger.debug("Chat for {}: {} messages, grade={}, subject={}", user_id, len(messages), grade, subject)
        return await self.gateway.open_chat_stream(
            self.build_gateway_messages(messages, grade=grade, subject=subject)
        )
