"""
StudyBuddy API client used on the learner's device.

Submits activity reports, fetches activities to practise, and translates
transport and HTTP failures into the shared error taxonomy so the offline
queue can tell a deferrable failure from one the learner must correct.
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from studybuddy.core.errors import (
    AuthError,
    NotFoundError,
    PermissionDenied,
    RateLimited,
    StudyBuddyError,
    UpstreamUnavailable,
    ValidationError,
)

REPORT_PATH = "/api/studybuddy/report"
NEXT_PATH = "/api/studybuddy/next"
HYDRATE_PATH = "/api/studybuddy/hydrate"


def _error_message(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        return body.get("error")
    return None


def error_for_response(response: httpx.Response) -> StudyBuddyError:
    """Map a non-2xx API response onto the error taxonomy."""
    status = response.status_code
    message = _error_message(response)
    if status == 400:
        return ValidationError(message)
    if status == 404:
        return ValidationError(message, status_code=404)
    if status == 401:
        return AuthError(message)
    if status == 403:
        return PermissionDenied(message)
    if status == 429:
        return RateLimited(message)
    return UpstreamUnavailable(message)


class StudyBuddyClient:
    """HTTP client for the StudyBuddy learner API."""

    def __init__(
        self,
        base_url: str,
        token: str | None,
        timeout_ms: int = 15000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> StudyBuddyClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def submit_report(self, report: dict[str, Any]) -> dict[str, Any]:
        """
        POST one report.

        Returns:
            Decoded response body

        Raises:
            UpstreamUnavailable: Network failure or 5xx
            ValidationError: Report rejected as malformed or for an unknown activity
            AuthError: Missing, invalid or under-privileged token
            RateLimited: Caller throttled
        """
        try:
            response = await self.client.post(REPORT_PATH, json=report)
        except httpx.RequestError as e:
            logger.warning("Report submission failed: {}", e)
            raise UpstreamUnavailable("Unable to reach StudyBuddy. Your progress is saved locally.") from e

        if not response.is_success:
            logger.warning(
                "Report for activity {} rejected with status {}",
                report.get("activity_id"),
                response.status_code,
            )
            raise error_for_response(response)
        return self._json_body(response)

    async def get_next_activity(self) -> dict[str, Any]:
        """
        Fetch the recommended next activity.

        Raises:
            NotFoundError: The catalog has nothing to offer
            UpstreamUnavailable: Network failure or 5xx
        """
        return await self._get(NEXT_PATH)

    async def hydrate(self) -> dict[str, Any]:
        """Fetch the starter activity for a new session."""
        return await self._get(HYDRATE_PATH)

    async def _get(self, path: str) -> dict[str, Any]:
        try:
            response = await self.client.get(path)
        except httpx.RequestError as e:
            logger.warning("GET {} failed: {}", path, e)
            raise UpstreamUnavailable("Unable to reach StudyBuddy.") from e

        if response.status_code == 404:
            raise NotFoundError(_error_message(response))
        if not response.is_success:
            logger.warning("GET {} failed with status {}", path, response.status_code)
            raise error_for_response(response)
        return self._json_body(response)

    @staticmethod
    def _json_body(response: httpx.Response) -> dict[str, Any]:
        # Captive portals and proxies answer 200 with an HTML page
        try:
            body = response.json()
        except ValueError as e:
            logger.warning(
                "Unexpected {} body from {}",
                response.headers.get("content-type", "unknown"),
                response.request.url,
            )
            raise UpstreamUnavailable() from e
        if not isinstance(body, dict):
            raise UpstreamUnavailable()
        return body
