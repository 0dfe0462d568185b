"""
Integration tests for the StudyBuddy HTTP API.

Runs the FastAPI app against an in-memory SQLite database with the shared
state on ``app.state`` replaced by test doubles.
"""

import gzip
import random

import httpx
import pytest
from fastapi.testclient import TestClient

from studybuddy.api import main as api_main
from studybuddy.api.auth import create_access_token
from studybuddy.core.rate_limit import RateLimiter
from studybuddy.db.database import get_session
from studybuddy.db.models import HydrationCacheEntry, UserRole
from studybuddy.integrations.ai_gateway_client import AIGatewayClient
from studybuddy.learning.hydration import InMemoryHydrationCache

SSE_BODY = b'data: {"choices":[{"delta":{"content":"Vizuri sana!"}}]}\n\ndata: [DONE]\n\n'
UNKNOWN_ID = "7f1c2a9e-4b1d-4c6e-9a51-0d3b8e2f6a10"


def _auth(user_id="learner-1"):
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


class ChunkedStream(httpx.AsyncByteStream):
    """Response body delivered chunk by chunk, like a live gateway."""

    def __init__(self, chunks):
        self.chunks = list(chunks)

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk


@pytest.fixture
def gateway_requests():
    return []


@pytest.fixture
def gateway_reply():
    """Chunks and headers the fake gateway answers with; tests may change them."""
    return {"chunks": [SSE_BODY[:20], SSE_BODY[20:]], "headers": {"content-type": "text/event-stream"}}


@pytest.fixture
def client(session_factory, gateway_requests, gateway_reply, monkeypatch):
    app = api_main.app

    def override_session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def gateway_handler(request):
        gateway_requests.append(request)
        return httpx.Response(
            200,
            headers=gateway_reply["headers"],
            stream=ChunkedStream(gateway_reply["chunks"]),
        )

    async def no_sleep(delay):
        return None

    monkeypatch.setattr(app.state, "rng", random.Random(42))
    monkeypatch.setattr(app.state, "hydration_cache", InMemoryHydrationCache())
    monkeypatch.setattr(app.state, "chat_rate_limiter", RateLimiter(limit=2, window_seconds=60))
    monkeypatch.setattr(
        app.state,
        "ai_gateway",
        AIGatewayClient(
            api_url="https://gateway.test/v1/chat/completions",
            api_key="test-key",
            model="google/gemini-2.5-flash",
            transport=httpx.MockTransport(gateway_handler),
            sleep=no_sleep,
        ),
    )
    monkeypatch.setattr(api_main, "check_database_health", lambda: ("ok", None))
    app.dependency_overrides[get_session] = override_session

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestHealth:
    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "studybuddy"
        assert body["status"] == "ok"

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["components"]["database"] == "ok"


class TestAuth:
    """Every API route requires a bearer token."""

    @pytest.mark.parametrize(
        "method, path",
        [
            ("post", "/api/studybuddy/report"),
            ("get", "/api/studybuddy/next"),
            ("get", "/api/studybuddy/hydrate"),
            ("get", "/api/insights/gaps"),
            ("get", "/api/insights/class"),
            ("post", "/api/chat"),
        ],
    )
    def test_missing_token(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}

    def test_garbage_token(self, client):
        response = client.get("/api/studybuddy/next", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


class TestReportEndpoint:
    """POST /api/studybuddy/report"""

    def test_report_updates_proficiency(self, client, make_activity):
        activity = make_activity(difficulty=0.5)

        response = client.post(
            "/api/studybuddy/report",
            json={"activity_id": activity.id, "score": 1.0, "time_spent_sec": 90, "metadata": {"device": "phone"}},
            headers=_auth(),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["skill_code"] == "math.arithmetic.addition"
        assert body["old_proficiency"] == pytest.approx(0.5)
        assert body["new_proficiency"] == pytest.approx(0.65)
        assert body["next_activity"]["activity_id"] == activity.id

    def test_validation_error(self, client):
        response = client.post(
            "/api/studybuddy/report",
            json={"activity_id": UNKNOWN_ID, "score": 3, "time_spent_sec": 90},
            headers=_auth(),
        )
        assert response.status_code == 400
        assert response.json() == {"error": "Score must be a number between 0 and 1"}

    def test_unknown_activity(self, client):
        response = client.post(
            "/api/studybuddy/report",
            json={"activity_id": UNKNOWN_ID, "score": 0.5, "time_spent_sec": 90},
            headers=_auth(),
        )
        assert response.status_code == 404
        assert response.json() == {"error": "Activity not found"}

    def test_malformed_json(self, client):
        response = client.post(
            "/api/studybuddy/report",
            content=b"{not json",
            headers={**_auth(), "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert "error" in response.json()


class TestNextEndpoint:
    """GET /api/studybuddy/next"""

    def test_empty_catalog(self, client):
        response = client.get("/api/studybuddy/next", headers=_auth())
        assert response.status_code == 404
        assert response.json() == {"error": "No activities available"}

    def test_matched_recommendation(self, client, make_activity, make_skill):
        make_activity(skill_code="math.fractions", difficulty=0.95)
        matched = make_activity(skill_code="math.fractions", difficulty=0.35)
        make_skill("learner-1", "math.fractions", 0.3)

        body = client.get("/api/studybuddy/next", headers=_auth()).json()

        assert body["activity_id"] == matched.id
        assert body["type"] == "quiz"
        assert body["payload"]["skill_code"] == "math.fractions"
        assert body["difficulty"] == pytest.approx(0.35)
        assert body["why"] == "Focus on math.fractions (30% mastery). This activity matches your level."

    def test_new_learner_gets_random_activity(self, client, make_activity):
        activity = make_activity()
        body = client.get("/api/studybuddy/next", headers=_auth("brand-new")).json()
        assert body["activity_id"] == activity.id
        assert body["why"] == "Try something new!"


class TestHydrateEndpoint:
    """GET /api/studybuddy/hydrate"""

    def test_hydrate_then_cache_then_invalidate(self, client, make_activity):
        activity = make_activity(difficulty=0.3)
        cache = api_main.app.state.hydration_cache

        first = client.get("/api/studybuddy/hydrate", headers=_auth()).json()
        assert first["activity_id"] == activity.id
        assert first["reason"] == "Quick win to get started!"
        assert isinstance(first["latency_ms"], int)
        assert cache.get("learner-1").activity_id == activity.id

        client.post(
            "/api/studybuddy/report",
            json={"activity_id": activity.id, "score": 0.9, "time_spent_sec": 45},
            headers=_auth(),
        )
        assert cache.get("learner-1") is None

    def test_database_backed_cache(self, client, session, make_activity, monkeypatch):
        monkeypatch.setattr(api_main.app.state, "hydration_cache", None)
        activity = make_activity(difficulty=0.2)

        response = client.get("/api/studybuddy/hydrate", headers=_auth())

        assert response.status_code == 200
        entry = session.get(HydrationCacheEntry, "learner-1")
        assert entry.starter_activity_id == activity.id

    def test_no_activities(self, client):
        response = client.get("/api/studybuddy/hydrate", headers=_auth())
        assert response.status_code == 404


class TestInsightsEndpoints:
    """GET /api/insights/*"""

    def test_own_gaps(self, client, make_skill):
        make_skill("learner-1", "math.fractions", 0.45)

        body = client.get("/api/insights/gaps", headers=_auth()).json()

        assert body["low_proficiency_topics"][0]["score"] == 45
        assert body["overall_mastery"] == "Developing"

    def test_other_learner_forbidden(self, client):
        response = client.get("/api/insights/gaps", params={"learner_id": "learner-2"}, headers=_auth())
        assert response.status_code == 403

    def test_class_insights_for_teacher(self, client, session, make_skill):
        session.add(UserRole(user_id="teacher-1", role="teacher"))
        session.commit()
        make_skill("learner-1", "math.fractions", 0.4)

        response = client.get("/api/insights/class", headers=_auth("teacher-1"))

        assert response.status_code == 200
        assert response.json()["low_proficiency_topics"][0]["status"] == "critical"

    def test_class_insights_for_student(self, client):
        response = client.get("/api/insights/class", headers=_auth())
        assert response.status_code == 403
        assert response.json() == {"error": "Teacher access required"}


class TestChatEndpoint:
    """POST /api/chat"""

    def test_streams_gateway_events(self, client, gateway_requests):
        response = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Nisaidie na fractions"}], "grade": "Grade 5"},
            headers=_auth(),
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.content == SSE_BODY
        assert len(gateway_requests) == 1

    def test_compressed_gateway_reply_is_relayed_decoded(self, client, gateway_reply):
        gateway_reply["chunks"] = [gzip.compress(SSE_BODY)]
        gateway_reply["headers"] = {"content-type": "text/event-stream", "content-encoding": "gzip"}

        response = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Habari"}]},
            headers=_auth(),
        )

        assert response.status_code == 200
        assert response.content == SSE_BODY
        assert response.content.endswith(b"data: [DONE]\n\n")

    def test_invalid_messages(self, client, gateway_requests):
        response = client.post("/api/chat", json={"messages": []}, headers=_auth())
        assert response.status_code == 400
        assert response.json() == {"error": "Messages array cannot be empty"}
        assert gateway_requests == []

    def test_rate_limited(self, client):
        body = {"messages": [{"role": "user", "content": "hi"}]}
        for _ in range(2):
            assert client.post("/api/chat", json=body, headers=_auth()).status_code == 200

        response = client.post("/api/chat", json=body, headers=_auth())

        assert response.status_code == 429
        assert response.json() == {"error": "Rate limit exceeded. Please try again in a moment."}
