"""
Shared pytest fixtures for Value Miner tests.

Database-backed tests run against an in-memory MongoDB (mongomock-motor)
patched into ``valueminer.database``; outbound HTTP is mocked with
``responses`` or by monkeypatching the provider functions.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from valueminer import config, database
from valueminer.auth_handler import create_access_token
from valueminer.main import app

COLLECTIONS = {
    "users_collection": "users",
    "otp_collection": "otps",
    "clips_collection": "clips",
    "folders_collection": "folders",
    "intake_requests_collection": "intake_requests",
    "api_tokens_collection": "api_tokens",
    "report_preferences_collection": "report_preferences",
}


def run(coro):
    """Run a coroutine to completion from a synchronous test."""
    return asyncio.run(coro)


@pytest.fixture
def mongo(monkeypatch):
    """In-memory database wired into every collection handle."""
    mock_db = AsyncMongoMockClient(tz_aware=True)["value_miner_test"]
    for attr, name in COLLECTIONS.items():
        monkeypatch.setattr(database, attr, mock_db[name])
    run(database.create_indexes())
    return mock_db


@pytest.fixture
def api_client(mongo):
    # Not used as a context manager so startup hooks never touch a real server
    return TestClient(app)


@pytest.fixture
def user(mongo):
    user_doc = {
        "user_id": "user-1",
        "email": "miner@example.com",
        "full_name": "Test Miner",
        "verified": True,
    }
    run(database.users_collection.insert_one(dict(user_doc)))
    return user_doc


@pytest.fixture
def auth_headers(user):
    token = create_access_token(user["user_id"], user["email"])
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True)
def no_providers(monkeypatch):
    """Clear provider credentials so nothing reaches a real API by accident."""
    monkeypatch.setattr(config, "GEMINI_API_KEY", None)
    monkeypatch.setattr(config, "SEARCHAPI_KEY", None)
    monkeypatch.setattr(config, "SMTP_EMAIL", None)
    monkeypatch.setattr(config, "SMTP_PASSWORD", None)
    monkeypatch.setattr(config, "CRON_SECRET", None)


@pytest.fixture
def sample_clips():
    """Clips as returned by clip_store.clips_since, newest first."""
    return [
        {
            "title": "Cold outreach that works",
            "analysis": "Send ten emails a day. Keep them short. Follow up twice.",
            "action_plan": ["Write a template", "Send ten emails", "Follow up on Friday"],
            "category": "Business",
        },
        {
            "title": "Pricing lessons",
            "analysis": "Charge more than feels comfortable.",
            "action_plan": ["Raise prices", "Survey customers", "Review churn"],
            "category": "Business",
        },
        {
            "title": None,
            "analysis": "Walk after meals.",
            "action_plan": [],
            "category": "Health",
        },
    ]


@pytest.fixture
def fake_providers(monkeypatch):
    """Stub transcript, LLM and title lookups with canned results."""
    from valueminer import summarizer, transcript_service

    calls = {"transcript": [], "analyze": []}

    def fake_transcript_text(video_id):
        calls["transcript"].append(video_id)
        return "Wake up early. Plan the day. Ship one thing."

    def fake_analyze(text, strict=False):
        calls["analyze"].append(text)
        return {
            "analysis": "Mornings matter. Plans focus effort. Shipping builds momentum.",
            "actionPlan": ["Set an alarm", "Write three goals", "Ship before noon"],
            "category": "Productivity",
        }

    monkeypatch.setattr(transcript_service, "fetch_transcript_text", fake_transcript_text)
    monkeypatch.setattr(transcript_service, "fetch_video_title", lambda video_id: "Morning Routine")
    monkeypatch.setattr(summarizer, "analyze_transcript", fake_analyze)
    return calls
