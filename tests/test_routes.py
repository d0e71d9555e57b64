"""Tests for the analytics HTTP routes."""

import asyncio
import warnings
from datetime import datetime, timezone

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from storefront_analytics import Analytics, AnalyticsConfig, MemoryStore
from storefront_analytics.config import hash_passkey

PASSKEY = "correct-horse-battery-staple"
FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class StubResolver:
    def __init__(self):
        self.calls = []

    async def resolve_country(self, ip):
        self.calls.append(ip)
        return "Mongolia"


def _setup(passkey: str | None = None):
    store = MemoryStore()
    resolver = StubResolver()
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", DeprecationWarning)
        config = AnalyticsConfig(kv_rest_url="", kv_rest_token="", passkey=passkey)
    analytics = Analytics(config, store=store, resolver=resolver)
    analytics.recorder.clock = lambda: FIXED_NOW
    analytics.reporter.clock = lambda: FIXED_NOW

    app = FastAPI()
    app.include_router(analytics.router, prefix="/analytics")
    return TestClient(app), store, resolver


@pytest.fixture(scope="module")
def hashed_passkey():
    return hash_passkey(PASSKEY)


class TestTrack:
    """Test the page-view beacon."""

    def test_track_records_page_view(self):
        client, store, _ = _setup()

        response = client.post("/analytics/track", json={
            "path": "/products",
            "userAgent": "Mozilla/5.0",
            "referrer": "https://google.com/",
            "sessionId": "session_1",
        })

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert run_async(store.hgetall("daily_views:2026-03-10")) == {"/products": "1"}
        assert run_async(store.hgetall("referrers:2026-03-10")) == {"https://google.com/": "1"}

    def test_forwarded_for_skips_private_hops(self):
        client, _, resolver = _setup()
        client.post(
            "/analytics/track",
            json={"path": "/"},
            headers={"X-Forwarded-For": "10.0.0.2, 8.8.8.8, 1.1.1.1"},
        )
        assert resolver.calls == ["8.8.8.8"]

    def test_cloudflare_header_used(self):
        client, _, resolver = _setup()
        client.post("/analytics/track", json={}, headers={"CF-Connecting-IP": "1.1.1.1"})
        assert resolver.calls == ["1.1.1.1"]

    def test_client_supplied_ip_ignored(self):
        client, _, resolver = _setup()
        client.post("/analytics/track", json={"ip": "8.8.4.4"})
        assert resolver.calls == ["unknown"]

    def test_invalid_json_rejected(self):
        client, store, _ = _setup()
        response = client.post(
            "/analytics/track",
            content="{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert run_async(store.smembers("pageviews")) == []

    def test_non_object_rejected(self):
        client, _, _ = _setup()
        assert client.post("/analytics/track", json=["/"]).status_code == 400

    def test_store_outage_still_succeeds(self):
        client, store, _ = _setup()

        async def broken(*args, **kwargs):
            raise RuntimeError("store down")

        store.hset = broken
        response = client.post("/analytics/track", json={"path": "/"})
        assert response.status_code == 200


class TestAnalyticsEndpoint:
    """Test the admin summary endpoint."""

    def test_open_without_passkey(self):
        client, _, _ = _setup()
        client.post("/analytics/track", json={"path": "/home", "sessionId": "a"})

        response = client.get("/analytics/api/analytics", params={"days": 7})

        assert response.status_code == 200
        body = response.json()
        assert body["totalPageViews"] == 1
        assert body["uniqueVisitors"] == 1
        assert body["topPages"] == [{"path": "/home", "views": 1}]
        assert len(body["dailyViews"]) == 7
        assert body["dailyViews"][-1] == {"date": "2026-03-10", "views": 1}

    def test_default_days(self):
        client, _, _ = _setup()
        body = client.get("/analytics/api/analytics").json()
        assert len(body["dailyViews"]) == 7

    @pytest.mark.parametrize("days", [0, -3, 366])
    def test_days_out_of_range(self, days):
        client, _, _ = _setup()
        response = client.get("/analytics/api/analytics", params={"days": days})
        assert response.status_code == 400
        assert response.json()["detail"] == "Days parameter must be between 1 and 365"

    def test_requires_session_when_passkey_set(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        assert client.get("/analytics/api/analytics").status_code == 401

    def test_bogus_bearer_rejected(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        response = client.get(
            "/analytics/api/analytics",
            headers={"Authorization": "Bearer session_0_forged"},
        )
        assert response.status_code == 401


class TestLogin:
    """Test admin login/logout."""

    def test_login_sets_session_cookie(self, hashed_passkey):
        client, store, _ = _setup(hashed_passkey)

        response = client.post("/analytics/login", data={"passkey": PASSKEY})

        assert response.status_code == 200
        session_id = response.cookies.get("analytics_session")
        assert session_id.startswith("session_")
        assert run_async(store.get(f"session:{session_id}")) is not None
        assert client.get("/analytics/api/analytics").status_code == 200

    def test_bearer_session_accepted(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        session_id = client.post("/analytics/login", data={"passkey": PASSKEY}).cookies["analytics_session"]
        client.cookies.clear()

        response = client.get(
            "/analytics/api/analytics",
            headers={"Authorization": f"Bearer {session_id}"},
        )
        assert response.status_code == 200

    def test_wrong_passkey(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        response = client.post("/analytics/login", data={"passkey": "wrong-passkey-but-long"})
        assert response.status_code == 401

    def test_short_passkey(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        assert client.post("/analytics/login", data={"passkey": "short"}).status_code == 400

    def test_rate_limited_after_five_attempts(self, hashed_passkey):
        client, _, _ = _setup(hashed_passkey)
        for _ in range(5):
            client.post("/analytics/login", data={"passkey": "wrong-passkey-but-long"})

        response = client.post("/analytics/login", data={"passkey": PASSKEY})
        assert response.status_code == 429

    def test_logout_revokes_session(self, hashed_passkey):
        client, store, _ = _setup(hashed_passkey)
        session_id = client.post("/analytics/login", data={"passkey": PASSKEY}).cookies["analytics_session"]

        client.post("/analytics/logout")

        assert run_async(store.get(f"session:{session_id}")) is None
        response = client.get(
            "/analytics/api/analytics",
            headers={"Authorization": f"Bearer {session_id}"},
        )
        assert response.status_code == 401
