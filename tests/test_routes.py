"""HTTP API tests over an in-process ASGI transport."""

from pathlib import Path

import httpx
import pytest

from terminus.app import create_app

TEST_DATA_DIR = Path("data-tests")
PRESETS_DIR = Path(__file__).parent.parent / "presets"


@pytest.fixture
def client():
    app = create_app(TEST_DATA_DIR, presets_dir=PRESETS_DIR)
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


@pytest.mark.asyncio
async def test_health(client):
    async with client:
        resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_settings_round_trip(client):
    async with client:
        resp = await client.get("/api/settings")
        assert resp.json()["retention"]["max_demonstrations"] == 500

        resp = await client.patch("/api/settings", json={"retention": {"max_demonstrations": 50}})
        assert resp.json()["retention"]["max_demonstrations"] == 50
        assert resp.json()["retention"]["recency_window_days"] == 30

        resp = await client.get("/api/settings")
    assert resp.json()["retention"]["max_demonstrations"] == 50


@pytest.mark.asyncio
async def test_start_session_and_choose(client):
    async with client:
        resp = await client.post("/api/sessions", json={"user_id": "p1"})
        assert resp.status_code == 200
        view = resp.json()
        assert view["node_id"] == "samuel_comprehensive_hub"
        assert "hub_maya" in [c["choice_id"] for c in view["choices"]]

        resp = await client.post("/api/sessions/p1/choices", json={"choice_id": "hub_maya"})
        assert resp.status_code == 200
        body = resp.json()
        assert body["node"]["node_id"] == "maya_introduction"
        assert body["demonstrations"][0]["skills"] == ["adaptability", "creativity", "criticalThinking"]
        assert body["milestone"]["checkpoint"] == "Journey Start"
        assert body["warning"] is None

        resp = await client.get("/api/sessions/p1")
    assert resp.json()["node_id"] == "maya_introduction"


@pytest.mark.asyncio
async def test_illegal_choice_is_409(client):
    async with client:
        await client.post("/api/sessions", json={"user_id": "p1"})
        resp = await client.post("/api/sessions/p1/choices", json={"choice_id": "hub_reflect"})
        assert resp.status_code == 409
        resp = await client.post("/api/sessions/p1/choices", json={"choice_id": "nope"})
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_unknown_session_is_404(client):
    async with client:
        resp = await client.get("/api/sessions/ghost")
        assert resp.status_code == 404
        resp = await client.post("/api/sessions/ghost/choices", json={"choice_id": "hub_maya"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_saved_session_resumes_in_new_app():
    first = create_app(TEST_DATA_DIR, presets_dir=PRESETS_DIR)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=first), base_url="http://test") as c:
        await c.post("/api/sessions", json={"user_id": "p1"})
        await c.post("/api/sessions/p1/choices", json={"choice_id": "hub_devon"})

    second = create_app(TEST_DATA_DIR, presets_dir=PRESETS_DIR)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=second), base_url="http://test") as c:
        resp = await c.get("/api/sessions/p1")
    assert resp.status_code == 200
    assert resp.json()["node_id"] == "devon_introduction"


@pytest.mark.asyncio
async def test_profile(client):
    async with client:
        await client.post("/api/sessions", json={"user_id": "p1"})
        await client.post("/api/sessions/p1/choices", json={"choice_id": "hub_maya"})
        resp = await client.get("/api/sessions/p1/profile")
    assert resp.status_code == 200
    profile = resp.json()
    assert profile["total_demonstrations"] == 1
    assert len(profile["career_matches"]) == 6
    assert "adaptability" in profile["skill_demonstrations"]


@pytest.mark.asyncio
async def test_story_validate(client):
    async with client:
        resp = await client.get("/api/story/validate")
    assert resp.json() == {"ok": True, "issues": []}
