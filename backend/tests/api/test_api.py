"""
Ambitionly - HTTP API Tests
===========================
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ambitionly.api import deps
from ambitionly.api.main import app, status_for
from ambitionly.core.engine import AmbitionEngine
from ambitionly.core.errors import GenerationFailedError, PlanParseError, UnknownTaskError
from ambitionly.core.storage import StorageKeys

API = "/api/v1"


@pytest_asyncio.fixture
async def client(engine: AmbitionEngine) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with the engine override.
    """
    app.dependency_overrides[deps.get_engine] = lambda: engine
    deps.set_engine(engine)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    deps.set_engine(None)


@pytest_asyncio.fixture
async def planned_client(client: AsyncClient, engine: AmbitionEngine, drain) -> AsyncClient:
    await client.put(
        f"{API}/goal",
        json={"goal": "Learn guitar", "timeline": "3 months", "timeCommitment": "30 minutes a day"},
    )
    await client.post(f"{API}/plan/generate")
    await drain(engine)
    return client


def first_task_id(engine: AmbitionEngine) -> str:
    return engine.state.plan.phases[0].milestones[0].tasks[0].id


# ==========================================================================
# Health
# ==========================================================================

class TestHealth:
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert data["hydrated"] is True
        assert data["environment"] == "test"

    async def test_root(self, client: AsyncClient):
        response = await client.get("/")
        assert response.json()["api"] == API

    async def test_engine_missing(self):
        deps.set_engine(None)
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(f"{API}/goal")
        assert response.status_code == 503


# ==========================================================================
# Goal
# ==========================================================================

class TestGoal:
    async def test_update_and_read(self, client: AsyncClient, engine: AmbitionEngine):
        response = await client.put(
            f"{API}/goal",
            json={"goal": "Learn guitar", "timeline": "3 months", "timeCommitment": "30 minutes a day"},
        )
        engine.sync.cancel_debounce()

        assert response.status_code == 200
        assert response.json() == {
            "goal": "Learn guitar",
            "timeline": "3 months",
            "timeCommitment": "30 minutes a day",
            "answers": [],
        }

    async def test_blank_goal_rejected(self, client: AsyncClient, engine: AmbitionEngine):
        response = await client.put(f"{API}/goal", json={"goal": "   "})

        assert response.status_code == 422
        assert engine.state.goal == ""

    async def test_one_invalid_field_rejects_whole_update(self, client: AsyncClient, engine: AmbitionEngine):
        response = await client.put(f"{API}/goal", json={"goal": "Learn guitar", "timeline": "   "})

        assert response.status_code == 422
        assert engine.state.goal == ""
        assert await engine.store.get(StorageKeys.GOAL) is None
        assert not engine.sync.debounce_pending

    async def test_add_answer(self, client: AsyncClient, engine: AmbitionEngine):
        response = await client.post(f"{API}/goal/answers", json={"answer": "I own a guitar"})
        engine.sync.cancel_debounce()

        assert response.status_code == 201
        assert response.json()["answers"] == ["I own a guitar"]

        response = await client.post(f"{API}/goal/answers", json={"answer": ""})
        assert response.status_code == 422


# ==========================================================================
# Plan & progress
# ==========================================================================

class TestPlan:
    async def test_no_plan_yet(self, client: AsyncClient):
        response = await client.get(f"{API}/plan")
        assert response.status_code == 404

        response = await client.get(f"{API}/plan/unlocks")
        assert response.json() == []

    async def test_generate(self, planned_client: AsyncClient, engine: AmbitionEngine):
        response = await planned_client.get(f"{API}/plan")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == engine.state.plan.id
        assert data["timeCommitment"] == "30 minutes a day"
        assert data["phases"][0]["milestones"][0]["tasks"][0]["estimatedTime"] == "10 min"

    async def test_unlocks(self, planned_client: AsyncClient):
        response = await planned_client.get(f"{API}/plan/unlocks")

        phases = response.json()
        assert [p["unlocked"] for p in phases] == [True, False]
        assert [t["unlocked"] for t in phases[0]["milestones"][0]["tasks"]] == [True, False, False]

    async def test_progress_and_reset(self, planned_client: AsyncClient, engine: AmbitionEngine, drain):
        task = first_task_id(engine)
        await planned_client.post(f"{API}/tasks/{task}/toggle")

        response = await planned_client.get(f"{API}/progress")
        data = response.json()
        assert data["completedTasks"] == [task]
        assert data["streak"] == 1
        assert round(data["percentage"], 2) == round(100 / 7, 2)

        response = await planned_client.post(f"{API}/progress/reset")
        await drain(engine)
        assert response.json() == {"message": "Progress reset", "success": True}
        assert (await planned_client.get(f"{API}/progress")).json()["completedTasks"] == []

    async def test_clear_data(self, planned_client: AsyncClient, engine: AmbitionEngine, drain):
        response = await planned_client.delete(f"{API}/data")
        await drain(engine)

        assert response.status_code == 200
        assert (await planned_client.get(f"{API}/plan")).status_code == 404


# ==========================================================================
# Tasks
# ==========================================================================

class TestTasks:
    async def test_timer_lifecycle(self, planned_client: AsyncClient, engine: AmbitionEngine, clock):
        task = first_task_id(engine)

        response = await planned_client.post(f"{API}/tasks/{task}/timer")
        assert response.status_code == 200
        data = response.json()
        assert data["timer"]["durationMinutes"] == 10
        assert data["timer"]["isActive"] is True
        assert data["isComplete"] is False

        clock.advance(minutes=5)
        data = (await planned_client.get(f"{API}/tasks/{task}/timer")).json()
        assert data["progress"]["percentage"] == 50.0

        response = await planned_client.post(f"{API}/tasks/{task}/toggle")
        assert response.json() == {"taskId": task, "success": False, "completed": False}

        data = (await planned_client.delete(f"{API}/tasks/{task}/timer")).json()
        assert data["timer"]["isActive"] is False
        engine.sync.cancel_debounce()

    async def test_explicit_estimate(self, planned_client: AsyncClient, engine: AmbitionEngine):
        task = first_task_id(engine)
        response = await planned_client.post(f"{API}/tasks/{task}/timer", json={"estimatedTime": "1.5 h"})
        engine.sync.cancel_debounce()
        assert response.json()["timer"]["durationMinutes"] == 90

    async def test_toggle_completes(self, planned_client: AsyncClient, engine: AmbitionEngine, drain):
        task = first_task_id(engine)

        response = await planned_client.post(f"{API}/tasks/{task}/toggle")
        await drain(engine)

        assert response.status_code == 200
        assert response.json() == {"taskId": task, "success": True, "completed": True}

    async def test_unknown_task(self, planned_client: AsyncClient):
        for method, path in [
            ("POST", "toggle"),
            ("POST", "timer"),
            ("GET", "timer"),
            ("DELETE", "timer"),
        ]:
            response = await planned_client.request(method, f"{API}/tasks/nope/{path}")
            assert response.status_code == 404
            assert response.json()["code"] == "UNKNOWN_TASK"


# ==========================================================================
# Sync
# ==========================================================================

class TestSync:
    async def test_manual_sync(self, client: AsyncClient, remote):
        response = await client.post(f"{API}/sync", json={"force": True})

        assert response.json() == {"pushed": True}
        assert len(remote.pushes) == 1

    async def test_sync_not_premium(self, client: AsyncClient, entitlements, remote):
        entitlements.premium = False

        response = await client.post(f"{API}/sync")

        assert response.json() == {"pushed": False}
        assert remote.pushes == []

    async def test_app_state(self, client: AsyncClient, remote):
        await client.post(f"{API}/app-state", json={"state": "background"})
        response = await client.post(f"{API}/app-state", json={"state": "active"})

        assert response.json() == {"pushed": True}

        response = await client.post(f"{API}/app-state", json={"state": "asleep"})
        assert response.status_code == 422


def test_error_status_mapping():
    assert status_for(UnknownTaskError("x")) == 404
    assert status_for(GenerationFailedError("x")) == 502
    assert status_for(PlanParseError("x")) == 500
