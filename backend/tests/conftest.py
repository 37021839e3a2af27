"""
Ambitionly - Test Fixtures
==========================

Shared pytest fixtures for all tests.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import asyncio
import json
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from ambitionly.core.config import Settings
from ambitionly.core.database import Base, create_session_factory
from ambitionly.core.engine import AmbitionEngine, PlanGenerator
from ambitionly.core.engine.generator import assemble_plan
from ambitionly.core.engine.http import CircuitBreaker, ResilientHttpClient, RetryPolicy
from ambitionly.core.schemas import GeneratedPlan, Identity, Plan, Session, SubscriptionInfo
from ambitionly.core.storage import LocalStore


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def store() -> AsyncGenerator[LocalStore, None]:
    """
    Provide a clean key/value store for each test.

    Creates all tables before test, drops after. One engine per test: its
    pooled connection belongs to the test's event loop.
    """
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield LocalStore(create_session_factory(test_engine))

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


# ==========================================================================
# Settings & Clock
# ==========================================================================

@pytest.fixture
def test_settings() -> Settings:
    """Production policy values, with every wait shrunk for tests."""
    return Settings(
        ENVIRONMENT="test",
        SYNC_DEBOUNCE_SECONDS=0.01,
        SYNC_PERIODIC_SECONDS=120,
        PREMIUM_CHECK_DELAY_SECONDS=0,
        TIMER_CHECK_INTERVAL_SECONDS=0.01,
        MIN_BACKOFF_SECONDS=0,
        MAX_BACKOFF_SECONDS=0,
        ACCOUNT_API_URL="http://accounts.test/api/trpc",
    )


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start.timestamp() * 1000

    def __call__(self) -> float:
        return self.now

    def advance(self, *, ms: float = 0, seconds: float = 0, minutes: float = 0, days: float = 0) -> None:
        self.now += ms + seconds * 1000 + minutes * 60_000 + days * 86_400_000


@pytest.fixture
def clock() -> FakeClock:
    # device-local wall time, mid-morning so day arithmetic never crosses midnight
    return FakeClock(datetime(2026, 3, 10, 9, 0, 0))


# ==========================================================================
# Fake Collaborators
# ==========================================================================

class FakeScheduler:
    """Records schedule/cancel calls. ``mode`` may be "ok", "none" or "raise"."""

    def __init__(self):
        self.mode = "ok"
        self.scheduled: list[dict[str, Any]] = []
        self.cancelled: list[str] = []
        self.fail_cancel = False
        self._counter = 0

    async def schedule(self, title, body, delay_seconds, task_id=None) -> Optional[str]:
        if self.mode == "raise":
            raise RuntimeError("scheduler unavailable")
        self.scheduled.append(
            {"title": title, "body": body, "delay_seconds": delay_seconds, "task_id": task_id}
        )
        if self.mode == "none":
            return None
        self._counter += 1
        return f"handle-{self._counter}"

    async def cancel(self, handle: str) -> None:
        if self.fail_cancel:
            raise RuntimeError("cancel failed")
        self.cancelled.append(handle)

    def scheduled_for(self, task_id: str) -> list[dict[str, Any]]:
        return [s for s in self.scheduled if s["task_id"] == task_id]


class FakeSessions:
    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    async def get_session(self) -> Session:
        return Session(identity=self.identity)


class FakeEntitlements:
    """
    Premium answers come from ``answers`` in order (the last one repeats),
    or from ``premium`` when no sequence is set.
    """

    def __init__(self, premium: bool = True):
        self.premium = premium
        self.answers: list[bool] = []
        self.checks = 0
        self.subscription: Optional[SubscriptionInfo] = SubscriptionInfo(
            plan="annual",
            status="active",
            expires_at=datetime(2027, 3, 10, tzinfo=timezone.utc),
            purchased_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )

    async def has_premium_entitlement(self, identity: Identity) -> bool:
        self.checks += 1
        if self.answers:
            return self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        return self.premium

    async def get_subscription(self, identity: Identity) -> Optional[SubscriptionInfo]:
        return self.subscription


class FakeRemote:
    """Remote account store; ``hold`` lets a test keep a push in flight."""

    def __init__(self):
        self.pushes: list[dict[str, Any]] = []
        self.fail = False
        self.hold = None  # Optional[asyncio.Event]

    async def update_user(self, identity: Identity, payload: dict[str, Any]) -> None:
        if self.hold is not None:
            await self.hold.wait()
        if self.fail:
            raise ConnectionError("account store down")
        self.pushes.append(payload)


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def identity() -> Identity:
    return Identity(user_id="user-1", email="ada@example.com")


@pytest.fixture
def sessions(identity: Identity) -> FakeSessions:
    return FakeSessions(identity)


@pytest.fixture
def entitlements() -> FakeEntitlements:
    return FakeEntitlements()


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


# ==========================================================================
# Plans & Generation
# ==========================================================================

def _task(title: str, estimated_time: str) -> dict:
    return {"title": title, "description": f"{title} - details", "estimatedTime": estimated_time}


GUITAR_PLAN = {
    "phases": [
        {
            "title": "Basics",
            "description": "Get comfortable with the instrument",
            "milestones": [
                {
                    "title": "First chords",
                    "description": "Learn open chords",
                    "tasks": [
                        _task("Tune the guitar", "10 min"),
                        _task("Learn the G chord", "15 min"),
                        _task("Switch between G and C", "20 min"),
                    ],
                },
                {
                    "title": "Rhythm",
                    "description": "Strum in time",
                    "tasks": [
                        _task("Strum along to a metronome", "25 min"),
                        _task("Play a simple song", "1 h"),
                    ],
                },
            ],
        },
        {
            "title": "Songs",
            "description": "Play full songs",
            "milestones": [
                {
                    "title": "Repertoire",
                    "description": "Three songs end to end",
                    "tasks": [
                        _task("Pick three songs", "5 min"),
                        _task("Record yourself playing one", "1.5 h"),
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture
def make_plan() -> Callable[..., Plan]:
    """Build an id-assigned Plan from a generation-shaped dict."""

    def _make(shape: Optional[dict] = None, plan_id: str = "roadmap_1_test", goal: str = "Learn guitar") -> Plan:
        generated = GeneratedPlan.model_validate(shape or GUITAR_PLAN)
        return assemble_plan(
            plan_id,
            generated,
            goal,
            "3 months",
            "30 minutes a day",
            datetime(2026, 3, 10, tzinfo=timezone.utc),
        )

    return _make


class GenerationEndpoint:
    """httpx MockTransport handler standing in for the generation service."""

    def __init__(self):
        self.responses: list[httpx.Response] = []
        self.requests: list[httpx.Request] = []
        self.default = httpx.Response(200, json={"completion": json.dumps(GUITAR_PLAN)})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return self.default

    def reply(self, *responses: httpx.Response) -> None:
        self.responses.extend(responses)

    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def generation_endpoint() -> GenerationEndpoint:
    return GenerationEndpoint()


@pytest_asyncio.fixture
async def generator(
    generation_endpoint: GenerationEndpoint, test_settings: Settings, clock: FakeClock
) -> AsyncGenerator[PlanGenerator, None]:
    http = ResilientHttpClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(generation_endpoint)),
        policy=RetryPolicy(retries=1, min_backoff=0, max_backoff=0),
        breaker=CircuitBreaker(failure_threshold=100),
        sleep=_no_sleep,
        settings=test_settings,
    )
    gen = PlanGenerator(http=http, settings=test_settings, clock=clock)
    yield gen
    await gen.aclose()


# ==========================================================================
# Engine
# ==========================================================================

@pytest_asyncio.fixture
async def engine(
    store: LocalStore,
    generator: PlanGenerator,
    scheduler: FakeScheduler,
    sessions: FakeSessions,
    entitlements: FakeEntitlements,
    remote: FakeRemote,
    clock: FakeClock,
    test_settings: Settings,
) -> AsyncGenerator[AmbitionEngine, None]:
    """Hydrated engine over fakes; background loops are not started."""
    eng = AmbitionEngine(
        store,
        generator=generator,
        scheduler=scheduler,
        sessions=sessions,
        entitlements=entitlements,
        remote=remote,
        clock=clock,
        settings=test_settings,
    )
    await eng.hydrate()
    yield eng
    await eng.close()


@pytest_asyncio.fixture
async def planned_engine(engine: AmbitionEngine) -> AmbitionEngine:
    """Engine with goal inputs set and a generated guitar plan."""
    await engine.set_goal("Learn guitar")
    await engine.set_timeline("3 months")
    await engine.set_time_commitment("30 minutes a day")
    await engine.generate_plan()
    await drain_background(engine)
    return engine


async def drain_background(engine: AmbitionEngine) -> None:
    """Wait for forced syncs scheduled in the background to finish."""
    engine.sync.cancel_debounce()
    pending = list(engine.sync._background)
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


@pytest.fixture
def drain() -> Callable:
    return drain_background


@pytest.fixture
def guitar_shape() -> dict:
    """The generation-shaped guitar plan (fresh copy)."""
    return json.loads(json.dumps(GUITAR_PLAN))
