"""
Ambitionly - Collaborator Tests
===============================

Account backend client and the in-process notification scheduler.
"""

import asyncio
import json
from datetime import datetime, timezone

import httpx
import pytest

from ambitionly.core.engine.collaborators import (
    HttpAccountStore,
    StaticSessionProvider,
    subscription_from_user,
)
from ambitionly.core.engine.notifications import (
    LocalNotificationScheduler,
    Notification,
    NotificationType,
)
from ambitionly.core.errors import HttpStatusError, NetworkError
from ambitionly.core.schemas import Identity

API = "http://accounts.test/api/trpc"


class AccountBackend:
    def __init__(self, user=None, status: int = 200):
        self.user = user
        self.status = status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        if request.url.path.endswith("/user/get"):
            return httpx.Response(200, json={"result": {"data": {"user": self.user}}})
        return httpx.Response(200, json={"result": {"data": {"success": True}}})


def account_store(backend: AccountBackend, test_settings, api_key=None) -> HttpAccountStore:
    return HttpAccountStore(
        api_url=API + "/",
        api_key=api_key,
        client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
        settings=test_settings,
    )


ACTIVE_USER = {
    "email": "ada@example.com",
    "subscriptionPlan": "annual",
    "subscriptionStatus": "active",
    "subscriptionExpiresAt": "2099-01-01T00:00:00Z",
    "subscriptionPurchasedAt": "2026-03-01T00:00:00Z",
}


# ==========================================================================
# Account store
# ==========================================================================

class TestHttpAccountStore:
    async def test_update_user_posts_payload(self, test_settings, identity):
        backend = AccountBackend()
        store = account_store(backend, test_settings, api_key="secret")

        await store.update_user(identity, {"email": identity.email, "goal": "Learn guitar"})

        [request] = backend.requests
        assert str(request.url) == f"{API}/user/update"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {"email": "ada@example.com", "goal": "Learn guitar"}
        await store.aclose()

    async def test_active_subscription_is_premium(self, test_settings, identity):
        backend = AccountBackend(user=ACTIVE_USER)
        store = account_store(backend, test_settings)

        subscription = await store.get_subscription(identity)

        assert subscription.plan == "annual"
        assert subscription.expires_at == datetime(2099, 1, 1, tzinfo=timezone.utc)
        assert await store.has_premium_entitlement(identity)
        assert json.loads(backend.requests[0].content) == {"email": "ada@example.com", "userId": "user-1"}
        assert "Authorization" not in backend.requests[0].headers
        await store.aclose()

    @pytest.mark.parametrize(
        "user",
        [
            None,
            {**ACTIVE_USER, "subscriptionStatus": "canceled"},
            {**ACTIVE_USER, "subscriptionExpiresAt": "2020-01-01T00:00:00Z"},
            {**ACTIVE_USER, "subscriptionPlan": "free"},
        ],
    )
    async def test_not_premium(self, test_settings, identity, user):
        store = account_store(AccountBackend(user=user), test_settings)
        assert not await store.has_premium_entitlement(identity)
        await store.aclose()

    async def test_http_error_raises(self, test_settings, identity):
        store = account_store(AccountBackend(status=503), test_settings)
        with pytest.raises(HttpStatusError) as exc_info:
            await store.update_user(identity, {"email": identity.email})
        assert exc_info.value.retryable
        await store.aclose()

    async def test_network_error_raises(self, test_settings, identity):
        def refuse(request):
            raise httpx.ConnectError("refused")

        store = HttpAccountStore(
            api_url=API,
            client=httpx.AsyncClient(transport=httpx.MockTransport(refuse)),
            settings=test_settings,
        )
        with pytest.raises(NetworkError):
            await store.update_user(identity, {"email": identity.email})
        await store.aclose()


class TestSubscriptionFromUser:
    def test_no_subscription_columns(self):
        assert subscription_from_user({"email": "ada@example.com"}) is None

    def test_unknown_plan_is_free(self):
        info = subscription_from_user({"subscriptionPlan": "weekly", "subscriptionStatus": "active"})
        assert info.plan == "free"
        assert not info.is_active()

    def test_bad_dates_are_ignored(self):
        info = subscription_from_user({**ACTIVE_USER, "subscriptionExpiresAt": "soon"})
        assert info.expires_at is None
        assert info.is_active()


async def test_static_session_provider():
    assert (await StaticSessionProvider().get_session()).identity is None
    identity = Identity(email="ada@example.com")
    assert (await StaticSessionProvider(identity).get_session()).identity == identity


# ==========================================================================
# Notification scheduler
# ==========================================================================

class TestLocalNotificationScheduler:
    async def test_delivers_after_delay(self):
        delivered: list[Notification] = []
        scheduler = LocalNotificationScheduler(deliver=delivered.append)

        handle = await scheduler.schedule("Done", "Time is up", 0.01, "task-1")
        assert handle
        assert scheduler.pending_count == 1

        await asyncio.sleep(0.05)

        [notification] = delivered
        assert notification.type == NotificationType.TASK_TIMER_COMPLETE
        assert notification.task_id == "task-1"
        assert notification.data == {"type": "task-timer-complete", "task_id": "task-1"}
        assert scheduler.pending_count == 0

    async def test_cancel_prevents_delivery(self):
        delivered: list[Notification] = []
        scheduler = LocalNotificationScheduler(deliver=delivered.append)

        handle = await scheduler.schedule("Done", "Time is up", 0.01, "task-1")
        await scheduler.cancel(handle)
        await scheduler.cancel("unknown-handle")
        await asyncio.sleep(0.05)

        assert delivered == []

    async def test_async_delivery_and_logging_only_mode(self):
        delivered: list[Notification] = []

        async def deliver(notification: Notification) -> None:
            delivered.append(notification)

        scheduler = LocalNotificationScheduler(deliver=deliver)
        await scheduler.schedule("Done", "Time is up", 0, "task-1")
        await asyncio.sleep(0.02)
        assert len(delivered) == 1

        silent = LocalNotificationScheduler()
        await silent.schedule("Done", "Time is up", 0)
        await asyncio.sleep(0.02)
        assert silent.pending_count == 0

    async def test_close_cancels_pending(self):
        delivered: list[Notification] = []
        scheduler = LocalNotificationScheduler(deliver=delivered.append)
        await scheduler.schedule("Done", "Time is up", 0.01)

        await scheduler.close()
        await asyncio.sleep(0.05)

        assert delivered == []
        assert scheduler.pending_count == 0
