"""
External Collaborators
======================

Interfaces the engine consumes but does not own:
- NotificationScheduler: schedules/cancels device notifications
- RemoteAccountStore:   receives partial sync payloads
- SessionProvider:      the signed-in identity (or none / guest)
- EntitlementProvider:  whether that identity has premium access

HttpAccountStore talks to the account backend for both the remote store and
the entitlement lookup.
"""

from datetime import datetime
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
import structlog
from pydantic import ValidationError

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.errors import HttpStatusError, NetworkError, RequestTimeoutError, is_retryable_status
from ambitionly.core.schemas import Identity, Session, SubscriptionInfo

logger = structlog.get_logger()


# ==========================================================================
# Protocols
# ==========================================================================

@runtime_checkable
class NotificationScheduler(Protocol):
    async def schedule(
        self, title: str, body: str, delay_seconds: float, task_id: Optional[str] = None
    ) -> Optional[str]:
        """Return a handle, or None when scheduling failed."""
        ...

    async def cancel(self, handle: str) -> None: ...


@runtime_checkable
class RemoteAccountStore(Protocol):
    async def update_user(self, identity: Identity, payload: dict[str, Any]) -> None: ...


@runtime_checkable
class SessionProvider(Protocol):
    async def get_session(self) -> Session: ...


@runtime_checkable
class EntitlementProvider(Protocol):
    async def has_premium_entitlement(self, identity: Identity) -> bool: ...

    async def get_subscription(self, identity: Identity) -> Optional[SubscriptionInfo]: ...


# ==========================================================================
# Simple providers
# ==========================================================================

class StaticSessionProvider:
    """Fixed identity; no identity means a signed-out/guest session."""

    def __init__(self, identity: Optional[Identity] = None):
        self.identity = identity

    async def get_session(self) -> Session:
        return Session(identity=self.identity)


# ==========================================================================
# Account backend client
# ==========================================================================

_KNOWN_PLANS = ("free", "monthly", "annual", "lifetime")


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def subscription_from_user(user: dict[str, Any]) -> Optional[SubscriptionInfo]:
    """Read the subscription columns of an account record."""
    plan = user.get("subscriptionPlan")
    status = user.get("subscriptionStatus")
    if plan is None and status is None:
        return None
    try:
        return SubscriptionInfo(
            plan=plan if plan in _KNOWN_PLANS else "free",
            status=status,
            expires_at=_parse_datetime(user.get("subscriptionExpiresAt")),
            purchased_at=_parse_datetime(user.get("subscriptionPurchasedAt")),
        )
    except ValidationError:
        return None


class HttpAccountStore:
    """
    Client for the account backend.

    Pushes partial user updates and reads subscription state.
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.api_url = (api_url or settings.ACCOUNT_API_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.ACCOUNT_API_KEY
        self._client = client or httpx.AsyncClient(timeout=settings.ACCOUNT_API_TIMEOUT_SECONDS)
        logger.info("account_store_initialized", api_url=self.api_url)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = await self._client.post(url, json=body, headers=self._headers())
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request to {path} timed out") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            raise HttpStatusError(
                f"HTTP {response.status_code}",
                status=response.status_code,
                retryable=is_retryable_status(response.status_code),
            )
        try:
            data = response.json()
        except ValueError:
            return {}
        # tRPC responses are wrapped as {"result": {"data": ...}}
        if isinstance(data, dict) and isinstance(data.get("result"), dict):
            data = data["result"].get("data", data)
        return data if isinstance(data, dict) else {}

    async def update_user(self, identity: Identity, payload: dict[str, Any]) -> None:
        await self._post("/user/update", payload)
        logger.debug("account_store_updated", email=identity.email, fields=sorted(payload))

    async def get_subscription(self, identity: Identity) -> Optional[SubscriptionInfo]:
        body: dict[str, Any] = {"email": identity.email}
        if identity.user_id:
            body["userId"] = identity.user_id
        data = await self._post("/user/get", body)
        user = data.get("user")
        if not isinstance(user, dict):
            return None
        return subscription_from_user(user)

    async def has_premium_entitlement(self, identity: Identity) -> bool:
        subscription = await self.get_subscription(identity)
        return bool(subscription and subscription.is_active())

    async def aclose(self) -> None:
        await self._client.aclose()
