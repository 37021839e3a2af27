"""
Sync Coordinator
================

One-way push of local state to the remote account store.

Gate:
- the session carries a registered (non-guest) identity with an email
- that identity holds premium entitlement; forced syncs re-check a few
  times so a just-completed purchase has time to settle

Triggers:
- debounced: low-value mutations, restartable quiet window
- forced:    high-value mutations (plan generation, completion, reset)
- periodic:  while foregrounded, skipped if a push happened recently
- resume:    background -> active after the foreground threshold

One push runs at a time. A non-forced request arriving during a push is
skipped; a forced one waits and runs right after the push in flight.
Failures are logged and swallowed.
"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.engine.collaborators import (
    EntitlementProvider,
    RemoteAccountStore,
    SessionProvider,
)
from ambitionly.core.engine.state import EngineState
from ambitionly.core.schemas import Identity, SubscriptionInfo, SyncPayload

logger = structlog.get_logger()


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def build_sync_payload(
    state: EngineState,
    identity: Identity,
    subscription: Optional[SubscriptionInfo],
    now: datetime,
) -> SyncPayload:
    """
    Project local state into a partial payload.

    Only fields with content are set; everything else stays None and is
    dropped on the wire, so a push can never erase remote data.
    """
    fields: dict[str, Any] = {}

    for name in ("goal", "timeline", "time_commitment"):
        value = getattr(state, name)
        if value and value.strip():
            fields[name] = value
    if state.answers:
        fields["answers"] = _dumps(state.answers)
    if state.plan is not None and state.plan.phases:
        fields["roadmap"] = _dumps(state.plan.to_json_dict())
    if state.completed:
        fields["completed_tasks"] = _dumps(sorted(state.completed))
    if state.streak.last_completion_date is not None or state.streak.streak > 0:
        fields["streak_data"] = _dumps(state.streak.to_json_dict())
    if state.timers:
        fields["task_timers"] = _dumps([t.to_json_dict() for t in state.timers.values()])

    if subscription is not None:
        fields["subscription_plan"] = subscription.plan
        fields["subscription_status"] = subscription.status
        fields["subscription_expires_at"] = _iso(subscription.expires_at)
        fields["subscription_purchased_at"] = _iso(subscription.purchased_at)

    return SyncPayload(
        email=identity.email,
        user_id=identity.user_id or None,
        last_synced_at=now.isoformat(),
        **fields,
    )


class SyncCoordinator:
    """Decides whether and what to push, and serializes pushes."""

    def __init__(
        self,
        state: EngineState,
        sessions: SessionProvider,
        entitlements: EntitlementProvider,
        remote: RemoteAccountStore,
        clock: Callable[[], float],
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.state = state
        self.sessions = sessions
        self.entitlements = entitlements
        self.remote = remote
        self.settings = settings or get_settings()
        self._clock = clock
        self._sleep = sleep

        self.last_push_at: Optional[float] = None  # epoch ms
        self.app_state = "active"

        self._in_flight = False
        self._queued_forced: Optional[asyncio.Future] = None
        self._debounce_task: Optional[asyncio.Task] = None
        self._periodic_task: Optional[asyncio.Task] = None
        self._periodic_running = False
        self._background: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def is_foreground(self) -> bool:
        return self.app_state == "active"

    def _since_last_push(self) -> Optional[float]:
        """Seconds since the last successful push, None if never pushed."""
        if self.last_push_at is None:
            return None
        return (self._clock() - self.last_push_at) / 1000

    # ==================== Push ====================

    async def sync_now(self, force: bool = False) -> bool:
        """
        Push now. Returns True iff a push succeeded. Never raises.
        """
        if not self.settings.SYNC_ENABLED:
            return False
        if force:
            self.cancel_debounce()

        if self._in_flight:
            if not force:
                logger.debug("sync_skipped_in_flight")
                return False
            if self._queued_forced is None:
                self._queued_forced = asyncio.get_running_loop().create_future()
            logger.info("sync_queued_after_in_flight")
            return await asyncio.shield(self._queued_forced)

        self._in_flight = True
        try:
            result = await self._attempt(force)
            while self._queued_forced is not None:
                waiter = self._queued_forced
                self._queued_forced = None
                ok = False
                try:
                    ok = await self._attempt(True)
                finally:
                    if not waiter.done():
                        waiter.set_result(ok)
            return result
        finally:
            self._in_flight = False
            if self._queued_forced is not None and not self._queued_forced.done():
                self._queued_forced.set_result(False)
            self._queued_forced = None

    async def _attempt(self, force: bool) -> bool:
        try:
            identity = await self._eligible_identity(force)
            if identity is None:
                return False

            subscription = await self._subscription(identity)
            now = datetime.fromtimestamp(self._clock() / 1000, tz=timezone.utc)
            payload = build_sync_payload(self.state, identity, subscription, now).to_wire()

            await self.remote.update_user(identity, payload)
            self.last_push_at = self._clock()
            logger.info(
                "sync_pushed",
                forced=force,
                fields=sorted(k for k in payload if k not in ("email", "userId", "lastSyncedAt")),
            )
            return True
        except Exception as e:
            logger.warning("sync_failed", forced=force, error=str(e), error_type=type(e).__name__)
            return False

    async def _eligible_identity(self, force: bool) -> Optional[Identity]:
        attempts = self.settings.PREMIUM_CHECK_ATTEMPTS if force else 1
        for attempt in range(1, attempts + 1):
            session = await self.sessions.get_session()
            identity = session.identity
            if identity is None or not identity.is_registered:
                logger.debug("sync_skipped_no_identity")
                return None
            if await self.entitlements.has_premium_entitlement(identity):
                return identity
            if attempt < attempts:
                logger.info("sync_premium_unconfirmed_retrying", attempt=attempt, max_attempts=attempts)
                await self._sleep(self.settings.PREMIUM_CHECK_DELAY_SECONDS)
        logger.debug("sync_skipped_not_premium")
        return None

    async def _subscription(self, identity: Identity) -> Optional[SubscriptionInfo]:
        try:
            return await self.entitlements.get_subscription(identity)
        except Exception as e:
            logger.warning("subscription_lookup_failed", error=str(e))
            return None

    # ==================== Triggers ====================

    def request_forced_sync(self) -> asyncio.Task:
        """Run a forced sync in the background without blocking the caller."""
        self.cancel_debounce()
        task = asyncio.create_task(self.sync_now(force=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def debounced_sync(self) -> None:
        """(Re)start the quiet window; the push runs when it elapses."""
        if not self.settings.SYNC_ENABLED:
            return
        self.cancel_debounce()
        self._debounce_task = asyncio.create_task(self._debounce_then_sync())

    async def _debounce_then_sync(self) -> None:
        await self._sleep(self.settings.SYNC_DEBOUNCE_SECONDS)
        # past the window: no longer cancellable as a debounce
        self._debounce_task = None
        await self.sync_now()

    def cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    @property
    def debounce_pending(self) -> bool:
        return self._debounce_task is not None and not self._debounce_task.done()

    async def periodic_tick(self) -> bool:
        """One periodic check; returns True iff it pushed."""
        if not self.is_foreground:
            return False
        since = self._since_last_push()
        if since is not None and since < self.settings.SYNC_PERIODIC_SECONDS:
            return False
        return await self.sync_now()

    async def run_periodic(self) -> None:
        while self._periodic_running:
            await self._sleep(self.settings.SYNC_PERIODIC_SECONDS)
            try:
                await self.periodic_tick()
            except Exception as e:
                logger.error("sync_periodic_error", error=str(e))

    async def start_periodic(self) -> None:
        if self._periodic_running or not self.settings.SYNC_ENABLED:
            return
        self._periodic_running = True
        self._periodic_task = asyncio.create_task(self.run_periodic())
        logger.info("sync_periodic_started", interval=self.settings.SYNC_PERIODIC_SECONDS)

    async def stop_periodic(self) -> None:
        self._periodic_running = False
        if self._periodic_task:
            self._periodic_task.cancel()
            try:
                await self._periodic_task
            except asyncio.CancelledError:
                pass
            self._periodic_task = None

    async def on_app_state_change(self, next_state: str) -> bool:
        """
        Track foreground/background transitions.

        Returns True iff resuming triggered a successful push.
        """
        previous = self.app_state
        self.app_state = next_state
        logger.debug("app_state_changed", previous=previous, state=next_state)

        if next_state != "active" or previous not in ("background", "inactive"):
            return False
        since = self._since_last_push()
        if since is not None and since < self.settings.SYNC_FOREGROUND_THRESHOLD_SECONDS:
            return False
        return await self.sync_now()

    async def close(self) -> None:
        self.cancel_debounce()
        await self.stop_periodic()
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()
