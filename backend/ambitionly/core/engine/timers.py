"""
Timer Manager
=============

Per-task countdown timers and their completion notifications.

Timer lifecycle per task:
    Idle -> Active (start) -> Completed (task toggled) | Stopped (stop)
    Stopped/Completed -> Active (restart)

At most one timer record exists per task; a restart replaces it. A timer
may own one scheduled notification, referenced by ``notification_handle``.
Every path that ends or replaces a timer goes through
``_release_notification`` so a stale notification can never fire.

When scheduling failed (no handle), a background check fires an immediate
fallback notification once the timer has strictly elapsed, at most once per
timer instance.
"""

import asyncio
import math
from typing import Callable, Optional

import structlog

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.engine.collaborators import NotificationScheduler
from ambitionly.core.engine.duration import parse_duration
from ambitionly.core.engine.notifications import NotificationTemplates
from ambitionly.core.engine.state import EngineState
from ambitionly.core.schemas import TaskTimer, TimerProgress

logger = structlog.get_logger()


class TimerManager:
    """Owns timer transitions on the engine state."""

    def __init__(
        self,
        state: EngineState,
        scheduler: NotificationScheduler,
        clock: Callable[[], float],
        settings: Optional[Settings] = None,
    ):
        self.state = state
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self._clock = clock

        # timer instances ("<task_id>-<start_time>") already given a fallback notification
        self._fallback_fired: set[str] = set()

        self._check_task: Optional[asyncio.Task] = None
        self._check_running = False

    def _now(self) -> int:
        return int(self._clock())

    # ==================== Queries ====================

    def get(self, task_id: str) -> Optional[TaskTimer]:
        return self.state.timers.get(task_id)

    def is_complete(self, task_id: str) -> bool:
        """Strict check: the full duration has elapsed on an active timer."""
        timer = self.get(task_id)
        if timer is None or not timer.is_active:
            return False
        return self._now() - timer.start_time >= timer.total_ms

    def progress(self, task_id: str) -> TimerProgress:
        timer = self.get(task_id)
        if timer is None or not timer.is_active:
            return TimerProgress()
        elapsed = max(0, self._now() - timer.start_time)
        total = timer.total_ms
        percentage = min(100.0, elapsed / total * 100) if total else 100.0
        return TimerProgress(elapsed_ms=elapsed, total_ms=total, percentage=percentage)

    # ==================== Commands ====================

    async def start(self, task_id: str, estimated_time: str) -> Optional[TaskTimer]:
        """
        Start a timer for ``task_id``.

        Returns the new timer, or None when an active timer already exists
        for the task (no-op).
        """
        existing = self.get(task_id)
        if existing is not None and existing.is_active:
            logger.debug("timer_already_active", task_id=task_id)
            return None

        if self.settings.SINGLE_ACTIVE_TIMER:
            for other in self.state.timer_list():
                if other.is_active and other.task_id != task_id:
                    await self._deactivate(other)
                    logger.info("timer_preempted", task_id=other.task_id, by_task_id=task_id)

        if existing is not None:
            await self._release_notification(existing)

        duration = parse_duration(estimated_time, default=self.settings.DEFAULT_TASK_MINUTES)
        handle = await self._schedule_notification(task_id, duration * 60)

        timer = TaskTimer(
            task_id=task_id,
            start_time=self._now(),
            duration_minutes=duration,
            is_active=True,
            is_completed=False,
            notification_handle=handle,
        )
        self.state.timers[task_id] = timer

        logger.info(
            "timer_started",
            task_id=task_id,
            duration_minutes=duration,
            notification_scheduled=handle is not None,
        )
        return timer

    async def stop(self, task_id: str) -> bool:
        """Deactivate the task's timer; the record is kept."""
        timer = self.get(task_id)
        if timer is None or not timer.is_active:
            return False
        await self._deactivate(timer)
        logger.info("timer_stopped", task_id=task_id)
        return True

    async def mark_completed(self, task_id: str) -> Optional[TaskTimer]:
        """Mark the task's timer completed and inactive, if there is one."""
        timer = self.get(task_id)
        if timer is None:
            return None
        await self._release_notification(timer)
        timer.is_active = False
        timer.is_completed = True
        return timer

    async def clear(self) -> None:
        """Drop every timer, releasing all notifications."""
        for timer in self.state.timer_list():
            await self._release_notification(timer)
        self.state.timers.clear()
        self._fallback_fired.clear()

    async def restore(self, timers: list[TaskTimer]) -> None:
        """
        Load timers persisted by an earlier run.

        Stored handles belonged to that run's scheduler and are dropped.
        Running timers get a notification for their remaining time; if none
        can be scheduled, the fallback check covers them.
        """
        for timer in self.state.timer_list():
            await self._release_notification(timer)
        self.state.timers.clear()
        self._fallback_fired.clear()

        rescheduled = 0
        for timer in timers:
            timer.notification_handle = None
            if timer.is_active and not timer.is_completed:
                remaining_ms = timer.total_ms - (self._now() - timer.start_time)
                if remaining_ms > 0:
                    timer.notification_handle = await self._schedule_notification(
                        timer.task_id, math.ceil(remaining_ms / 1000)
                    )
                    rescheduled += timer.notification_handle is not None
            self.state.timers[timer.task_id] = timer

        logger.info("timers_restored", timers=len(timers), rescheduled=rescheduled)

    async def _deactivate(self, timer: TaskTimer) -> None:
        await self._release_notification(timer)
        timer.is_active = False

    # ==================== Notifications ====================

    async def _schedule_notification(self, task_id: str, delay: float) -> Optional[str]:
        if delay < self.settings.MIN_NOTIFICATION_DELAY_SECONDS:
            logger.debug("notification_skipped_short_delay", task_id=task_id, delay_seconds=delay)
            return None

        title, body = NotificationTemplates.task_timer_complete(self.state.task_title(task_id))
        try:
            handle = await self.scheduler.schedule(title, body, delay, task_id)
        except Exception as e:
            logger.warning("notification_schedule_failed", task_id=task_id, error=str(e))
            return None
        if handle is None:
            logger.warning("notification_schedule_failed", task_id=task_id, error="no handle")
        return handle

    async def _release_notification(self, timer: TaskTimer) -> None:
        handle = timer.notification_handle
        if handle is None:
            return
        timer.notification_handle = None
        try:
            await self.scheduler.cancel(handle)
        except Exception as e:
            logger.warning("notification_cancel_failed", task_id=timer.task_id, handle=handle, error=str(e))

    # ==================== Completion check ====================

    async def check_completions(self) -> list[str]:
        """
        One pass of the fallback check.

        Returns the task ids a fallback notification was fired for.
        """
        fired = []
        for timer in self.state.timer_list():
            if not timer.is_active or timer.is_completed or timer.notification_handle is not None:
                continue
            key = timer.instance_key
            if key in self._fallback_fired or not self.is_complete(timer.task_id):
                continue

            self._fallback_fired.add(key)
            title, body = NotificationTemplates.task_timer_complete(
                self.state.task_title(timer.task_id)
            )
            try:
                await self.scheduler.schedule(title, body, 0, timer.task_id)
            except Exception as e:
                logger.warning("fallback_notification_failed", task_id=timer.task_id, error=str(e))
                continue
            logger.info("fallback_notification_fired", task_id=timer.task_id)
            fired.append(timer.task_id)
        return fired

    async def start_completion_checks(self) -> None:
        if self._check_running:
            return
        self._check_running = True
        self._check_task = asyncio.create_task(self.run_completion_checks())
        logger.info("timer_check_started", interval=self.settings.TIMER_CHECK_INTERVAL_SECONDS)

    async def stop_completion_checks(self) -> None:
        self._check_running = False
        if self._check_task:
            self._check_task.cancel()
            try:
                await self._check_task
            except asyncio.CancelledError:
                pass
            self._check_task = None
        logger.info("timer_check_stopped")

    async def run_completion_checks(self) -> None:
        """Interval loop; only does work while a plan is loaded."""
        while self._check_running:
            try:
                if self.state.plan is not None:
                    await self.check_completions()
            except Exception as e:
                logger.error("timer_check_error", error=str(e))
            await asyncio.sleep(self.settings.TIMER_CHECK_INTERVAL_SECONDS)
