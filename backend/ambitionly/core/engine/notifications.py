"""
Timer Notifications - templates and an in-process scheduler.

The scheduler delivers through a callback; without one it only logs, the
same "logging only" mode the remote push client falls back to when no
device transport is configured.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

logger = structlog.get_logger()


class NotificationType(str, Enum):
    TASK_TIMER_COMPLETE = "task-timer-complete"


@dataclass
class Notification:
    """Notification payload."""
    type: NotificationType
    title: str
    body: str
    task_id: Optional[str] = None
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationTemplates:
    """Notification template definitions."""

    @staticmethod
    def task_timer_complete(task_title: str) -> tuple[str, str]:
        """Title and body for a finished task timer."""
        return (
            "Task Timer Complete! ⏰",
            f'"{task_title}" timer is finished. Time to move on to the next task!',
        )


Deliver = Callable[[Notification], Any]


class LocalNotificationScheduler:
    """
    Schedules notifications on the running event loop.

    Handles are opaque strings; cancelling an unknown or already-fired
    handle is a no-op.
    """

    def __init__(self, deliver: Optional[Deliver] = None):
        self._deliver = deliver
        self._pending: dict[str, asyncio.TimerHandle] = {}
        self._delivery_tasks: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def schedule(
        self,
        title: str,
        body: str,
        delay_seconds: float,
        task_id: Optional[str] = None,
    ) -> Optional[str]:
        loop = asyncio.get_running_loop()
        handle = f"task-timer-{uuid4().hex[:12]}"
        notification = Notification(
            type=NotificationType.TASK_TIMER_COMPLETE,
            title=title,
            body=body,
            task_id=task_id,
            data={"type": NotificationType.TASK_TIMER_COMPLETE.value, "task_id": task_id},
        )
        self._pending[handle] = loop.call_later(
            max(0.0, delay_seconds), self._fire, handle, notification
        )
        logger.debug("notification_scheduled", handle=handle, task_id=task_id, delay_seconds=delay_seconds)
        return handle

    async def cancel(self, handle: str) -> None:
        timer = self._pending.pop(handle, None)
        if timer is not None:
            timer.cancel()
            logger.debug("notification_cancelled", handle=handle)

    def _fire(self, handle: str, notification: Notification) -> None:
        self._pending.pop(handle, None)
        if self._deliver is None:
            logger.info(
                "notification_logged",
                title=notification.title,
                body=notification.body,
                task_id=notification.task_id,
                mode="logging_only",
            )
            return
        try:
            result = self._deliver(notification)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._delivery_tasks.add(task)
                task.add_done_callback(self._delivery_tasks.discard)
        except Exception as e:
            logger.error("notification_delivery_failed", error=str(e), task_id=notification.task_id)

    async def close(self) -> None:
        for timer in self._pending.values():
            timer.cancel()
        self._pending.clear()
