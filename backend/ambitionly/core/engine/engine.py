"""
AmbitionEngine
==============

Composition root. Owns the EngineState and is the only place it is
mutated; every mutating operation writes through to the LocalStore before
any sync is triggered.

    engine = AmbitionEngine(store)
    await engine.hydrate()
    await engine.start()
    ...
    await engine.close()
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

import structlog

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.engine import progression
from ambitionly.core.engine.collaborators import (
    EntitlementProvider,
    HttpAccountStore,
    NotificationScheduler,
    RemoteAccountStore,
    SessionProvider,
    StaticSessionProvider,
)
from ambitionly.core.engine.generator import PlanGenerator
from ambitionly.core.engine.notifications import LocalNotificationScheduler
from ambitionly.core.engine.state import EngineState, epoch_ms
from ambitionly.core.engine.streak import StreakTracker
from ambitionly.core.engine.sync import SyncCoordinator
from ambitionly.core.engine.timers import TimerManager
from ambitionly.core.errors import InputValidationError, UnknownTaskError
from ambitionly.core.schemas import (
    MilestoneUnlock,
    PhaseUnlock,
    Plan,
    StreakRecord,
    TaskTimer,
    TaskUnlock,
    TimerProgress,
)
from ambitionly.core.storage import LocalStore, StorageKeys

logger = structlog.get_logger()


class AmbitionEngine:
    """Progression, timers, streak and sync over one user's local state."""

    def __init__(
        self,
        store: LocalStore,
        generator: Optional[PlanGenerator] = None,
        scheduler: Optional[NotificationScheduler] = None,
        sessions: Optional[SessionProvider] = None,
        entitlements: Optional[EntitlementProvider] = None,
        remote: Optional[RemoteAccountStore] = None,
        clock: Callable[[], float] = epoch_ms,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.state = EngineState()
        self._clock = clock

        # collaborators built here are closed here
        self._owned: list[Any] = []

        if generator is None:
            generator = PlanGenerator(settings=self.settings, clock=clock)
            self._owned.append(generator)
        self.generator = generator

        if scheduler is None:
            scheduler = LocalNotificationScheduler()
            self._owned.append(scheduler)
        self.scheduler = scheduler

        if entitlements is None or remote is None:
            account = HttpAccountStore(settings=self.settings)
            self._owned.append(account)
            entitlements = entitlements or account
            remote = remote or account

        self.timers = TimerManager(self.state, scheduler, clock, self.settings)
        self.streak = StreakTracker(clock, self.state.streak)
        self.sync = SyncCoordinator(
            self.state,
            sessions or StaticSessionProvider(),
            entitlements,
            remote,
            clock,
            self.settings,
            sleep=sleep,
        )

    # ==================== Lifecycle ====================

    async def hydrate(self) -> None:
        """Load every persisted key into memory. Bad stored data reads as empty."""
        state = self.state
        state.goal = await self.store.load_text(StorageKeys.GOAL)
        state.timeline = await self.store.load_text(StorageKeys.TIMELINE)
        state.time_commitment = await self.store.load_text(StorageKeys.TIME_COMMITMENT)
        state.answers = await self.store.load_answers()
        state.set_plan(await self.store.load_plan())
        state.completed = await self.store.load_completed()
        await self.timers.restore(await self.store.load_timers())
        self._set_streak(await self.store.load_streak())
        state.hydrated = True

        logger.info(
            "engine_hydrated",
            has_plan=state.plan is not None,
            completed=len(state.completed),
            timers=len(state.timers),
        )

    async def start(self) -> None:
        """Start the background loops: timer completion checks and periodic sync."""
        await self.timers.start_completion_checks()
        await self.sync.start_periodic()

    async def close(self) -> None:
        await self.timers.stop_completion_checks()
        await self.sync.close()
        for owned in self._owned:
            if hasattr(owned, "aclose"):
                await owned.aclose()
            elif hasattr(owned, "close"):
                await owned.close()
        logger.info("engine_closed")

    async def on_app_state_change(self, next_state: str) -> bool:
        return await self.sync.on_app_state_change(next_state)

    async def sync_now(self, force: bool = False) -> bool:
        return await self.sync.sync_now(force=force)

    # ==================== Goal inputs ====================

    def _validated(self, value: Any, field_name: str, limit: int) -> str:
        if not isinstance(value, str) or not value.strip():
            raise InputValidationError(f"{field_name} must be a non-empty string")
        value = value.strip()
        if len(value) > limit:
            raise InputValidationError(f"{field_name} exceeds {limit} characters")
        return value

    async def _set_text(self, key: str, attr: str, value: Any, limit: int) -> bool:
        try:
            cleaned = self._validated(value, attr, limit)
        except InputValidationError as e:
            logger.info("input_rejected", field=attr, reason=e.message)
            return False
        setattr(self.state, attr, cleaned)
        await self.store.put(key, cleaned)
        self.sync.debounced_sync()
        return True

    async def set_goal(self, goal: str) -> bool:
        return await self._set_text(StorageKeys.GOAL, "goal", goal, self.settings.GOAL_MAX_LENGTH)

    async def set_timeline(self, timeline: str) -> bool:
        return await self._set_text(
            StorageKeys.TIMELINE, "timeline", timeline, self.settings.TIMELINE_MAX_LENGTH
        )

    async def set_time_commitment(self, time_commitment: str) -> bool:
        return await self._set_text(
            StorageKeys.TIME_COMMITMENT,
            "time_commitment",
            time_commitment,
            self.settings.TIME_COMMITMENT_MAX_LENGTH,
        )

    async def update_goal_inputs(
        self,
        goal: Optional[str] = None,
        timeline: Optional[str] = None,
        time_commitment: Optional[str] = None,
    ) -> None:
        """
        Validate every provided field, then apply them together.

        Raises InputValidationError, with nothing changed, if any field is
        blank or too long. ``None`` leaves a field as it is.
        """
        fields = [
            (StorageKeys.GOAL, "goal", goal, self.settings.GOAL_MAX_LENGTH),
            (StorageKeys.TIMELINE, "timeline", timeline, self.settings.TIMELINE_MAX_LENGTH),
            (
                StorageKeys.TIME_COMMITMENT,
                "time_commitment",
                time_commitment,
                self.settings.TIME_COMMITMENT_MAX_LENGTH,
            ),
        ]
        cleaned: dict[str, tuple[str, str]] = {}
        for key, attr, value, limit in fields:
            if value is None:
                continue
            try:
                cleaned[key] = (attr, self._validated(value, attr, limit))
            except InputValidationError as e:
                logger.info("input_rejected", field=attr, reason=e.message)
                raise
        if not cleaned:
            return

        for attr, value in cleaned.values():
            setattr(self.state, attr, value)
        await self.store.put_many({key: value for key, (_, value) in cleaned.items()})
        self.sync.debounced_sync()

    async def add_answer(self, answer: str) -> bool:
        try:
            cleaned = self._validated(answer, "answer", self.settings.ANSWER_MAX_LENGTH)
        except InputValidationError as e:
            logger.info("input_rejected", field="answer", reason=e.message)
            return False
        self.state.answers.append(cleaned)
        await self.store.save_answers(self.state.answers)
        self.sync.debounced_sync()
        return True

    # ==================== Plan ====================

    async def generate_plan(self) -> Plan:
        """
        Generate a plan from the stored inputs and replace the current one.

        Timers and completed tasks belong to the old plan's task ids, so
        both are cleared. The streak is kept.

        Raises:
            GenerationFailedError: not even the fallback plan could be built
        """
        state = self.state
        plan = await self.generator.generate(
            state.goal, state.timeline, state.time_commitment, state.answers
        )

        await self.timers.clear()
        state.completed.clear()
        state.set_plan(plan)

        await self.store.save_plan(plan)
        await self.store.save_completed(state.completed)
        await self.store.save_timers(state.timer_list())

        logger.info("plan_replaced", plan_id=plan.id, tasks=state.index.task_count)
        self.sync.request_forced_sync()
        return plan

    def require_task(self, task_id: str) -> None:
        index = self.state.index
        if index is None or index.position_of(task_id) is None:
            raise UnknownTaskError(f"Unknown task: {task_id}", status=404)

    # ==================== Timers ====================

    async def start_timer(self, task_id: str, estimated_time: Optional[str] = None) -> Optional[TaskTimer]:
        """
        Start the task's timer. ``estimated_time`` defaults to the task's own
        estimate. Returns None when a timer is already running for the task.
        """
        self.require_task(task_id)
        if estimated_time is None:
            position = self.state.index.position_of(task_id)
            estimated_time = self.state.index.task_at(*position).estimated_time

        timer = await self.timers.start(task_id, estimated_time)
        if timer is not None:
            await self.store.save_timers(self.state.timer_list())
            self.sync.debounced_sync()
        return timer

    async def stop_timer(self, task_id: str) -> bool:
        stopped = await self.timers.stop(task_id)
        if stopped:
            await self.store.save_timers(self.state.timer_list())
            self.sync.debounced_sync()
        return stopped

    def get_timer(self, task_id: str) -> Optional[TaskTimer]:
        return self.timers.get(task_id)

    def is_timer_complete(self, task_id: str) -> bool:
        return self.timers.is_complete(task_id)

    def timer_progress(self, task_id: str) -> TimerProgress:
        return self.timers.progress(task_id)

    # ==================== Completion ====================

    async def toggle_task(self, task_id: str) -> bool:
        """
        Complete or un-complete a task.

        Refused (False, nothing changes) while the task's timer is active
        and has not fully elapsed.
        """
        self.require_task(task_id)

        # read timer state now, before any await
        timer = self.timers.get(task_id)
        if timer is not None and timer.is_active and not self.timers.is_complete(task_id):
            logger.info("task_toggle_refused", task_id=task_id, reason="timer_running")
            return False

        state = self.state
        if task_id in state.completed:
            state.completed.discard(task_id)
            await self.store.save_completed(state.completed)
            logger.info("task_uncompleted", task_id=task_id)
            self.sync.debounced_sync()
            return True

        state.completed.add(task_id)
        completed_timer = await self.timers.mark_completed(task_id)
        self._set_streak(self.streak.record_completion_today())

        await self.store.save_completed(state.completed)
        if completed_timer is not None:
            await self.store.save_timers(state.timer_list())
        await self.store.save_streak(state.streak)

        logger.info("task_completed", task_id=task_id, streak=state.streak.streak)
        self.sync.request_forced_sync()
        return True

    # ==================== Progression ====================

    def is_phase_unlocked(self, p: int) -> bool:
        return progression.is_phase_unlocked(self.state.index, self.state.completed, p)

    def is_milestone_unlocked(self, p: int, m: int) -> bool:
        return progression.is_milestone_unlocked(self.state.index, self.state.completed, p, m)

    def is_task_unlocked(self, p: int, m: int, t: int) -> bool:
        return progression.is_task_unlocked(self.state.index, self.state.completed, p, m, t)

    def completion_percentage(self) -> float:
        return progression.completion_percentage(self.state.index, self.state.completed)

    def unlock_overview(self) -> list[PhaseUnlock]:
        """Lock/complete flags for every unit of the current plan."""
        plan = self.state.plan
        if plan is None:
            return []
        completed = self.state.completed
        return [
            PhaseUnlock(
                id=phase.id,
                title=phase.title,
                unlocked=self.is_phase_unlocked(p),
                milestones=[
                    MilestoneUnlock(
                        id=milestone.id,
                        title=milestone.title,
                        unlocked=self.is_milestone_unlocked(p, m),
                        tasks=[
                            TaskUnlock(
                                id=task.id,
                                title=task.title,
                                unlocked=self.is_task_unlocked(p, m, t),
                                completed=task.id in completed,
                            )
                            for t, task in enumerate(milestone.tasks)
                        ],
                    )
                    for m, milestone in enumerate(phase.milestones)
                ],
            )
            for p, phase in enumerate(plan.phases)
        ]

    # ==================== Streak ====================

    def _set_streak(self, record: StreakRecord) -> None:
        self.state.streak = record
        self.streak.record = record

    def current_streak(self) -> int:
        return self.streak.current_streak()

    # ==================== Reset ====================

    async def reset_progress(self) -> None:
        """Clear completed tasks, timers and streak; keep goal and plan."""
        await self.timers.clear()
        self.state.completed.clear()
        self.streak.reset()
        self._set_streak(self.streak.record)
        await self.store.remove(StorageKeys.PROGRESS)
        logger.info("progress_reset")
        self.sync.request_forced_sync()

    async def clear_all_data(self) -> None:
        """Forget everything stored locally."""
        await self.timers.clear()
        state = self.state
        state.goal = ""
        state.timeline = ""
        state.time_commitment = ""
        state.answers = []
        state.set_plan(None)
        state.completed.clear()
        self.streak.reset()
        self._set_streak(self.streak.record)
        await self.store.remove(StorageKeys.ALL)
        logger.info("local_data_cleared")
        self.sync.request_forced_sync()
