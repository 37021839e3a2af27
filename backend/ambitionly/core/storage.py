"""
Ambitionly Core - Local Durable Storage
=======================================

Typed access to the key -> string store. Every read tolerates missing or
malformed data by falling back to an empty/default value; nothing here
raises on bad stored content.
"""

import json
from typing import Any, Iterable, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ambitionly.core.models import KeyValueEntry
from ambitionly.core.schemas import Plan, StreakRecord, TaskTimer

logger = structlog.get_logger()


class StorageKeys:
    GOAL = "ambitionly_goal"
    TIMELINE = "ambitionly_timeline"
    TIME_COMMITMENT = "ambitionly_time_commitment"
    ANSWERS = "ambitionly_answers"
    ROADMAP = "ambitionly_roadmap"
    COMPLETED_TASKS = "ambitionly_completed_tasks"
    STREAK_DATA = "ambitionly_streak_data"
    TASK_TIMERS = "ambitionly_task_timers"

    PROGRESS = (COMPLETED_TASKS, STREAK_DATA, TASK_TIMERS)
    ALL = (GOAL, TIMELINE, TIME_COMMITMENT, ANSWERS, ROADMAP, *PROGRESS)


class LocalStore:
    """Key/value persistence backed by the ``kv_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ==================== Raw access ====================

    async def get(self, key: str) -> Optional[str]:
        async with self._session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            return entry.value if entry else None

    async def put(self, key: str, value: str) -> None:
        await self.put_many({key: value})

    async def put_many(self, values: dict[str, str]) -> None:
        async with self._session_factory() as session:
            for key, value in values.items():
                entry = await session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
            await session.commit()

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        if not keys:
            return
        async with self._session_factory() as session:
            await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key.in_(keys)))
            await session.commit()

    # ==================== JSON helpers ====================

    async def read_json(self, key: str, default: Any) -> Any:
        raw = await self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(
                "storage_malformed_json",
                key=key,
                error=str(e),
                preview=raw[:100],
            )
            return default

    @staticmethod
    def dumps(value: Any) -> str:
        return json.dumps(value, ensure_ascii=False)

    # ==================== Typed reads ====================

    async def load_text(self, key: str) -> str:
        return await self.get(key) or ""

    async def load_answers(self) -> list[str]:
        data = await self.read_json(StorageKeys.ANSWERS, [])
        if not isinstance(data, list):
            return []
        return [a for a in data if isinstance(a, str)]

    async def load_plan(self) -> Optional[Plan]:
        data = await self.read_json(StorageKeys.ROADMAP, None)
        if not isinstance(data, dict):
            return None
        try:
            return Plan.model_validate(data)
        except ValidationError as e:
            logger.warning("storage_invalid_plan", errors=e.error_count())
            return None

    async def load_completed(self) -> set[str]:
        data = await self.read_json(StorageKeys.COMPLETED_TASKS, [])
        if not isinstance(data, list):
            return set()
        return {t for t in data if isinstance(t, str)}

    async def load_streak(self) -> StreakRecord:
        data = await self.read_json(StorageKeys.STREAK_DATA, None)
        if not isinstance(data, dict):
            return StreakRecord()
        try:
            return StreakRecord.model_validate(data)
        except ValidationError:
            return StreakRecord()

    async def load_timers(self) -> list[TaskTimer]:
        data = await self.read_json(StorageKeys.TASK_TIMERS, [])
        if not isinstance(data, list):
            return []
        timers: dict[str, TaskTimer] = {}
        for raw in data:
            try:
                timer = TaskTimer.model_validate(raw)
            except ValidationError:
                logger.warning("storage_invalid_timer_skipped")
                continue
            # one timer per task; the last record wins
            timers[timer.task_id] = timer
        return list(timers.values())

    # ==================== Typed writes ====================

    async def save_answers(self, answers: list[str]) -> None:
        await self.put(StorageKeys.ANSWERS, self.dumps(answers))

    async def save_plan(self, plan: Plan) -> None:
        await self.put(StorageKeys.ROADMAP, self.dumps(plan.to_json_dict()))

    async def save_completed(self, completed: set[str]) -> None:
        await self.put(StorageKeys.COMPLETED_TASKS, self.dumps(sorted(completed)))

    async def save_streak(self, record: StreakRecord) -> None:
        await self.put(StorageKeys.STREAK_DATA, self.dumps(record.to_json_dict()))

    async def save_timers(self, timers: list[TaskTimer]) -> None:
        await self.put(StorageKeys.TASK_TIMERS, self.dumps([t.to_json_dict() for t in timers]))
