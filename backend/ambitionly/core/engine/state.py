"""
Engine state owned by a single AmbitionEngine.

Mutated only through the engine's operations; every other component reads
it or receives the pieces it needs.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from ambitionly.core.engine.progression import PlanIndex
from ambitionly.core.schemas import Plan, StreakRecord, TaskTimer


@dataclass
class EngineState:
    goal: str = ""
    timeline: str = ""
    time_commitment: str = ""
    answers: list[str] = field(default_factory=list)
    plan: Optional[Plan] = None
    index: Optional[PlanIndex] = None
    completed: set[str] = field(default_factory=set)
    timers: dict[str, TaskTimer] = field(default_factory=dict)
    streak: StreakRecord = field(default_factory=StreakRecord)
    hydrated: bool = False

    def set_plan(self, plan: Optional[Plan]) -> None:
        """Replace the plan and rebuild its index."""
        self.plan = plan
        self.index = PlanIndex.build(plan) if plan is not None else None

    def task_title(self, task_id: str) -> str:
        if self.index is None:
            return "Task"
        return self.index.title_of(task_id)

    def timer_list(self) -> list[TaskTimer]:
        return list(self.timers.values())


def epoch_ms() -> float:
    """Default engine clock: wall time in epoch milliseconds."""
    return time.time() * 1000
