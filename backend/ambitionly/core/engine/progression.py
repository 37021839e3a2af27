"""
Progression Engine - unlock rules over a plan and a completed-task set.

Rules:
- phase 0 / milestone 0 / task 0 is always unlocked
- task t > 0 unlocks when task t-1 of the same milestone is completed
- milestone m > 0 unlocks when every task of milestone m-1 (same phase) is completed
- phase p > 0 unlocks when every task of phase p-1 is completed
- with no plan loaded everything is locked

All functions are pure; they read a PlanIndex built once per plan load.
"""

from dataclasses import dataclass, field
from typing import Collection, Optional

from ambitionly.core.schemas import Plan, Task

Position = tuple[int, int, int]


def phase_id(plan_id: str, p: int) -> str:
    return f"{plan_id}:phase-{p}"


def milestone_id(plan_id: str, p: int, m: int) -> str:
    return f"{plan_id}:milestone-{p}-{m}"


def task_id(plan_id: str, p: int, m: int, t: int) -> str:
    return f"{plan_id}:task-{p}-{m}-{t}"


@dataclass
class PlanIndex:
    """Flat lookups over a plan: id <-> position, per-unit task id lists."""

    plan: Plan
    positions: dict[str, Position] = field(default_factory=dict)
    tasks: dict[Position, Task] = field(default_factory=dict)
    milestone_tasks: dict[tuple[int, int], list[str]] = field(default_factory=dict)
    phase_tasks: dict[int, list[str]] = field(default_factory=dict)

    @classmethod
    def build(cls, plan: Plan) -> "PlanIndex":
        index = cls(plan=plan)
        for p, phase in enumerate(plan.phases):
            index.phase_tasks[p] = []
            for m, milestone in enumerate(phase.milestones):
                ids = []
                for t, task in enumerate(milestone.tasks):
                    index.positions[task.id] = (p, m, t)
                    index.tasks[(p, m, t)] = task
                    ids.append(task.id)
                index.milestone_tasks[(p, m)] = ids
                index.phase_tasks[p].extend(ids)
        return index

    @property
    def task_count(self) -> int:
        return len(self.positions)

    @property
    def phase_count(self) -> int:
        return len(self.phase_tasks)

    def task_at(self, p: int, m: int, t: int) -> Optional[Task]:
        return self.tasks.get((p, m, t))

    def position_of(self, tid: str) -> Optional[Position]:
        return self.positions.get(tid)

    def title_of(self, tid: str, default: str = "Task") -> str:
        position = self.positions.get(tid)
        return self.tasks[position].title if position else default

    def has_milestone(self, p: int, m: int) -> bool:
        return (p, m) in self.milestone_tasks


def _all_completed(task_ids: list[str], completed: Collection[str]) -> bool:
    return all(tid in completed for tid in task_ids)


def is_phase_unlocked(index: Optional[PlanIndex], completed: Collection[str], p: int) -> bool:
    if index is None or p not in index.phase_tasks:
        return False
    if p == 0:
        return True
    return _all_completed(index.phase_tasks[p - 1], completed)


def is_milestone_unlocked(
    index: Optional[PlanIndex], completed: Collection[str], p: int, m: int
) -> bool:
    if index is None or not index.has_milestone(p, m):
        return False
    if m > 0:
        return _all_completed(index.milestone_tasks[(p, m - 1)], completed)
    return is_phase_unlocked(index, completed, p)


def is_task_unlocked(
    index: Optional[PlanIndex], completed: Collection[str], p: int, m: int, t: int
) -> bool:
    if index is None or index.task_at(p, m, t) is None:
        return False
    if t > 0:
        previous = index.task_at(p, m, t - 1)
        return previous is not None and previous.id in completed
    return is_milestone_unlocked(index, completed, p, m)


def completion_percentage(index: Optional[PlanIndex], completed: Collection[str]) -> float:
    """Share of the plan's tasks that are completed, 0-100."""
    if index is None or index.task_count == 0:
        return 0.0
    done = sum(1 for tid in completed if tid in index.positions)
    return done / index.task_count * 100
