"""
Ambitionly - Tasks API
======================

Task timers and completion toggling.
"""

from typing import Optional

from fastapi import APIRouter

from ambitionly.api.deps import EngineDep
from ambitionly.core.schemas import TimerStart, TimerStatus, ToggleResponse

router = APIRouter(prefix="/tasks", tags=["Tasks"])


def _timer_status(engine, task_id: str) -> TimerStatus:
    return TimerStatus(
        task_id=task_id,
        timer=engine.get_timer(task_id),
        is_complete=engine.is_timer_complete(task_id),
        progress=engine.timer_progress(task_id),
    )


@router.get(
    "/{task_id}/timer",
    response_model=TimerStatus,
    summary="Get timer status",
    responses={404: {"description": "Unknown task"}},
)
async def get_timer(task_id: str, engine: EngineDep) -> TimerStatus:
    engine.require_task(task_id)
    return _timer_status(engine, task_id)


@router.post(
    "/{task_id}/timer",
    response_model=TimerStatus,
    summary="Start a task timer",
    responses={404: {"description": "Unknown task"}},
)
async def start_timer(
    task_id: str,
    engine: EngineDep,
    data: Optional[TimerStart] = None,
) -> TimerStatus:
    """
    Start the task's timer.

    Without an explicit estimate the task's own ``estimatedTime`` is used.
    Starting an already running timer leaves it unchanged.
    """
    estimated_time = data.estimated_time if data else None
    await engine.start_timer(task_id, estimated_time or None)
    return _timer_status(engine, task_id)


@router.delete(
    "/{task_id}/timer",
    response_model=TimerStatus,
    summary="Stop a task timer",
    responses={404: {"description": "Unknown task"}},
)
async def stop_timer(task_id: str, engine: EngineDep) -> TimerStatus:
    engine.require_task(task_id)
    await engine.stop_timer(task_id)
    return _timer_status(engine, task_id)


@router.post(
    "/{task_id}/toggle",
    response_model=ToggleResponse,
    summary="Complete or un-complete a task",
    responses={404: {"description": "Unknown task"}},
)
async def toggle_task(task_id: str, engine: EngineDep) -> ToggleResponse:
    """
    Toggle completion. ``success`` is false while the task's timer is still
    running.
    """
    success = await engine.toggle_task(task_id)
    return ToggleResponse(
        task_id=task_id,
        success=success,
        completed=task_id in engine.state.completed,
    )
