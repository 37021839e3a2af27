"""
Ambitionly - Roadmap API
========================

Goal inputs, plan generation, unlock state and progress.
"""

from fastapi import APIRouter, HTTPException, status

from ambitionly.api.deps import EngineDep
from ambitionly.core.errors import InputValidationError
from ambitionly.core.schemas import (
    AnswerCreate,
    GoalResponse,
    GoalUpdate,
    MessageResponse,
    PhaseUnlock,
    Plan,
    ProgressResponse,
)

router = APIRouter(tags=["Roadmap"])


def _goal_response(engine) -> GoalResponse:
    state = engine.state
    return GoalResponse(
        goal=state.goal,
        timeline=state.timeline,
        time_commitment=state.time_commitment,
        answers=list(state.answers),
    )


# ==========================================================================
# Goal
# ==========================================================================

@router.get("/goal", response_model=GoalResponse, summary="Get goal inputs")
async def get_goal(engine: EngineDep) -> GoalResponse:
    return _goal_response(engine)


@router.put(
    "/goal",
    response_model=GoalResponse,
    summary="Update goal inputs",
    responses={422: {"description": "Blank or too long value"}},
)
async def update_goal(data: GoalUpdate, engine: EngineDep) -> GoalResponse:
    """
    Update any of goal, timeline and time commitment.

    Every provided field is checked first; one invalid field rejects the
    whole update.
    """
    try:
        await engine.update_goal_inputs(
            goal=data.goal,
            timeline=data.timeline,
            time_commitment=data.time_commitment,
        )
    except InputValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.message,
        )
    return _goal_response(engine)


@router.post(
    "/goal/answers",
    response_model=GoalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a questionnaire answer",
)
async def add_answer(data: AnswerCreate, engine: EngineDep) -> GoalResponse:
    if not await engine.add_answer(data.answer):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Invalid answer",
        )
    return _goal_response(engine)


# ==========================================================================
# Plan
# ==========================================================================

@router.post(
    "/plan/generate",
    response_model=Plan,
    summary="Generate a new plan",
    responses={502: {"description": "Generation failed"}},
)
async def generate_plan(engine: EngineDep) -> Plan:
    """
    Generate a plan from the stored goal inputs.

    Replaces the current plan and clears timers and completed tasks.
    Falls back to a built-in plan when generation fails.
    """
    return await engine.generate_plan()


@router.get("/plan", response_model=Plan, summary="Get the current plan")
async def get_plan(engine: EngineDep) -> Plan:
    if engine.state.plan is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No plan generated")
    return engine.state.plan


@router.get("/plan/unlocks", response_model=list[PhaseUnlock], summary="Unlock state of every unit")
async def get_unlocks(engine: EngineDep) -> list[PhaseUnlock]:
    return engine.unlock_overview()


# ==========================================================================
# Progress
# ==========================================================================

@router.get("/progress", response_model=ProgressResponse, summary="Completion and streak")
async def get_progress(engine: EngineDep) -> ProgressResponse:
    return ProgressResponse(
        percentage=engine.completion_percentage(),
        completed_tasks=sorted(engine.state.completed),
        streak=engine.current_streak(),
    )


@router.post("/progress/reset", response_model=MessageResponse, summary="Reset progress")
async def reset_progress(engine: EngineDep) -> MessageResponse:
    await engine.reset_progress()
    return MessageResponse(message="Progress reset")


@router.delete("/data", response_model=MessageResponse, summary="Clear all local data")
async def clear_data(engine: EngineDep) -> MessageResponse:
    await engine.clear_all_data()
    return MessageResponse(message="All data cleared")
