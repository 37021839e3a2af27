"""
Ambitionly Core - Pydantic Schemas
==================================

Data model for plans, timers, streaks and sync, plus request/response
schemas for the HTTP surface.

JSON uses camelCase keys (``estimatedTime``, ``startTime``...) so the
persisted and synced shapes match what the mobile client and the account
store already exchange. Both spellings are accepted on input.
"""

from datetime import date, datetime, timezone
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ==========================================================================
# Base Schemas
# ==========================================================================

class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ==========================================================================
# Plan tree
# ==========================================================================

class Task(BaseSchema):
    id: str
    title: str
    description: str = ""
    estimated_time: Optional[str] = None


class Milestone(BaseSchema):
    id: str
    title: str
    description: str = ""
    tasks: list[Task] = Field(default_factory=list)


class Phase(BaseSchema):
    id: str
    title: str
    description: str = ""
    milestones: list[Milestone] = Field(default_factory=list)


class Plan(BaseSchema):
    """A generated roadmap. Replaced wholesale, never edited in place."""

    id: str
    goal: str
    timeline: str = ""
    time_commitment: str = ""
    phases: list[Phase] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ==========================================================================
# Generation response (validated at the boundary)
# ==========================================================================

class GeneratedTask(BaseSchema):
    title: str = Field(min_length=1)
    description: str = ""
    estimated_time: Optional[str] = None

    @field_validator("description", "estimated_time", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v


class GeneratedMilestone(BaseSchema):
    title: str = Field(min_length=1)
    description: str = ""
    tasks: list[GeneratedTask] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v


class GeneratedPhase(BaseSchema):
    title: str = Field(min_length=1)
    description: str = ""
    milestones: list[GeneratedMilestone] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v


class GeneratedPlan(BaseSchema):
    """Shape the generation endpoint is asked to return."""

    phases: list[GeneratedPhase] = Field(min_length=1)


# ==========================================================================
# Timers & streak
# ==========================================================================

class TaskTimer(BaseSchema):
    """
    Per-task countdown.

    ``notification_handle`` links the timer to the completion notification
    scheduled for it, if scheduling succeeded.
    """

    task_id: str
    start_time: int  # epoch milliseconds
    duration_minutes: int = Field(
        validation_alias=AliasChoices("durationMinutes", "duration_minutes", "duration"),
    )
    is_active: bool = True
    is_completed: bool = False
    notification_handle: Optional[str] = None

    @property
    def instance_key(self) -> str:
        return f"{self.task_id}-{self.start_time}"

    @property
    def total_ms(self) -> int:
        return self.duration_minutes * 60_000


class TimerProgress(BaseSchema):
    elapsed_ms: int = 0
    total_ms: int = 0
    percentage: float = 0.0


class StreakRecord(BaseSchema):
    last_completion_date: Optional[date] = None
    streak: int = 0

    @field_validator("last_completion_date", mode="before")
    @classmethod
    def parse_loose_date(cls, v):
        # Older clients stored dates as "Tue Mar 10 2026"; anything
        # unreadable means "never completed".
        if v in (None, ""):
            return None
        if isinstance(v, (date, datetime)):
            return v
        if isinstance(v, str):
            try:
                return date.fromisoformat(v)
            except ValueError:
                pass
            try:
                return datetime.strptime(v, "%a %b %d %Y").date()
            except ValueError:
                return None
        return None


# ==========================================================================
# Session, entitlement, sync
# ==========================================================================

class Identity(BaseSchema):
    user_id: Optional[str] = None
    email: Optional[str] = None
    is_guest: bool = False

    @property
    def is_registered(self) -> bool:
        return not self.is_guest and bool(self.email and self.email.strip())


class Session(BaseSchema):
    identity: Optional[Identity] = None


SubscriptionPlan = Literal["free", "monthly", "annual", "lifetime"]


class SubscriptionInfo(BaseSchema):
    plan: SubscriptionPlan = "free"
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    purchased_at: Optional[datetime] = None

    def is_active(self, now: Optional[datetime] = None) -> bool:
        if self.plan == "free" or self.status not in ("active", "trialing"):
            return False
        if self.expires_at is None:
            return True
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now < expires


class SyncPayload(BaseSchema):
    """
    Partial projection of local state pushed to the account store.

    Serialized with ``exclude_none`` so an absent field is never sent and
    can never overwrite server data.
    """

    email: str
    user_id: Optional[str] = None

    goal: Optional[str] = None
    timeline: Optional[str] = None
    time_commitment: Optional[str] = None
    answers: Optional[str] = None
    roadmap: Optional[str] = None
    completed_tasks: Optional[str] = None
    streak_data: Optional[str] = None
    task_timers: Optional[str] = None

    subscription_plan: Optional[str] = None
    subscription_status: Optional[str] = None
    subscription_expires_at: Optional[str] = None
    subscription_purchased_at: Optional[str] = None

    last_synced_at: str

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ==========================================================================
# HTTP surface
# ==========================================================================

class GoalUpdate(BaseSchema):
    goal: Optional[str] = None
    timeline: Optional[str] = None
    time_commitment: Optional[str] = None


class GoalResponse(BaseSchema):
    goal: str
    timeline: str
    time_commitment: str
    answers: list[str]


class AnswerCreate(BaseSchema):
    answer: str


class TimerStart(BaseSchema):
    estimated_time: Optional[str] = None


class TimerStatus(BaseSchema):
    task_id: str
    timer: Optional[TaskTimer] = None
    is_complete: bool = False
    progress: TimerProgress = Field(default_factory=TimerProgress)


class ToggleResponse(BaseSchema):
    task_id: str
    success: bool
    completed: bool


class TaskUnlock(BaseSchema):
    id: str
    title: str
    unlocked: bool
    completed: bool


class MilestoneUnlock(BaseSchema):
    id: str
    title: str
    unlocked: bool
    tasks: list[TaskUnlock]


class PhaseUnlock(BaseSchema):
    id: str
    title: str
    unlocked: bool
    milestones: list[MilestoneUnlock]


class ProgressResponse(BaseSchema):
    percentage: float
    completed_tasks: list[str]
    streak: int


class SyncRequest(BaseSchema):
    force: bool = False


class SyncResponse(BaseSchema):
    pushed: bool


class AppStateChange(BaseSchema):
    state: Literal["active", "background", "inactive"]


class MessageResponse(BaseSchema):
    """Generic message response."""

    message: str
    success: bool = True


class ErrorResponse(BaseSchema):
    """Error response schema."""

    error: str
    detail: Optional[str] = None
    code: Optional[str] = None


class HealthResponse(BaseSchema):
    """Health check response."""

    status: str
    version: str
    environment: str
    database: str
    hydrated: bool
