"""
Plan Generator
==============

Turns (goal, timeline, time commitment, answers) into a Plan:

1. sanitize inputs and infer the user's industry
2. POST a system+user message list to the generation endpoint
3. normalize the completion text, extract the outermost JSON object and
   validate it against GeneratedPlan
4. assign position-derived ids

Any failure along the way substitutes the hand-authored fallback plan, so
callers always receive a usable Plan.
"""

import random
import re
import string
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

import structlog
from pydantic import ValidationError

from ambitionly.core.config import Settings, get_settings
from ambitionly.core.engine.fallback import fallback_plan
from ambitionly.core.engine.http import ResilientHttpClient
from ambitionly.core.engine.progression import milestone_id, phase_id, task_id
from ambitionly.core.engine.state import epoch_ms
from ambitionly.core.errors import GenerationFailedError, InputValidationError, PlanParseError
from ambitionly.core.schemas import GeneratedPlan, Milestone, Phase, Plan, Task

logger = structlog.get_logger()


# ==========================================================================
# Input handling
# ==========================================================================

INDUSTRIES: list[tuple[str, tuple[str, ...]]] = [
    ("Quick-Service Restaurants (Fast Food)", (
        "mcdonald", "mcdonalds", "burger king", "wendy's", "kfc", "taco bell", "chipotle",
        "restaurant", "shift", "food service", "barista", "server",
    )),
    ("Retail & Store Operations", (
        "retail", "store", "cashier", "target", "walmart", "merchandising", "pos", "inventory",
    )),
    ("Software Engineering", (
        "software", "developer", "engineering", "react", "frontend", "backend", "api",
        "sprint", "jira", "github",
    )),
    ("Sales & SDR/AE", (
        "sales", "sdr", "ae", "quota", "crm", "salesforce", "pipeline", "demo", "outreach",
    )),
    ("Marketing & Content", (
        "marketing", "seo", "sem", "content", "copy", "campaign", "hubspot",
    )),
    ("Product Design & UX", ("design", "figma", "ux", "ui", "prototype")),
    ("Healthcare & Nursing", (
        "nurse", "healthcare", "clinic", "patient", "hospital", "rn", "cna",
    )),
    ("Education & Teaching", ("teacher", "education", "classroom", "curriculum", "students")),
    ("Finance & Accounting", (
        "finance", "accounting", "fp&a", "bookkeeping", "quickbooks", "excel model",
    )),
    ("Operations & Logistics", (
        "operations", "ops", "logistics", "warehouse", "supply", "shift report",
    )),
    ("Fitness & Coaching", ("fitness", "trainer", "coaching", "workout", "nutrition")),
]

DEFAULT_INDUSTRY = "General Professional Development"


def _keyword_pattern(keyword: str) -> re.Pattern:
    # whole words only: "ui" must not match "guitar"
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])")


_INDUSTRY_PATTERNS = [
    (industry, [_keyword_pattern(k) for k in keywords]) for industry, keywords in INDUSTRIES
]


def infer_industry(goal: str, answers: list[str]) -> str:
    text = " ".join([goal, *answers]).lower()
    for industry, patterns in _INDUSTRY_PATTERNS:
        if any(p.search(text) for p in patterns):
            return industry
    return DEFAULT_INDUSTRY


def sanitize(value: Any, limit: int) -> str:
    if not isinstance(value, str):
        return ""
    return value.strip()[:limit]


@dataclass
class GenerationInput:
    goal: str
    timeline: str
    time_commitment: str
    answers: list[str] = field(default_factory=list)

    @classmethod
    def sanitized(
        cls,
        goal: Any,
        timeline: Any,
        time_commitment: Any,
        answers: Optional[list[Any]],
        settings: Settings,
    ) -> "GenerationInput":
        cleaned = [sanitize(a, settings.ANSWER_MAX_LENGTH) for a in (answers or [])]
        return cls(
            goal=sanitize(goal, settings.GOAL_MAX_LENGTH),
            timeline=sanitize(timeline, settings.TIMELINE_MAX_LENGTH),
            time_commitment=sanitize(time_commitment, settings.TIME_COMMITMENT_MAX_LENGTH),
            answers=[a for a in cleaned if a],
        )

    def require_complete(self) -> None:
        missing = [
            name for name in ("goal", "timeline", "time_commitment") if not getattr(self, name)
        ]
        if missing:
            raise InputValidationError(f"Missing required data: {', '.join(missing)}")


# ==========================================================================
# Request
# ==========================================================================

SYSTEM_PROMPT = (
    "You are an elite execution coach. Produce concrete, measurable tasks with action verbs, "
    "artifacts and durations. Respect the user's daily time commitment when pacing the plan. "
    "No generic advice. Output valid JSON only."
)

RESPONSE_SCHEMA = """{
  "phases": [
    {
      "title": "string",
      "description": "string",
      "milestones": [
        {
          "title": "string",
          "description": "string",
          "tasks": [
            {"title": "string", "description": "string", "estimatedTime": "string"}
          ]
        }
      ]
    }
  ]
}"""


def build_messages(inputs: GenerationInput, industry: str) -> list[dict[str, str]]:
    context = "\n".join(f"{i}. {a}" for i, a in enumerate(inputs.answers, start=1)) or "(none)"
    prompt = (
        f'Create a specific, actionable roadmap for this goal: "{inputs.goal}"\n\n'
        f"Timeline: {inputs.timeline}\n"
        f"Daily time commitment: {inputs.time_commitment}\n"
        f"Industry: {industry}\n\n"
        f"Additional user context:\n{context}\n\n"
        "Requirements:\n"
        "- 3-4 phases, 2-3 milestones per phase, 3-5 tasks per milestone\n"
        "- every task starts with an action verb and names a concrete deliverable\n"
        '- every task has an estimatedTime such as "5 min", "25 min" or "1.5 h"\n'
        "- the first task takes 5-10 minutes and is immediately actionable\n"
        "- task durations grow gradually as the roadmap progresses\n\n"
        f"Output ONLY valid JSON matching exactly this schema:\n{RESPONSE_SCHEMA}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


# ==========================================================================
# Response parsing
# ==========================================================================

_QUOTE_TRANSLATION = str.maketrans({
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "\u0000": None,
})
_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)


def normalize_completion(text: str) -> str:
    """Repair the usual ways a model wraps or decorates its JSON."""
    cleaned = text.translate(_QUOTE_TRANSLATION).strip()
    cleaned = _FENCE.sub("", cleaned)
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return cleaned.strip()


def parse_generated_plan(text: Any) -> GeneratedPlan:
    """
    Parse a completion into a validated GeneratedPlan.

    Raises:
        PlanParseError: text is not JSON or does not match the schema
    """
    if not isinstance(text, str) or not text.strip():
        raise PlanParseError("Empty completion", raw=str(text or ""))
    cleaned = normalize_completion(text)
    try:
        return GeneratedPlan.model_validate_json(cleaned)
    except ValidationError as e:
        raise PlanParseError(f"Invalid roadmap structure: {e.error_count()} error(s)", raw=text) from e


# ==========================================================================
# Plan assembly
# ==========================================================================

def new_plan_id(now_ms: int, fallback: bool = False) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    prefix = "roadmap_fallback" if fallback else "roadmap"
    return f"{prefix}_{now_ms}_{suffix}"


def assemble_plan(
    plan_id: str,
    generated: GeneratedPlan,
    goal: str,
    timeline: str,
    time_commitment: str,
    created_at: datetime,
) -> Plan:
    phases = []
    for p, phase in enumerate(generated.phases):
        milestones = []
        for m, milestone in enumerate(phase.milestones):
            tasks = [
                Task(
                    id=task_id(plan_id, p, m, t),
                    title=task.title,
                    description=task.description,
                    estimated_time=task.estimated_time,
                )
                for t, task in enumerate(milestone.tasks)
            ]
            milestones.append(Milestone(
                id=milestone_id(plan_id, p, m),
                title=milestone.title,
                description=milestone.description,
                tasks=tasks,
            ))
        phases.append(Phase(
            id=phase_id(plan_id, p),
            title=phase.title,
            description=phase.description,
            milestones=milestones,
        ))
    return Plan(
        id=plan_id,
        goal=goal,
        timeline=timeline,
        time_commitment=time_commitment,
        phases=phases,
        created_at=created_at,
    )


class PlanGenerator:
    """Requests, validates and assembles plans; falls back on any failure."""

    def __init__(
        self,
        http: Optional[ResilientHttpClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = epoch_ms,
    ):
        self.settings = settings or get_settings()
        self.http = http or ResilientHttpClient(settings=self.settings)
        self._clock = clock

    async def generate(
        self,
        goal: str,
        timeline: str,
        time_commitment: str,
        answers: Optional[list[str]] = None,
    ) -> Plan:
        inputs = GenerationInput.sanitized(goal, timeline, time_commitment, answers, self.settings)
        try:
            inputs.require_complete()
            industry = infer_industry(inputs.goal, inputs.answers)
            logger.info("plan_generation_started", industry=industry, answers=len(inputs.answers))

            data = await self.http.post_json(
                self.settings.GENERATION_URL,
                {"messages": build_messages(inputs, industry)},
            )
            completion = data.get("completion") if isinstance(data, dict) else None
            generated = parse_generated_plan(completion)

            now_ms = int(self._clock())
            plan = assemble_plan(
                new_plan_id(now_ms),
                generated,
                inputs.goal,
                inputs.timeline,
                inputs.time_commitment,
                datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc),
            )
            logger.info("plan_generated", plan_id=plan.id, phases=len(plan.phases))
            return plan
        except Exception as e:
            logger.warning(
                "plan_generation_fallback",
                error=str(e),
                error_type=type(e).__name__,
            )

        return self.fallback(goal, timeline, time_commitment)

    def fallback(self, goal: str, timeline: str, time_commitment: str) -> Plan:
        """Build the fallback plan from the raw inputs."""
        try:
            now_ms = int(self._clock())
            return assemble_plan(
                new_plan_id(now_ms, fallback=True),
                fallback_plan(goal if isinstance(goal, str) else ""),
                goal if isinstance(goal, str) else "",
                timeline if isinstance(timeline, str) else "",
                time_commitment if isinstance(time_commitment, str) else "",
                datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc),
            )
        except Exception as e:
            logger.error("plan_fallback_failed", error=str(e))
            raise GenerationFailedError("Generation failed") from e

    async def aclose(self) -> None:
        await self.http.aclose()
