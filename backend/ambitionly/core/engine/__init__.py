"""
Ambitionly Engine
=================

Components:
- parse_duration:    free-form estimate -> minutes
- progression:       unlock rules over a PlanIndex
- TimerManager:      per-task timers and completion notifications
- StreakTracker:     consecutive-day completion streak
- PlanGenerator:     generation request, response repair, fallback plan
- SyncCoordinator:   premium-gated one-way push to the account store
- AmbitionEngine:    owns the state and wires everything together
"""

from ambitionly.core.engine.duration import parse_duration
from ambitionly.core.engine.engine import AmbitionEngine
from ambitionly.core.engine.generator import PlanGenerator
from ambitionly.core.engine.progression import PlanIndex
from ambitionly.core.engine.state import EngineState
from ambitionly.core.engine.streak import StreakTracker
from ambitionly.core.engine.sync import SyncCoordinator
from ambitionly.core.engine.timers import TimerManager

__all__ = [
    "AmbitionEngine",
    "EngineState",
    "PlanGenerator",
    "PlanIndex",
    "StreakTracker",
    "SyncCoordinator",
    "TimerManager",
    "parse_duration",
]
