"""
Ambitionly - API Dependencies
=============================

Engine wiring shared by the routers.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status

from ambitionly.core.config import Settings, settings
from ambitionly.core.database import AsyncSessionLocal
from ambitionly.core.engine import AmbitionEngine
from ambitionly.core.engine.collaborators import StaticSessionProvider
from ambitionly.core.schemas import Identity
from ambitionly.core.storage import LocalStore


# Global engine instance, created in the application lifespan
_engine: Optional[AmbitionEngine] = None


def session_identity(config: Settings) -> Optional[Identity]:
    """The account this server syncs for; none configured means guest."""
    if not config.ACCOUNT_EMAIL:
        return None
    return Identity(email=config.ACCOUNT_EMAIL, user_id=config.ACCOUNT_USER_ID)


def build_engine(config: Settings = settings) -> AmbitionEngine:
    return AmbitionEngine(
        LocalStore(AsyncSessionLocal),
        sessions=StaticSessionProvider(session_identity(config)),
        settings=config,
    )


def set_engine(engine: Optional[AmbitionEngine]) -> None:
    global _engine
    _engine = engine


def current_engine() -> Optional[AmbitionEngine]:
    return _engine


def get_engine() -> AmbitionEngine:
    if _engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized",
        )
    return _engine


EngineDep = Annotated[AmbitionEngine, Depends(get_engine)]
