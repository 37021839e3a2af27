"""
Ambitionly Core Package
=======================

Configuration, persistence, schemas and the engine.
"""

from ambitionly.core.config import settings
from ambitionly.core.database import Base

__all__ = ["Base", "settings"]
