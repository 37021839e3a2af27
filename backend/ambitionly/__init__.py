"""
Ambitionly - goal roadmap progression and timing engine.
"""

__version__ = "0.1.0"
