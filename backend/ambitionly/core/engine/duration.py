"""
Duration Parser - estimated-time text to whole minutes.

    parse_duration("1.5 h")   -> 90
    parse_duration("45 min")  -> 45
    parse_duration("25")      -> 25
    parse_duration("banana")  -> 20 (default)
"""

import math
import re

DEFAULT_MINUTES = 20

# Markers must not be part of a longer word ("chapter", "mindset").
_HOUR_MARKER = re.compile(r"(?<![a-z])(?:h|hrs?|hours?)(?![a-z])")
_MINUTE_MARKER = re.compile(r"(?<![a-z])(?:m|mins?|minutes?)(?![a-z])")
_DECIMAL = re.compile(r"(\d*\.?\d+)")
# the number written directly before the hour marker: "30 min - 1 h" is one hour
_HOURS = re.compile(r"(\d*\.?\d+)\s*(?:h|hrs?|hours?)(?![a-z])")
_INTEGER = re.compile(r"\d+")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_duration(text, default: int = DEFAULT_MINUTES) -> int:
    """Parse a free-form estimate into minutes. Never raises; always > 0."""
    if not isinstance(text, str):
        return default

    lowered = text.strip().lower()
    minutes: float | None = None

    if _HOUR_MARKER.search(lowered):
        match = _HOURS.search(lowered) or _DECIMAL.search(lowered)
        if match:
            hours = float(match.group(1))
            if math.isfinite(hours * 60):
                minutes = _round_half_up(hours * 60)
    elif _MINUTE_MARKER.search(lowered):
        match = _INTEGER.search(lowered)
        if match:
            minutes = int(match.group())
    else:
        match = _INTEGER.search(lowered)
        if match:
            minutes = int(match.group())

    if minutes is None or not math.isfinite(minutes) or minutes <= 0:
        return default
    return int(minutes)
