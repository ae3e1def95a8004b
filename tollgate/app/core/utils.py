"""Utility functions for tollgate."""

import math
import time
from typing import Callable

# Time source returning UNIX time in seconds (time.time compatible)
Clock = Callable[[], float]


def system_clock() -> float:
    """Default time source."""
    return time.time()


def now_ms(clock: Clock = system_clock) -> int:
    """Current time in integer milliseconds since the epoch."""
    return round(clock() * 1000)


def ms_to_ttl_seconds(duration_ms: int) -> int:
    """Convert a window length to a whole-second TTL, rounding up.

    Examples:
        >>> ms_to_ttl_seconds(1000)
        1
        >>> ms_to_ttl_seconds(1500)
        2
    """
    return max(1, math.ceil(duration_ms / 1000))


def seconds_until(target_ms: int, current_ms: int) -> int:
    """Whole seconds until ``target_ms``, rounded up and never negative."""
    return max(0, math.ceil((target_ms - current_ms) / 1000))
