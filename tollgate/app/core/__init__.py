"""Core utilities for tollgate."""

from tollgate.app.core.config import Settings, settings
from tollgate.app.core.logging import get_log_context, get_logger, setup_logging
from tollgate.app.core.patterns import compile_glob, glob_match, to_redis_pattern
from tollgate.app.core.utils import Clock, now_ms, system_clock

__all__ = [
    "Settings",
    "settings",
    "get_logger",
    "get_log_context",
    "setup_logging",
    "compile_glob",
    "glob_match",
    "to_redis_pattern",
    "Clock",
    "now_ms",
    "system_clock",
]
