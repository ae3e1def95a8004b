"""Glob matching for counter store keys.

Only ``*`` is a wildcard (any run of characters, including none). Every
other character is matched literally, so keys containing Redis glob
metacharacters (``?``, ``[``, ``]``, ``\\``) are never misinterpreted.
"""

import re
from functools import lru_cache

# Characters with special meaning in Redis MATCH patterns
_REDIS_GLOB_SPECIALS = frozenset("?[]\\")


@lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression.

    Args:
        pattern: Glob where ``*`` matches any sequence of characters.

    Returns:
        Compiled regex that must match the whole key.
    """
    parts = [re.escape(part) for part in pattern.split("*")]
    return re.compile("^" + ".*".join(parts) + "$", re.DOTALL)


def glob_match(pattern: str, key: str) -> bool:
    """Return True if ``key`` matches ``pattern`` in full."""
    return compile_glob(pattern).match(key) is not None


def filter_keys(pattern: str, keys) -> list[str]:
    """Return the keys matching ``pattern``, preserving input order."""
    regex = compile_glob(pattern)
    return [key for key in keys if regex.match(key) is not None]


def to_redis_pattern(pattern: str) -> str:
    """Translate a glob into a Redis MATCH pattern with the same meaning.

    Example:
        >>> to_redis_pattern("auth:10.0.0.1:/api/login?next*")
        'auth:10.0.0.1:/api/login\\\\?next*'
    """
    return "".join(
        "\\" + char if char in _REDIS_GLOB_SPECIALS else char
        for char in pattern
    )
