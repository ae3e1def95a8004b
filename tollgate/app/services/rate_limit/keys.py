"""Counting key derivation.

Default key layout is ``tier:ip:path``, optionally followed by the HTTP
method and the user agent when a policy opts into the finer granularity.
Colons and percent signs inside a component are percent-encoded so that
distinct requests never join into the same key.
"""

from typing import Optional

from tollgate.app.services.rate_limit.models import ClientRequestDescriptor, RateLimitPolicy

UNKNOWN = "unknown"


def escape_component(value: str) -> str:
    """Percent-encode the key separator (and the escape character itself)."""
    return value.replace("%", "%25").replace(":", "%3A")


class KeyDeriver:
    """Builds counting keys from (tier, client, route).

    Pure and deterministic: identical inputs always give the same key.
    """

    def __init__(self, prefix: str = "") -> None:
        self._prefix = prefix.strip().rstrip(":")

    @property
    def prefix(self) -> str:
        return self._prefix

    def _with_prefix(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    def generate(
        self,
        tier: str,
        descriptor: ClientRequestDescriptor,
        *,
        include_method: bool = False,
        include_user_agent: bool = False,
    ) -> str:
        """Build the default key for a request.

        Args:
            tier: Tier name.
            descriptor: Request descriptor.
            include_method: Append the upper-cased HTTP method.
            include_user_agent: Append the user agent.

        Returns:
            Key such as ``public:10.0.0.1:/api/items``.
        """
        parts = [tier, descriptor.ip or UNKNOWN, descriptor.path]
        if include_method:
            parts.append((descriptor.method or UNKNOWN).upper())
        if include_user_agent:
            parts.append(descriptor.user_agent or UNKNOWN)
        return self._with_prefix(":".join(escape_component(part) for part in parts))

    def for_policy(
        self,
        tier: str,
        descriptor: ClientRequestDescriptor,
        policy: RateLimitPolicy,
        *,
        include_user_agent: Optional[bool] = None,
    ) -> str:
        """Build the key a limiter should count against for ``policy``.

        A policy's custom key generator wins over the default layout.
        ``include_user_agent`` forces the user agent on or off regardless of
        the policy flag.
        """
        if policy.key_generator is not None:
            return self._with_prefix(policy.key_generator(tier, descriptor))
        return self.generate(
            tier,
            descriptor,
            include_method=policy.include_method,
            include_user_agent=(
                policy.include_user_agent if include_user_agent is None else include_user_agent
            ),
        )

    def tier_pattern(self, tier: str = "*") -> str:
        """Glob matching every key of ``tier`` (or every key when omitted)."""
        if tier == "*":
            return self._with_prefix("*")
        return self._with_prefix(f"{escape_component(tier)}:*")
