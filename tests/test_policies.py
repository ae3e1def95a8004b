"""Tests for rate limit policies and the tier registry."""

import pytest

from tollgate.app.exceptions import ConfigError
from tollgate.app.services.rate_limit.models import PolicyOverride, RateLimitPolicy
from tollgate.app.services.rate_limit.policies import (
    DEFAULT_TIERS,
    MINUTE_MS,
    PolicyRegistry,
    merge_policy,
)


class TestRateLimitPolicy:
    """Validation happens at construction."""

    @pytest.mark.parametrize(("window_ms", "max_requests"), [(1, 1), (1000, 2), (MINUTE_MS, 100)])
    def test_valid_policies(self, window_ms, max_requests):
        policy = RateLimitPolicy(window_ms=window_ms, max_requests=max_requests)
        assert policy.window_ms == window_ms
        assert policy.max_requests == max_requests

    @pytest.mark.parametrize(
        ("window_ms", "max_requests"),
        [(0, 1), (-1, 1), (1000, 0), (1000, -5), (1.5, 1), (1000, "10"), (True, 1)],
    )
    def test_invalid_policies_fail_construction(self, window_ms, max_requests):
        with pytest.raises(ConfigError):
            RateLimitPolicy(window_ms=window_ms, max_requests=max_requests)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            RateLimitPolicy(window_ms=0, max_requests=1)

    def test_to_dict_hides_key_generator(self):
        policy = RateLimitPolicy(
            window_ms=1000, max_requests=1, key_generator=lambda tier, d: d.ip
        )
        data = policy.to_dict()
        assert "key_generator" not in data
        assert data["custom_key"] is True
        assert data["window_ms"] == 1000


class TestDefaultTiers:
    @pytest.mark.parametrize(
        ("tier", "window_ms", "max_requests"),
        [
            ("public", 15 * MINUTE_MS, 100),
            ("auth", 15 * MINUTE_MS, 5),
            ("realtime", MINUTE_MS, 60),
            ("ml", 5 * MINUTE_MS, 20),
            ("admin", 60 * MINUTE_MS, 100),
        ],
    )
    def test_default_thresholds(self, tier, window_ms, max_requests):
        policy = DEFAULT_TIERS[tier]
        assert policy.window_ms == window_ms
        assert policy.max_requests == max_requests

    def test_skip_flags_carried(self):
        assert DEFAULT_TIERS["auth"].skip_successful is True
        assert DEFAULT_TIERS["realtime"].skip_failed is True
        assert DEFAULT_TIERS["ml"].skip_failed is True
        assert DEFAULT_TIERS["public"].skip_successful is False

    def test_default_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_TIERS["public"] = RateLimitPolicy(window_ms=1, max_requests=1)


class TestMergePolicy:
    def test_none_override_returns_base(self):
        base = DEFAULT_TIERS["public"]
        assert merge_policy(base, None) is base

    def test_only_set_fields_change(self):
        merged = merge_policy(DEFAULT_TIERS["public"], PolicyOverride(max_requests=30))
        assert merged.max_requests == 30
        assert merged.window_ms == DEFAULT_TIERS["public"].window_ms

    def test_invalid_merge_raises(self):
        with pytest.raises(ConfigError):
            merge_policy(DEFAULT_TIERS["public"], PolicyOverride(max_requests=0))


class TestPolicyRegistry:
    def test_resolve_known_tier(self):
        registry = PolicyRegistry()
        assert registry.resolve("ml") == DEFAULT_TIERS["ml"]

    def test_resolve_unknown_tier(self):
        with pytest.raises(ConfigError):
            PolicyRegistry().resolve("nope")

    def test_resolve_with_override(self):
        policy = PolicyRegistry().resolve("public", PolicyOverride(window_ms=MINUTE_MS, max_requests=30))
        assert policy.window_ms == MINUTE_MS
        assert policy.max_requests == 30

    def test_overrides_applied_at_construction(self):
        registry = PolicyRegistry(overrides={"auth": PolicyOverride(max_requests=10)})
        assert registry.resolve("auth").max_requests == 10
        assert registry.resolve("auth").skip_successful is True

    def test_override_for_unknown_tier_fails(self):
        with pytest.raises(ConfigError):
            PolicyRegistry(overrides={"vip": PolicyOverride(max_requests=10)})

    def test_invalid_override_fails_construction(self):
        with pytest.raises(ConfigError):
            PolicyRegistry(overrides={"auth": PolicyOverride(window_ms=-1)})

    def test_custom_tier_table(self):
        registry = PolicyRegistry(tiers={"tiny": RateLimitPolicy(window_ms=1000, max_requests=1)})
        assert registry.tiers() == ["tiny"]
        assert "tiny" in registry
        assert "public" not in registry

    def test_from_settings(self, test_settings):
        test_settings.rate_limit_tiers = {"ml": {"max_requests": 50}}
        registry = PolicyRegistry.from_settings(test_settings)
        assert registry.resolve("ml").max_requests == 50

    def test_from_settings_rejects_unknown_fields(self, test_settings):
        test_settings.rate_limit_tiers = {"ml": {"burst": 50}}
        with pytest.raises(ConfigError):
            PolicyRegistry.from_settings(test_settings)

    def test_to_dict(self):
        data = PolicyRegistry().to_dict()
        assert set(data) == {"public", "auth", "realtime", "ml", "admin"}
        assert data["auth"]["max_requests"] == 5


class TestPolicyOverride:
    def test_from_dict(self):
        override = PolicyOverride.from_dict({"window_ms": 1000, "max_requests": 2})
        assert override.changes() == {"window_ms": 1000, "max_requests": 2}

    def test_from_dict_unknown_field(self):
        with pytest.raises(ConfigError):
            PolicyOverride.from_dict({"limit": 2})
