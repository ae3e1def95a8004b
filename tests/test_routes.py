"""Tests for route to tier resolution."""

import pytest

from tollgate.app.exceptions import ConfigError
from tollgate.app.services.rate_limit.models import PolicyOverride
from tollgate.app.services.rate_limit.policies import PolicyRegistry
from tollgate.app.services.rate_limit.routes import RouteTierMap


@pytest.fixture
def routes() -> RouteTierMap:
    return RouteTierMap(registry=PolicyRegistry())


class TestResolve:
    @pytest.mark.parametrize(
        ("path", "tier"),
        [
            ("/api/ml/predictions", "ml"),
            ("/api/auth/login", "auth"),
            ("/api/login", "auth"),
            ("/api/payments/charge", "auth"),
            ("/api/realtime-data", "realtime"),
            ("/api/admin/users", "admin"),
            ("/api/items", "public"),
            ("/api", "public"),
        ],
    )
    def test_tier_for_path(self, routes, path, tier):
        assert routes.resolve(path).tier == tier

    def test_matches_whole_segments_only(self, routes):
        match = routes.resolve("/api/mlflow")
        assert match.tier == "public"
        assert match.matched == "/api"

    def test_longest_prefix_wins(self):
        table = RouteTierMap(routes={"/api": "public", "/api/ml": "ml", "/api/ml/admin": "admin"})
        assert table.resolve("/api/ml/admin/jobs").tier == "admin"
        assert table.resolve("/api/ml/jobs").tier == "ml"

    def test_trailing_slash_ignored(self, routes):
        assert routes.resolve("/api/ml/").tier == "ml"

    def test_paths_outside_table_not_limited(self, routes):
        assert routes.resolve("/static/app.js") is None
        assert routes.has_rate_limit("/") is False

    @pytest.mark.parametrize("path", ["/api/health", "/api/status", "/api/_next/data.json"])
    def test_ignored_routes_bypass(self, routes, path):
        assert routes.is_ignored(path) is True
        assert routes.resolve(path) is None
        assert routes.has_rate_limit(path) is False

    @pytest.mark.parametrize("path", ["/api/health/live", "/api/_next/static/x.js"])
    def test_ignore_list_covers_subpaths(self, routes, path):
        assert routes.is_ignored(path) is True
        assert routes.resolve(path) is None

    @pytest.mark.parametrize("path", ["/api/healthz", "/api/statusboard", "/api/_nextjs"])
    def test_ignore_list_matches_whole_segments(self, routes, path):
        assert routes.is_ignored(path) is False
        assert routes.resolve(path).tier == "public"

    def test_custom_ignore_list(self):
        table = RouteTierMap(ignored=["/api/ping"])
        assert table.resolve("/api/ping") is None
        assert table.resolve("/api/health").tier == "public"


class TestCustomRoutes:
    @pytest.mark.parametrize(
        ("path", "window_ms", "max_requests"),
        [
            ("/api/upload", 60 * 60 * 1000, 10),
            ("/api/search", 60 * 1000, 30),
            ("/api/export", 24 * 60 * 60 * 1000, 5),
        ],
    )
    def test_custom_policies(self, routes, path, window_ms, max_requests):
        match = routes.resolve(path)
        assert match.tier == "public"
        assert match.is_custom is True
        policy = PolicyRegistry().resolve(match.tier, match.override)
        assert policy.window_ms == window_ms
        assert policy.max_requests == max_requests

    def test_custom_is_exact_path(self, routes):
        assert routes.resolve("/api/upload/avatar").is_custom is False


class TestValidation:
    def test_unknown_tier_rejected(self):
        with pytest.raises(ConfigError):
            RouteTierMap(routes={"/api": "vip"}, registry=PolicyRegistry())

    def test_invalid_custom_override_rejected(self):
        with pytest.raises(ConfigError):
            RouteTierMap(custom={"/api/x": PolicyOverride(max_requests=0)}, registry=PolicyRegistry())

    def test_unvalidated_without_registry(self):
        assert RouteTierMap(routes={"/api": "vip"}).resolve("/api/x").tier == "vip"


class TestInfo:
    def test_info_for_custom_route(self, routes):
        info = routes.info("/api/search", registry=PolicyRegistry())
        assert info["tier"] == "public"
        assert info["has_custom_config"] is True
        assert info["policy"]["max_requests"] == 30
        assert info["ignored"] is False

    def test_info_for_ignored_route(self, routes):
        info = routes.info("/api/health", registry=PolicyRegistry())
        assert info["tier"] is None
        assert info["ignored"] is True
        assert info["policy"] is None
