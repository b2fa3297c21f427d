"""
Tests for auth/config.py and auth/store.py.

Covers:
  1. Tagged config parsing (one variant per authType)
  2. Smart path policy (longest prefix, fail-closed default)
  3. Credential resolution order
  4. Domain-keyed artifact persistence
  5. Backend auth config lookup
"""

import asyncio
import json

import pytest
import requests

from a11y_discovery.auth.config import (
    ApiKeyAuthConfig,
    Credentials,
    FormAuthConfig,
    NoAuthConfig,
    PathPolicy,
    SsoAuthConfig,
    parse_auth_config,
    resolve_credentials,
)
from a11y_discovery.auth.backend import AuthConfigClient, pick_config
from a11y_discovery.auth.store import AuthStateStore
from a11y_discovery.errors import AuthConfigError


# ====================================================================
# 1. Parsing
# ====================================================================

class TestParseAuthConfig:

    def test_form_with_nested_selectors(self):
        cfg = parse_auth_config(json.dumps({
            "type": "basic",
            "domain": "site.test",
            "loginUrl": "http://site.test/login",
            "username": "alice",
            "password": "pw",
            "selectors": {"username": "#u", "password": "#p", "submit": "#go"},
            "successUrl": "/home",
        }))
        assert isinstance(cfg, FormAuthConfig)
        assert cfg.auth_type == "basic"
        assert (cfg.username_selector, cfg.password_selector, cfg.submit_selector) == ("#u", "#p", "#go")
        assert cfg.credentials() == Credentials("alice", "pw")
        assert not cfg.is_smart

    def test_form_alias_and_flat_selectors(self):
        cfg = parse_auth_config({"authType": "form", "usernameSelector": "#login"}, domain="site.test")
        assert isinstance(cfg, FormAuthConfig)
        assert cfg.username_selector == "#login"
        assert cfg.domain == "site.test"

    @pytest.mark.parametrize("auth_type", ["sso", "saml", "oauth", "custom"])
    def test_sso_family(self, auth_type):
        cfg = parse_auth_config({"type": auth_type, "loginUrl": "https://idp.test/"})
        assert isinstance(cfg, SsoAuthConfig)
        assert cfg.auth_type == auth_type

    def test_api_key_headers(self):
        cfg = parse_auth_config({"type": "api_key", "headers": {"Authorization": "Bearer t"}})
        assert isinstance(cfg, ApiKeyAuthConfig)
        assert cfg.headers == {"Authorization": "Bearer t"}

    def test_api_key_shorthand(self):
        cfg = parse_auth_config({"type": "api_key", "apiKey": "k", "headerName": "X-Token"})
        assert cfg.headers == {"X-Token": "k"}

    def test_none_and_missing_type(self):
        assert type(parse_auth_config({})) is NoAuthConfig
        assert parse_auth_config({"type": "none"}).requires_auth("http://site.test/x") is False

    def test_path_policy_top_level_or_nested(self):
        flat = parse_auth_config({"type": "basic", "protectedPaths": ["/admin"]})
        nested = parse_auth_config({"type": "basic", "pathPolicy": {"publicPaths": ["/"]}})
        assert flat.path_policy == PathPolicy(("/admin",), ())
        assert nested.path_policy == PathPolicy((), ("/",))
        assert flat.is_smart and nested.is_smart

    def test_invalid_json(self):
        with pytest.raises(AuthConfigError):
            parse_auth_config("{not json")

    def test_unknown_type_is_value_error(self):
        with pytest.raises(ValueError):
            parse_auth_config({"type": "kerberos"})

    def test_non_object(self):
        with pytest.raises(AuthConfigError):
            parse_auth_config("[1, 2]")

    def test_to_dict_round_trip(self):
        original = FormAuthConfig(
            domain="site.test", login_url="http://site.test/login", username="u", password="p",
            path_policy=PathPolicy(("/secret",), ("/",)),
        )
        assert parse_auth_config(original.to_dict()) == original


# ====================================================================
# 2. Path policy
# ====================================================================

class TestPathPolicy:
    """Smart configs: longest prefix wins, anything unclear is protected."""

    policy = PathPolicy(
        protected_paths=("/courses", "/admin"),
        public_paths=("/", "/courses/catalog", "/admin"),
    )

    def test_public_root(self):
        assert not self.policy.requires_auth("http://site.test/about")

    def test_protected_prefix_beats_shorter_public(self):
        assert self.policy.requires_auth("http://site.test/courses/101")

    def test_longer_public_prefix_beats_protected(self):
        assert not self.policy.requires_auth("http://site.test/courses/catalog/spring")

    def test_tie_is_protected(self):
        assert self.policy.requires_auth("http://site.test/admin/users")

    def test_no_match_is_protected(self):
        policy = PathPolicy(protected_paths=("/secret",), public_paths=("/docs",))
        assert policy.requires_auth("http://site.test/elsewhere")

    def test_segment_boundary(self):
        policy = PathPolicy(protected_paths=(), public_paths=("/docs",))
        assert not policy.requires_auth("http://site.test/docs/intro")
        assert policy.requires_auth("http://site.test/docs-archive")

    def test_config_without_policy_protects_everything(self):
        assert FormAuthConfig().requires_auth("http://site.test/anything")


# ====================================================================
# 3. Credentials
# ====================================================================

class TestResolveCredentials:

    @pytest.fixture(autouse=True)
    def _clean_env(self, monkeypatch):
        for var in ("TEST_USERNAME", "TEST_PASSWORD", "CRAWLER_USERNAME", "CRAWLER_PASSWORD"):
            monkeypatch.delenv(var, raising=False)

    def test_complete_creds_untouched(self, monkeypatch):
        monkeypatch.setenv("TEST_USERNAME", "env-user")
        creds = resolve_credentials(Credentials("cfg-user", "cfg-pw"))
        assert creds == Credentials("cfg-user", "cfg-pw")

    def test_test_prefix_before_crawler(self, monkeypatch):
        monkeypatch.setenv("TEST_USERNAME", "t-user")
        monkeypatch.setenv("CRAWLER_USERNAME", "c-user")
        monkeypatch.setenv("CRAWLER_PASSWORD", "c-pw")
        creds = resolve_credentials()
        assert creds == Credentials("t-user", "c-pw")

    def test_missing_stays_incomplete(self):
        assert not resolve_credentials(Credentials(username="only-user")).is_complete


# ====================================================================
# 4. Store
# ====================================================================

class TestAuthStateStore:

    def _touch(self, store, name, payload):
        store.state_dir.mkdir(parents=True, exist_ok=True)
        path = store.state_dir / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return path

    def test_newest_live_session_wins(self, tmp_path):
        store = AuthStateStore(str(tmp_path))
        self._touch(store, "live-session-site.test-1000.json", {"cookies": [{}]})
        newest = self._touch(store, "live-session-site.test-3000.json", {"cookies": [{}]})
        self._touch(store, "live-session-other.test-9000.json", {"cookies": [{}]})
        assert store.latest_live_session("site.test") == newest

    def test_missing_directory(self, tmp_path):
        store = AuthStateStore(str(tmp_path / "absent"))
        assert store.list_artifacts() == []
        assert store.latest_live_session("site.test") is None
        assert store.latest_auth_config("site.test") is None

    def test_unrelated_files_ignored(self, tmp_path):
        store = AuthStateStore(str(tmp_path))
        self._touch(store, "notes.json", {})
        self._touch(store, "live-session-site.test-latest.json", {})
        assert store.list_artifacts() == []

    def test_usable_session_needs_cookies(self, tmp_path):
        store = AuthStateStore(str(tmp_path))
        good = self._touch(store, "a.json", {"cookies": [{"name": "sid"}]})
        empty = self._touch(store, "b.json", {"cookies": []})
        corrupt = tmp_path / "c.json"
        corrupt.write_text("{", encoding="utf-8")
        assert store.is_usable_session(good)
        assert not store.is_usable_session(empty)
        assert not store.is_usable_session(corrupt)

    def test_save_and_load_auth_config(self, tmp_path):
        store = AuthStateStore(str(tmp_path))
        config = ApiKeyAuthConfig(domain="api.site.test", headers={"X-Key": "secret"})
        path = store.save_auth_config(config)

        assert path.name.startswith("auth-config-api.site.test-")
        assert json.loads(path.read_text(encoding="utf-8"))["savedAt"] > 0
        loaded = store.latest_auth_config("api.site.test")
        assert loaded == config

    def test_save_requires_domain(self, tmp_path):
        with pytest.raises(AuthConfigError):
            AuthStateStore(str(tmp_path)).save_auth_config(FormAuthConfig())

    def test_clear_one_domain(self, tmp_path):
        store = AuthStateStore(str(tmp_path))
        self._touch(store, "live-session-site.test-1.json", {})
        self._touch(store, "auth-config-site.test-2.json", {})
        self._touch(store, "live-session-other.test-3.json", {})
        assert store.clear("site.test") == 2
        assert [a.domain for a in store.list_artifacts()] == ["other.test"]
        assert store.clear() == 1


# ====================================================================
# 5. Backend lookup
# ====================================================================

class _Response:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"HTTP {self.status}")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class _Session:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        return self.response


class TestAuthConfigClient:

    def _fetch(self, response, domain="site.test"):
        session = _Session(response)
        client = AuthConfigClient("http://backend.test/", session=session)
        return asyncio.run(client.fetch(domain)), session

    def test_exact_domain_preferred(self):
        payload = {"success": True, "data": [
            {"domain": "other.test", "type": "sso"},
            {"domain": "site.test", "type": "api_key", "headers": {"K": "v"}},
        ]}
        config, session = self._fetch(_Response(payload))
        assert isinstance(config, ApiKeyAuthConfig)
        assert session.calls == [("http://backend.test/api/auth/configs", {"domain": "site.test"})]

    def test_first_entry_when_no_exact_match(self):
        assert pick_config([{"domain": "a.test"}, {"domain": "b.test"}], "c.test") == {"domain": "a.test"}

    def test_data_must_be_a_list(self):
        assert pick_config({"domain": "site.test", "type": "basic"}, "site.test") is None

    @pytest.mark.parametrize("response", [
        _Response({"success": False, "data": []}),
        _Response({"success": True, "data": []}),
        _Response({}, status=500),
        _Response(ValueError("not json")),
        _Response({"success": True, "data": [{"type": "kerberos"}]}),
        _Response({"success": True, "data": {"domain": "site.test", "type": "basic"}}),
    ])
    def test_problems_mean_no_config(self, response):
        config, _ = self._fetch(response)
        assert config is None
