"""
Unit tests for access control.

Tests cover:
- Role and tenant scope checks
- Master key and bearer authentication
- Secret cache fetch-once behaviour and failure handling
"""

import asyncio

import pytest
from botocore.exceptions import ClientError

from backend.siteengine.access import (
    ALL_TENANTS,
    EDITORS,
    GLOBAL_ONLY,
    ROBOT_SUBJECT,
    TENANT_ADMINS,
    AccessPolicy,
    Authorizer,
    Principal,
    Role,
    SecretCache,
    TokenVerificationError,
    parse_master_key,
)
from backend.siteengine.errors import AuthorizationError


class TestAccessPolicy:
    """Tests for AccessPolicy.require_role."""

    @pytest.fixture
    def policy(self):
        return AccessPolicy()

    def test_matching_role_and_tenant(self, policy, editor):
        """An editor may act on their own tenant."""
        policy.require_role(editor, EDITORS, "acme")

    def test_cross_tenant_rejected(self, policy, editor):
        """Scope must equal the target tenant."""
        with pytest.raises(AuthorizationError):
            policy.require_role(editor, EDITORS, "other")

    def test_role_not_allowed(self, policy, editor):
        """Editors cannot perform admin operations."""
        with pytest.raises(AuthorizationError):
            policy.require_role(editor, TENANT_ADMINS, "acme")

    def test_global_admin_passes_everything(self, policy, global_admin):
        """Global admins bypass role sets and scope."""
        policy.require_role(global_admin, GLOBAL_ONLY)
        policy.require_role(global_admin, TENANT_ADMINS, "any-tenant")

    def test_global_only_rejects_tenant_admin(self, policy, tenant_admin):
        """Only global admins may provision."""
        with pytest.raises(AuthorizationError):
            policy.require_role(tenant_admin, GLOBAL_ONLY)

    def test_missing_role_defaults_to_editor(self, policy):
        """A roleless principal is an editor, never more."""
        principal = Principal("u9", role=None, tenant_id="acme")
        assert principal.effective_role == Role.EDITOR.value

        policy.require_role(principal, EDITORS, "acme")
        with pytest.raises(AuthorizationError):
            policy.require_role(principal, TENANT_ADMINS, "acme")

    def test_missing_scope_rejected(self, policy):
        """A tenant-scoped check needs a tenant scope."""
        with pytest.raises(AuthorizationError):
            policy.require_role(Principal("u9", "EDITOR"), EDITORS, "acme")

    def test_no_principal(self, policy):
        """Anonymous callers are rejected."""
        with pytest.raises(AuthorizationError):
            policy.require_role(None, EDITORS, "acme")

    def test_string_roles_accepted(self, policy, editor):
        """Role sets may use plain strings."""
        policy.require_role(editor, ["EDITOR", "CUSTOM"], "acme")


class FakeVerifier:
    def __init__(self):
        self.tokens = {}

    async def verify(self, token):
        if token not in self.tokens:
            raise TokenVerificationError("unknown token")
        return self.tokens[token]


def static_loader(value, calls=None):
    async def load():
        if calls is not None:
            calls.append(1)
        return value

    return load


class TestAuthorizer:
    """Tests for Authorizer.authenticate."""

    @pytest.fixture
    def verifier(self, editor):
        verifier = FakeVerifier()
        verifier.tokens["good-token"] = editor
        return verifier

    @pytest.fixture
    def authorizer(self, verifier):
        return Authorizer(SecretCache(static_loader("master-key")), verifier)

    @pytest.mark.asyncio
    async def test_master_key_is_robot(self, authorizer):
        """The master key maps to the global admin robot."""
        principal = await authorizer.authenticate(api_key="master-key")

        assert principal.subject_id == ROBOT_SUBJECT
        assert principal.is_global_admin
        assert principal.tenant_id == ALL_TENANTS

    @pytest.mark.asyncio
    async def test_bearer_token(self, authorizer, editor):
        """Bearer tokens go through the verifier, prefix optional."""
        assert await authorizer.authenticate(bearer="Bearer good-token") == editor
        assert await authorizer.authenticate(bearer="good-token") == editor

    @pytest.mark.asyncio
    async def test_wrong_key_falls_back_to_bearer(self, authorizer, editor):
        """A non-matching api key does not block a valid token."""
        principal = await authorizer.authenticate(api_key="nope", bearer="Bearer good-token")
        assert principal == editor

    @pytest.mark.asyncio
    async def test_wrong_key_alone(self, authorizer):
        """A wrong api key without a token is rejected."""
        with pytest.raises(AuthorizationError):
            await authorizer.authenticate(api_key="nope")

    @pytest.mark.asyncio
    async def test_invalid_token(self, authorizer):
        """Verifier failures become AuthorizationError."""
        with pytest.raises(AuthorizationError):
            await authorizer.authenticate(bearer="Bearer bad-token")

    @pytest.mark.asyncio
    async def test_no_credentials(self, authorizer):
        """Missing credentials are rejected."""
        with pytest.raises(AuthorizationError):
            await authorizer.authenticate()

    @pytest.mark.asyncio
    async def test_no_verifier(self):
        """Without a verifier only the master key works."""
        authorizer = Authorizer(SecretCache(static_loader("master-key")))
        with pytest.raises(AuthorizationError):
            await authorizer.authenticate(bearer="Bearer good-token")

    @pytest.mark.asyncio
    async def test_no_master_key_configured(self, verifier):
        """An unset master key never matches."""
        authorizer = Authorizer(SecretCache(None), verifier)
        with pytest.raises(AuthorizationError):
            await authorizer.authenticate(api_key="")


class TestSecretCache:
    """Tests for SecretCache and parse_master_key."""

    def test_parse_json_secret(self):
        """JSON secrets carry the key in apiKey."""
        assert parse_master_key('{"apiKey": "sk_1"}') == "sk_1"

    def test_parse_raw_secret(self):
        """Non-JSON secrets are the key itself."""
        assert parse_master_key("sk_raw") == "sk_raw"

    @pytest.mark.asyncio
    async def test_fetch_once(self):
        """Concurrent callers share one fetch."""
        calls = []
        cache = SecretCache(static_loader("k", calls))

        values = await asyncio.gather(*(cache.get() for _ in range(5)))

        assert values == ["k"] * 5
        assert cache.fetch_count == 1
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_invalidate_refetches(self):
        """Rotation drops the cached value."""
        cache = SecretCache(static_loader("k"))
        await cache.get()
        cache.invalidate()
        await cache.get()

        assert cache.fetch_count == 2

    @pytest.mark.asyncio
    async def test_failure_not_cached(self):
        """A failed fetch returns None and is retried next time."""
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise ClientError(
                    {"Error": {"Code": "ResourceNotFoundException", "Message": "missing"}},
                    "GetSecretValue",
                )
            return "k"

        cache = SecretCache(flaky)
        assert await cache.get() is None
        assert await cache.get() == "k"
        assert cache.fetch_count == 2
