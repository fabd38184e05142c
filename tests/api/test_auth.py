"""Tests for authentication providers."""

import time

import jwt
import pytest
from flask import Flask

from annotator_host.api.auth import APIKeyProvider, AuthState, JWTProvider, User


class TestJWTProvider:
    """Tests for JWTProvider."""

    def test_issued_token_verifies(self):
        """Test a token issued by the provider verifies."""
        provider = JWTProvider("secret")
        token = provider.issue_token("user-1", ["admin", "edit"], email="ada@example.com")

        user = provider.verify_token(token)

        assert user.id == "user-1"
        assert user.email == "ada@example.com"
        assert user.has_role("admin")
        assert user.provider == "jwt"

    def test_comma_separated_roles(self):
        """Test roles can be given as a comma-separated string."""
        provider = JWTProvider("secret")
        token = jwt.encode({"sub": "u", "roles": "edit, view"}, "secret", algorithm="HS256")

        assert provider.verify_token(token).roles == frozenset({"edit", "view"})

    def test_wrong_secret(self):
        """Test a token signed with another secret is rejected."""
        token = JWTProvider("other").issue_token("u", ["admin"])
        assert JWTProvider("secret").verify_token(token) is None

    def test_expired(self):
        """Test an expired token is rejected."""
        provider = JWTProvider("secret")
        token = provider.issue_token("u", ["admin"], exp=int(time.time()) - 60)
        assert provider.verify_token(token) is None

    def test_garbage(self):
        """Test a malformed token is rejected."""
        assert JWTProvider("secret").verify_token("not-a-token") is None


class TestAPIKeyProvider:
    """Tests for APIKeyProvider."""

    @pytest.fixture
    def app(self):
        return Flask(__name__)

    def test_valid_key(self, app):
        """Test the configured API key authenticates."""
        provider = APIKeyProvider("key", ["admin"])

        with app.test_request_context(headers={"X-User-Email": "ops@example.com"}):
            user = provider.verify_token("key")

        assert user.email == "ops@example.com"
        assert user.roles == frozenset({"admin"})

    def test_invalid_key(self, app):
        """Test a wrong API key doesn't authenticate."""
        with app.test_request_context():
            assert APIKeyProvider("key", ["admin"]).verify_token("wrong") is None

    def test_no_key_configured(self, app):
        """Without a configured key nothing authenticates."""
        with app.test_request_context():
            assert APIKeyProvider("", ["admin"]).verify_token("") is None


class TestUser:
    """Tests for User."""

    def test_to_dict(self):
        """Test converting a user to a dictionary."""
        user = User(id="u", email="u@example.com", roles=["edit", "admin"], provider="jwt")

        assert user.to_dict()["roles"] == ["admin", "edit"]
        assert str(user) == "u@example.com"


class TestAuthState:
    """Tests for AuthState."""

    def test_providers_from_config(self, host_config):
        """Providers are set up for the configured credentials only."""
        state = AuthState(host_config)

        assert set(state.providers) == {"jwt", "api_key"}
        assert vars(state).keys() == {"config", "providers"}

    def test_no_credentials_configured(self, host_config):
        """Test auth state without a JWT secret or API key."""
        host_config.jwt_secret = ""
        host_config.api_key = ""

        assert AuthState(host_config).providers == {}
