"""
Authentication for the annotator host.

Supports:
- Session token - HS256 JWT in the 'auth_token' cookie or a Bearer header,
  carrying the user's roles in a 'roles' claim
- API Key - For programmatic access (configure via .env)

Role checks happen where the role is known: each web-app requires its own role.
"""

import functools
import hmac
import logging
from abc import ABC, abstractmethod
from typing import Any

import jwt
from flask import current_app, g, jsonify, request

from annotator_host.config import HostConfig

logger = logging.getLogger(__name__)

EXTENSION_KEY = "annotator_host.auth"
JWT_ALGORITHM = "HS256"


class User:
    """Authenticated user information."""

    def __init__(
        self,
        id: str,
        email: str | None = None,
        name: str | None = None,
        roles: list[str] | None = None,
        provider: str = "unknown"
    ):
        self.id = id
        self.email = email
        self.name = name
        self.roles = frozenset(roles or [])
        self.provider = provider

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "roles": sorted(self.roles),
            "provider": self.provider
        }

    def __str__(self) -> str:
        return self.email or self.id


class AuthProvider(ABC):
    """
    Base class for authentication providers.

    This abstraction allows swapping auth providers without changing application code.
    """

    @abstractmethod
    def verify_token(self, token: str) -> User | None:
        """
        Verify an authentication token.

        Args:
            token: The token to verify

        Returns:
            User object if valid, None otherwise
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging/debugging."""
        pass


class JWTProvider(AuthProvider):
    """Session token provider (HS256 JWT)."""

    def __init__(self, secret: str):
        self.secret = secret

    @property
    def name(self) -> str:
        return "jwt"

    def verify_token(self, token: str) -> User | None:
        try:
            claims = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError as e:
            logger.debug("Rejected session token: %s", e)
            return None

        roles = claims.get("roles") or []
        if isinstance(roles, str):
            roles = [r.strip() for r in roles.split(",") if r.strip()]
        return User(
            id=claims.get("sub", ""),
            email=claims.get("email"),
            name=claims.get("name"),
            roles=roles,
            provider="jwt"
        )

    def issue_token(self, user_id: str, roles: list[str], **claims) -> str:
        """Create a session token (used by tests and administration scripts)."""
        payload = {"sub": user_id, "roles": list(roles), **claims}
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)


class APIKeyProvider(AuthProvider):
    """API Key authentication provider for programmatic access."""

    def __init__(self, api_key: str, roles: list[str]):
        self.api_key = api_key
        self.roles = roles

    @property
    def name(self) -> str:
        return "api_key"

    def verify_token(self, token: str) -> User | None:
        if not self.api_key:
            return None

        if hmac.compare_digest(token, self.api_key):
            user_name = request.headers.get("X-User-Name", "API User")
            user_email = request.headers.get("X-User-Email")
            return User(
                id=user_email or "api-user",
                email=user_email,
                name=user_name,
                roles=self.roles,
                provider="api_key"
            )

        return None


class AuthState:
    """Auth configuration and providers of one application."""

    def __init__(self, config: HostConfig):
        self.config = config
        self.providers: dict[str, AuthProvider] = {}

        if config.jwt_secret:
            self.providers["jwt"] = JWTProvider(config.jwt_secret)
        if config.api_key:
            self.providers["api_key"] = APIKeyProvider(config.api_key, config.api_key_roles)


def init_auth(app, config: HostConfig) -> AuthState:
    """
    Initialize authentication.

    Call this at application startup.
    """
    state = AuthState(config)
    app.extensions[EXTENSION_KEY] = state

    provider_names = list(state.providers)
    if config.allow_anonymous:
        provider_names.append("anonymous")
    logger.info("Auth providers: %s", ", ".join(provider_names) or "None")
    return state


def get_auth_state() -> AuthState:
    return current_app.extensions[EXTENSION_KEY]


def authenticate_request() -> tuple[User | None, str | None]:
    """
    Authenticate the current request using available providers.

    Checks (in order):
    1. httpOnly cookie
    2. Authorization header
    3. API key header

    Returns:
        tuple: (User, provider_name) or (None, None) if not authenticated
    """
    state = get_auth_state()

    token = request.cookies.get("auth_token")
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]

    if token and "jwt" in state.providers:
        user = state.providers["jwt"].verify_token(token)
        if user:
            return user, "jwt"

    api_key = request.headers.get("X-API-Key")
    if api_key and "api_key" in state.providers:
        user = state.providers["api_key"].verify_token(api_key)
        if user:
            return user, "api_key"

    return None, None


def require_auth(f):
    """
    Decorator to require authentication on a route.

    Usage:
        @bp.route('/api/admin/annotators')
        @require_auth
        def list_annotators():
            user = g.user  # User email/id string
            roles = g.roles  # Roles of the user
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        state = get_auth_state()

        user, provider = authenticate_request()

        if user:
            g.user = str(user)
            g.user_info = user
            g.roles = user.roles
            g.auth_provider = provider
            return f(*args, **kwargs)

        if state.config.allow_anonymous:
            g.user = "anonymous"
            g.user_info = None
            g.roles = frozenset(state.config.anonymous_roles)
            g.auth_provider = None
            return f(*args, **kwargs)

        return jsonify({
            "error": "Authentication required",
            "message": "Please sign in to access this resource."
        }), 401

    return decorated


def require_role(role: str):
    """Decorator to require a role (implies require_auth)."""
    def decorator(f):
        @functools.wraps(f)
        @require_auth
        def decorated(*args, **kwargs):
            if role not in g.roles:
                return jsonify({
                    "error": "Forbidden",
                    "message": f"The '{role}' role is required."
                }), 403
            return f(*args, **kwargs)
        return decorated
    return decorator
