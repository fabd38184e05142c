"""
Annotator host configuration.

Environment variables:
    ANNOTATOR_DIR: Directory containing annotator modules (default: "plugins")
    DISABLED_ANNOTATORS: Comma-separated annotator IDs to treat as not installed
    STORAGE_DIR: Local directory for task parameters and layers (default: "data")
    GOOGLE_CLOUD_PROJECT: When set, Firestore is used instead of local storage
    TASK_WEBAPP_TTL_SECONDS: How long task web-app instances are kept (default: 3600)
    PROGRESS_POLL_INTERVAL_MS: Polling interval of the progress page (default: 500)
    API_KEY: API key for programmatic access
    API_KEY_ROLES: Roles granted to API key callers (default: "admin,edit")
    JWT_SECRET: Secret for verifying HS256 session tokens
    AUTH_ALLOW_ANONYMOUS: Allow unauthenticated access (development only)
    ANONYMOUS_ROLES: Roles granted to anonymous callers
    RATE_LIMIT_ENABLED: Whether rate limiting is applied (default: "true")
    RATE_LIMIT_STORAGE_URI: Flask-Limiter storage (default: "memory://")
    RATE_LIMITS: Default rate limits, ';' separated (default: "50 per second")
    LOG_LEVEL: Root log level (default: "INFO")
"""

import os


def _split(value: str, separator: str = ",") -> list[str]:
    return [item.strip() for item in value.split(separator) if item.strip()]


class HostConfig:
    """
    Configuration for the annotator host.

    Reads from environment variables; individual values can be overridden
    with keyword arguments (mostly useful in tests).
    """

    def __init__(self, **overrides) -> None:
        # Annotator modules
        self.annotator_dir = os.getenv("ANNOTATOR_DIR", "plugins")
        self.disabled_annotators = [
            a.lower() for a in _split(os.getenv("DISABLED_ANNOTATORS", ""))
        ]

        # Persistence
        self.storage_dir = os.getenv("STORAGE_DIR", "data")
        self.google_cloud_project = os.getenv("GOOGLE_CLOUD_PROJECT", "")

        # Web-apps
        self.task_webapp_ttl = float(os.getenv("TASK_WEBAPP_TTL_SECONDS", "3600"))
        self.poll_interval_ms = int(os.getenv("PROGRESS_POLL_INTERVAL_MS", "500"))

        # Auth
        self.api_key = os.getenv("API_KEY", "")
        self.api_key_roles = _split(os.getenv("API_KEY_ROLES", "admin,edit"))
        self.jwt_secret = os.getenv("JWT_SECRET", "")
        self.allow_anonymous = os.getenv("AUTH_ALLOW_ANONYMOUS", "false").lower() == "true"
        self.anonymous_roles = _split(os.getenv("ANONYMOUS_ROLES", ""))

        # Rate limiting
        self.rate_limit_storage_uri = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
        self.rate_limit_enabled = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"
        self.rate_limits = _split(os.getenv("RATE_LIMITS", "50 per second"), ";")

        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        for name, value in overrides.items():
            if not hasattr(self, name):
                raise AttributeError(f"Unknown configuration setting: {name}")
            setattr(self, name, value)

    @property
    def use_firestore(self) -> bool:
        """Whether task parameters and layers are kept in Firestore."""
        return bool(self.google_cloud_project)

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of errors.

        Returns:
            List of error strings (empty if valid)
        """
        errors = []

        if not os.path.isdir(self.annotator_dir):
            errors.append(f"ANNOTATOR_DIR does not exist: {self.annotator_dir}")
        if self.task_webapp_ttl <= 0:
            errors.append("TASK_WEBAPP_TTL_SECONDS must be positive")
        if self.poll_interval_ms <= 0:
            errors.append("PROGRESS_POLL_INTERVAL_MS must be positive")
        if not (self.api_key or self.jwt_secret or self.allow_anonymous):
            errors.append("One of API_KEY, JWT_SECRET or AUTH_ALLOW_ANONYMOUS is required")

        return errors

    def to_dict(self) -> dict:
        """Return safe (no secrets) configuration summary."""
        return {
            "annotator_dir": self.annotator_dir,
            "disabled_annotators": self.disabled_annotators,
            "storage": "firestore" if self.use_firestore else "local",
            "task_webapp_ttl": self.task_webapp_ttl,
            "poll_interval_ms": self.poll_interval_ms,
            "api_key_configured": bool(self.api_key),
            "jwt_configured": bool(self.jwt_secret),
            "allow_anonymous": self.allow_anonymous,
        }
