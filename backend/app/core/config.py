"""Application configuration loaded from environment variables.

Settings for the database, CORS, staff authentication, customer portal
token lifetimes and portal rate limits. Uses pydantic-settings for
validation and .env file support.
"""

import uuid
from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "flowtrade_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "flowtrade"
    database_user: str = "flowtrade_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    # Production: Set ALLOWED_ORIGINS to specific domain(s)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Public site URL used for portal links and document redirects
    app_url: str = "https://flowtrade.com.au"

    # Staff authentication
    # Local-first mode: DEFAULT_ORG_ID provides org context without JWT
    # Hosted mode: auth_enabled=True, JWT cookie required on staff endpoints
    default_org_id: uuid.UUID | None = None
    auth_enabled: bool = False
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "flowtrade"
    auth_cookie_name: str = "flowtrade.session-token"

    # Portal tokens (lifetimes in days)
    portal_quote_token_days: int = 7
    portal_invoice_token_days: int = 30
    portal_default_token_days: int = 7

    # Portal audit log writer
    portal_audit_queue_size: int = 1000

    # Rate Limiting (Security)
    # Portal limits are fixed-window counters keyed by client IP.
    portal_rate_limit_requests: int = 10
    portal_rate_limit_window_seconds: int = 60
    portal_pay_rate_limit_requests: int = 10
    portal_pay_rate_limit_window_seconds: int = 60
    # Staff endpoints use slowapi, format: "count/period"
    rate_limit_token_issue: str = "30/minute"
    rate_limit_enabled: bool = True  # Disable for testing
    # Reverse proxies in front of the API that append to X-Forwarded-For.
    # 0 means the socket peer is the client and forwarding headers are ignored.
    trusted_proxy_hops: int = 0

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return (
            f"postgresql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Token lifetimes and rate limits must be positive (all environments)
        - Trusted proxy hop count must not be negative
        - CORS must not use wildcard origin (incompatible with credentials)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars when auth is enabled in production
        """
        for name in (
            "portal_quote_token_days",
            "portal_invoice_token_days",
            "portal_default_token_days",
            "portal_rate_limit_requests",
            "portal_rate_limit_window_seconds",
            "portal_pay_rate_limit_requests",
            "portal_pay_rate_limit_window_seconds",
            "portal_audit_queue_size",
        ):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        if self.trusted_proxy_hops < 0:
            msg = (
                "TRUSTED_PROXY_HOPS must not be negative. "
                f"Got: {self.trusted_proxy_hops}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            if self.auth_enabled:
                secret_value = self.auth_secret.get_secret_value()
                if not secret_value:
                    msg = (
                        "AUTH_SECRET must be set when AUTH_ENABLED=true in production. "
                        'Generate with: python -c "import secrets; '
                        'print(secrets.token_hex(32))"'
                    )
                    raise ValueError(msg)
                if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                    msg = (
                        f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                        "characters for adequate security."
                    )
                    raise ValueError(msg)

        return self

    def token_lifetime_days(self, token_type: str) -> int:
        """Default lifetime in days for a newly issued portal token."""
        if token_type == "quote":
            return self.portal_quote_token_days
        if token_type == "invoice":
            return self.portal_invoice_token_days
        return self.portal_default_token_days


settings = Settings()
