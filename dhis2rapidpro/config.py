"""Application configuration settings.

This module provides centralized configuration management using environment
variables with sensible defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dhis2rapidpro.errors import MalformedConfigurationError

MANAGEMENT_AUTH_MODES = ("basic", "none")
WEBHOOK_AUTH_MODES = ("token", "none")
LOG_FORMATS = ("console", "json")


def _get_bool_env(name: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable.

    Args:
        name: Environment variable name.
        default: Default value if not set.

    Returns:
        Boolean value from environment.
    """
    value = os.getenv(name, "").lower()
    if value in ("true", "1", "yes", "on"):
        return True
    if value in ("false", "0", "no", "off"):
        return False
    return default


def _get_float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise MalformedConfigurationError(
            f"{name} must be a number, got {value!r}", setting=name
        ) from e


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise MalformedConfigurationError(
            f"{name} must be an integer, got {value!r}", setting=name
        ) from e


@dataclass
class Settings:
    """Application settings loaded from environment variables.

    Attributes:
        MANAGEMENT_AUTH: "basic" guards management paths with session/basic auth,
            "none" leaves them open.
        WEBHOOK_SECURITY_AUTH: "token" guards the webhook with the generated
            token, None or "none" leaves it open.
        MANAGEMENT_USERNAME: Operator username for management paths.
        MANAGEMENT_PASSWORD: Operator password for management paths.
        SESSION_SECRET_KEY: Key signing management session cookies.
        SESSION_MAX_AGE_SECONDS: Lifetime of a management session.
        DATABASE_PATH: SQLite database holding the TOKEN table.
        TOKEN_STORE_TIMEOUT_SECONDS: Bound on a single token store round trip.
        DHIS2_API_URL: DHIS2 Web API base URL.
        DHIS2_API_USERNAME: DHIS2 username (basic auth).
        DHIS2_API_PASSWORD: DHIS2 password (basic auth).
        DHIS2_API_PAT: DHIS2 personal access token, preferred over basic auth.
        RAPIDPRO_API_URL: RapidPro API base URL.
        RAPIDPRO_API_TOKEN: RapidPro API token.
        CONNECTION_TEST_ON_STARTUP: Test DHIS2 and RapidPro before serving.
        LOG_LEVEL: Logging level.
        LOG_FORMAT: "console" or "json".
    """

    # Security
    MANAGEMENT_AUTH: str = "basic"
    WEBHOOK_SECURITY_AUTH: str | None = None
    MANAGEMENT_USERNAME: str = "admin"
    MANAGEMENT_PASSWORD: str | None = None
    SESSION_SECRET_KEY: str | None = None
    SESSION_MAX_AGE_SECONDS: int = 1800

    # Persistence
    DATABASE_PATH: Path = Path("data/dhis2rapidpro.db")
    TOKEN_STORE_TIMEOUT_SECONDS: float = 5.0

    # DHIS2
    DHIS2_API_URL: str | None = None
    DHIS2_API_USERNAME: str | None = None
    DHIS2_API_PASSWORD: str | None = None
    DHIS2_API_PAT: str | None = None

    # RapidPro
    RAPIDPRO_API_URL: str | None = None
    RAPIDPRO_API_TOKEN: str | None = None

    CONNECTION_TEST_ON_STARTUP: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    @property
    def management_auth_enabled(self) -> bool:
        """Whether management paths require an authenticated operator."""
        return self.MANAGEMENT_AUTH.lower() == "basic"

    @property
    def webhook_token_auth_enabled(self) -> bool:
        """Whether the webhook path requires the generated token."""
        return (self.WEBHOOK_SECURITY_AUTH or "").lower() == "token"

    def validate(self) -> None:
        """Check the settings for missing or conflicting values.

        Raises:
            MalformedConfigurationError: If any setting is unusable. The
                process must not serve traffic in that case.
        """
        if self.MANAGEMENT_AUTH.lower() not in MANAGEMENT_AUTH_MODES:
            raise MalformedConfigurationError(
                f"MANAGEMENT_AUTH must be one of {', '.join(MANAGEMENT_AUTH_MODES)}, "
                f"got {self.MANAGEMENT_AUTH!r}",
                setting="MANAGEMENT_AUTH",
            )

        webhook_auth = self.WEBHOOK_SECURITY_AUTH
        if webhook_auth is not None and webhook_auth.lower() not in WEBHOOK_AUTH_MODES:
            raise MalformedConfigurationError(
                f"WEBHOOK_SECURITY_AUTH must be one of {', '.join(WEBHOOK_AUTH_MODES)}, "
                f"got {webhook_auth!r}",
                setting="WEBHOOK_SECURITY_AUTH",
            )

        if self.management_auth_enabled:
            if not self.MANAGEMENT_USERNAME:
                raise MalformedConfigurationError(
                    "MANAGEMENT_USERNAME is required when MANAGEMENT_AUTH=basic",
                    setting="MANAGEMENT_USERNAME",
                )
            if not self.MANAGEMENT_PASSWORD:
                raise MalformedConfigurationError(
                    "MANAGEMENT_PASSWORD is required when MANAGEMENT_AUTH=basic",
                    setting="MANAGEMENT_PASSWORD",
                )

        if self.SESSION_MAX_AGE_SECONDS <= 0:
            raise MalformedConfigurationError(
                "SESSION_MAX_AGE_SECONDS must be positive",
                setting="SESSION_MAX_AGE_SECONDS",
            )

        if self.TOKEN_STORE_TIMEOUT_SECONDS <= 0:
            raise MalformedConfigurationError(
                "TOKEN_STORE_TIMEOUT_SECONDS must be positive",
                setting="TOKEN_STORE_TIMEOUT_SECONDS",
            )

        if self.DHIS2_API_PAT and (self.DHIS2_API_USERNAME or self.DHIS2_API_PASSWORD):
            raise MalformedConfigurationError(
                "Set either DHIS2_API_PAT or DHIS2_API_USERNAME/DHIS2_API_PASSWORD, not both",
                setting="DHIS2_API_PAT",
            )

        if self.LOG_FORMAT.lower() not in LOG_FORMATS:
            raise MalformedConfigurationError(
                f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {self.LOG_FORMAT!r}",
                setting="LOG_FORMAT",
            )

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables.

        Returns:
            Settings instance populated from environment.
        """
        return cls(
            MANAGEMENT_AUTH=os.getenv("MANAGEMENT_AUTH", "basic"),
            WEBHOOK_SECURITY_AUTH=os.getenv("WEBHOOK_SECURITY_AUTH"),
            MANAGEMENT_USERNAME=os.getenv("MANAGEMENT_USERNAME", "admin"),
            MANAGEMENT_PASSWORD=os.getenv("MANAGEMENT_PASSWORD"),
            SESSION_SECRET_KEY=os.getenv("SESSION_SECRET_KEY"),
            SESSION_MAX_AGE_SECONDS=_get_int_env("SESSION_MAX_AGE_SECONDS", 1800),
            DATABASE_PATH=Path(os.getenv("DATABASE_PATH", "data/dhis2rapidpro.db")),
            TOKEN_STORE_TIMEOUT_SECONDS=_get_float_env("TOKEN_STORE_TIMEOUT_SECONDS", 5.0),
            DHIS2_API_URL=os.getenv("DHIS2_API_URL"),
            DHIS2_API_USERNAME=os.getenv("DHIS2_API_USERNAME"),
            DHIS2_API_PASSWORD=os.getenv("DHIS2_API_PASSWORD"),
            DHIS2_API_PAT=os.getenv("DHIS2_API_PAT"),
            RAPIDPRO_API_URL=os.getenv("RAPIDPRO_API_URL"),
            RAPIDPRO_API_TOKEN=os.getenv("RAPIDPRO_API_TOKEN"),
            CONNECTION_TEST_ON_STARTUP=_get_bool_env("CONNECTION_TEST_ON_STARTUP", default=True),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO"),
            LOG_FORMAT=os.getenv("LOG_FORMAT", "console"),
        )
