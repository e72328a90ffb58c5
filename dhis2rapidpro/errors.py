"""Error types for the DHIS2-to-RapidPro bridge.

Exception Hierarchy:
    BridgeError (base)
    ├── AuthenticationError - request could not be authenticated
    │   ├── UnauthenticatedError - no credential presented
    │   └── InvalidCredentialError - credential presented but rejected
    ├── StoreUnavailableError - token store unreachable or timed out
    ├── MalformedConfigurationError - unusable settings at startup
    └── ApplicationTerminatedError - startup connection test failed
"""

from typing import Any


class BridgeError(Exception):
    """Base exception for all bridge errors.

    Attributes:
        message: Human-readable error message.
        details: Additional error details.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class AuthenticationError(BridgeError):
    """Request could not be authenticated.

    Every subclass produces the same response for the caller; the subclass
    only tells operators which case occurred.

    Attributes:
        path: Request path that was rejected.
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        *,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.path = path

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["path"] = self.path
        return base


class UnauthenticatedError(AuthenticationError):
    """No credential was presented on a path that requires one."""


class InvalidCredentialError(AuthenticationError):
    """A credential was presented but does not match."""


class StoreUnavailableError(BridgeError):
    """Token store could not be read or written.

    Attributes:
        operation: Store operation that failed ("load" or "save").
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.operation = operation

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["operation"] = self.operation
        return base


class MalformedConfigurationError(BridgeError):
    """Settings are missing or conflicting.

    Attributes:
        setting: Name of the offending setting.
    """

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.setting = setting

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        base = super().to_dict()
        base["setting"] = self.setting
        return base


class ApplicationTerminatedError(BridgeError):
    """Startup was aborted because a connection test failed."""
