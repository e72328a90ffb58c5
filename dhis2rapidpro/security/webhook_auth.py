"""Webhook token verification.

RapidPro calls the webhook with the generated token in the Authorization
header, either as ``Token <token>`` or ``Bearer <token>``. The presented
token is hashed and compared in constant time against the stored digest.
"""

import hmac

import structlog

from dhis2rapidpro.errors import (
    InvalidCredentialError,
    StoreUnavailableError,
    UnauthenticatedError,
)
from dhis2rapidpro.security.tokens import TokenProvisioner, hash_token

logger = structlog.get_logger(__name__)

AUTHORIZATION_HEADER = "Authorization"
ACCEPTED_SCHEMES = ("token", "bearer")

WEBHOOK_PRINCIPAL = "webhook"


def extract_credential(authorization: str | None) -> str | None:
    """Extract the presented token from an Authorization header value.

    Args:
        authorization: Raw header value, or None if the header is absent.

    Returns:
        The token, or None if the header is absent, uses another scheme or
        carries an empty value.
    """
    if not authorization:
        return None

    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() not in ACCEPTED_SCHEMES:
        return None

    credential = parts[1].strip()
    return credential or None


class WebhookTokenVerifier:
    """Verifies presented webhook tokens against the provisioned digest."""

    def __init__(self, provisioner: TokenProvisioner) -> None:
        """Initialize the verifier.

        Args:
            provisioner: Source of the current token digest.
        """
        self.provisioner = provisioner
        self._logger = logger.bind(component="webhook_token_verifier")

    async def verify(self, authorization: str | None, *, path: str | None = None) -> str:
        """Authenticate a webhook request.

        The digest is fetched before the credential is inspected, so the
        first request after start-up provisions a token even when it is
        anonymous.

        Args:
            authorization: Raw Authorization header value.
            path: Request path, for error context.

        Returns:
            The principal name for the authenticated request.

        Raises:
            UnauthenticatedError: If no credential was presented or the
                store could not be consulted.
            InvalidCredentialError: If the credential does not match.
        """
        try:
            expected = await self.provisioner.get_or_create_digest()
        except StoreUnavailableError as e:
            self._logger.error(
                "webhook_auth_store_unavailable",
                operation=e.operation,
                error=e.message,
                path=path,
            )
            raise UnauthenticatedError(path=path, details={"reason": "store_unavailable"}) from e

        credential = extract_credential(authorization)
        if credential is None:
            raise UnauthenticatedError(path=path, details={"reason": "missing_credential"})

        if not hmac.compare_digest(hash_token(credential), expected):
            raise InvalidCredentialError(path=path, details={"reason": "digest_mismatch"})

        return WEBHOOK_PRINCIPAL
