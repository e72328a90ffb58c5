"""Webhook token generation and provisioning.

The plaintext token is shown to the operator exactly once, when it is
generated. Only its SHA-256 digest is persisted, so a lost token cannot be
recovered; truncating the TOKEN table makes the next webhook request
provision a new one.
"""

import hashlib
import secrets
from collections.abc import Callable

import structlog

from dhis2rapidpro.errors import StoreUnavailableError
from dhis2rapidpro.security.token_store import TOKEN_TABLE, TokenStore

logger = structlog.get_logger(__name__)

# 32 random bytes = 256 bits of entropy
TOKEN_ENTROPY_BYTES = 32

DISCLOSURE_TEMPLATE = (
    "\n\nUsing generated token for authenticating webhook messages from RapidPro: {token}"
    "\n\nThis token cannot be recovered so it should be kept safe and secure. "
    "This message will NOT appear again unless you truncate the table '{table}' "
    "to generate a new token.\n"
)


def generate_token() -> str:
    """Generate a URL-safe webhook token with 256 bits of entropy."""
    return secrets.token_urlsafe(TOKEN_ENTROPY_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hash a token, returned as lowercase hex."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def log_generated_token(token: str) -> None:
    """Disclose a freshly generated token on the operator log."""
    logger.warning(
        DISCLOSURE_TEMPLATE.format(token=token, table=TOKEN_TABLE),
        event_type="webhook_token_generated",
    )


class TokenProvisioner:
    """Guarantees a webhook token exists and returns its digest.

    The provisioner keeps no copy of the digest between calls; the store is
    the authority, so truncating the table takes effect on the next request.

    Example:
        provisioner = TokenProvisioner(TokenStore("data/dhis2rapidpro.db"))
        digest = await provisioner.get_or_create_digest()
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        disclose: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the provisioner.

        Args:
            store: Token store holding the digest.
            disclose: Called once with the plaintext of each token this
                provisioner stores. Defaults to a warning-level log event.
        """
        self.store = store
        self._disclose = disclose or log_generated_token
        self._logger = logger.bind(component="token_provisioner")

    async def get_or_create_digest(self) -> str:
        """Return the stored digest, provisioning a token if none exists.

        Returns:
            Lowercase hex SHA-256 digest of the current token.

        Raises:
            StoreUnavailableError: If the store cannot be read or written.
        """
        digest = await self.store.load()
        if digest is not None:
            return digest

        token = generate_token()
        digest = hash_token(token)

        if await self.store.save(digest):
            self._logger.info("webhook_token_provisioned")
            self._disclose(token)
            return digest

        # Another request provisioned first; its token is the one in force.
        self._logger.info("webhook_token_provisioned_concurrently")
        stored = await self.store.load()
        if stored is None:
            raise StoreUnavailableError(
                "Token digest vanished after a concurrent insert",
                operation="load",
            )
        return stored
