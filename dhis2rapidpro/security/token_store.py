"""Persistent storage for the webhook token digest.

The TOKEN table holds at most one row. The digest column keeps its legacy
name, VALUE_, so that operators can keep truncating the same table to force
a new token.
"""

import asyncio
import re
import sqlite3
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import aiosqlite
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from dhis2rapidpro.errors import StoreUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

TOKEN_TABLE = "TOKEN"
TOKEN_COLUMN = "VALUE_"

DEFAULT_DB_PATH = Path("data/dhis2rapidpro.db")

_DIGEST_PATTERN = re.compile(r"[0-9a-f]{64}")


def is_well_formed_digest(digest: str) -> bool:
    """Check that a digest is a lowercase hex SHA-256."""
    return bool(_DIGEST_PATTERN.fullmatch(digest))


class TokenStore:
    """SQLite-based storage for the single webhook token digest.

    Every round trip is bounded by ``timeout_seconds``. Locking errors from
    concurrent writers are retried; anything else surfaces as
    StoreUnavailableError so callers can fail closed.
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        *,
        timeout_seconds: float = 5.0,
        max_attempts: int = 3,
    ) -> None:
        """Initialize the token store.

        Args:
            db_path: Path to SQLite database. Uses default if not provided.
            timeout_seconds: Bound on a single load or save.
            max_attempts: Attempts made when SQLite reports a locked database.
        """
        self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self._logger = logger.bind(component="token_store")
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Ensure the TOKEN table exists."""
        if self._initialized:
            return

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with aiosqlite.connect(self.db_path) as db:
            # The CHECK on ID pins the table to a single row.
            await db.execute(f"""
                CREATE TABLE IF NOT EXISTS {TOKEN_TABLE} (
                    ID INTEGER PRIMARY KEY CHECK (ID = 1),
                    {TOKEN_COLUMN} TEXT NOT NULL CHECK (length({TOKEN_COLUMN}) = 64)
                )
            """)
            await db.commit()

        self._initialized = True
        self._logger.info("token_store_initialized", db_path=str(self.db_path))

    async def _run(self, operation: str, action: Callable[[], Awaitable[T]]) -> T:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=0.05, max=0.5),
                retry=retry_if_exception_type(sqlite3.OperationalError),
                reraise=True,
            ):
                with attempt:
                    return await asyncio.wait_for(action(), timeout=self.timeout_seconds)
        except TimeoutError as e:
            self._logger.error(
                "token_store_timeout",
                operation=operation,
                timeout_seconds=self.timeout_seconds,
                db_path=str(self.db_path),
            )
            raise StoreUnavailableError(
                f"Token store {operation} timed out after {self.timeout_seconds}s",
                operation=operation,
            ) from e
        except (sqlite3.Error, OSError) as e:
            self._logger.error(
                "token_store_unavailable",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                db_path=str(self.db_path),
            )
            raise StoreUnavailableError(
                f"Token store {operation} failed: {e}",
                operation=operation,
            ) from e

    async def load(self) -> str | None:
        """Load the stored digest.

        Returns:
            The stored digest, or None if no token has been provisioned.

        Raises:
            StoreUnavailableError: If the database cannot be read in time.
        """

        async def _load() -> str | None:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                async with db.execute(
                    f"SELECT {TOKEN_COLUMN} FROM {TOKEN_TABLE} LIMIT 1"
                ) as cursor:
                    row = await cursor.fetchone()
            return row[0] if row else None

        return await self._run("load", _load)

    async def save(self, digest: str) -> bool:
        """Insert the token digest.

        The insert is atomic and never overwrites an existing row, so when
        two provisioners race the first committed digest is retained.

        Args:
            digest: Lowercase hex SHA-256 digest.

        Returns:
            True if this digest was stored, False if a digest already existed.

        Raises:
            ValueError: If the digest is not a lowercase hex SHA-256.
            StoreUnavailableError: If the database cannot be written in time.
        """
        if not is_well_formed_digest(digest):
            raise ValueError("digest must be 64 lowercase hexadecimal characters")

        async def _save() -> bool:
            await self._ensure_initialized()
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    f"INSERT OR IGNORE INTO {TOKEN_TABLE} (ID, {TOKEN_COLUMN}) VALUES (1, ?)",
                    (digest,),
                )
                inserted = cursor.rowcount == 1
                await db.commit()
            return inserted

        inserted = await self._run("save", _save)
        self._logger.debug("token_digest_saved", inserted=inserted)
        return inserted
