"""Tests for webhook token generation and provisioning."""

import asyncio
import hashlib
from unittest.mock import AsyncMock, MagicMock

import pytest
from structlog.testing import capture_logs

from dhis2rapidpro.errors import StoreUnavailableError
from dhis2rapidpro.security.token_store import TOKEN_TABLE, TokenStore
from dhis2rapidpro.security.tokens import (
    TokenProvisioner,
    generate_token,
    hash_token,
)

# ============================================================================
# Token helpers
# ============================================================================


class TestGenerateToken:
    """Tests for generate_token."""

    def test_token_is_url_safe(self):
        """Test that tokens only use URL-safe characters."""
        token = generate_token()
        allowed = set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")
        assert set(token) <= allowed

    def test_token_carries_256_bits(self):
        """Test that 32 random bytes encode to 43 characters."""
        assert len(generate_token()) == 43

    def test_tokens_are_unique(self):
        """Test that consecutive tokens differ."""
        assert len({generate_token() for _ in range(50)}) == 50


class TestHashToken:
    """Tests for hash_token."""

    def test_sha256_lowercase_hex(self):
        """Test that the digest is lowercase hex SHA-256 of the UTF-8 bytes."""
        assert hash_token("secret") == hashlib.sha256(b"secret").hexdigest()
        assert hash_token("secret") == hash_token("secret").lower()
        assert len(hash_token("secret")) == 64

    def test_different_tokens_differ(self):
        """Test that distinct tokens produce distinct digests."""
        assert hash_token("S") != hash_token("S'")


# ============================================================================
# TokenProvisioner
# ============================================================================


class TestTokenProvisioner:
    """Tests for TokenProvisioner."""

    @pytest.mark.asyncio
    async def test_provisions_when_empty(self, token_store):
        """Test that an empty store gets a token and the plaintext is disclosed."""
        disclose = MagicMock()
        provisioner = TokenProvisioner(token_store, disclose=disclose)

        digest = await provisioner.get_or_create_digest()

        disclose.assert_called_once()
        token = disclose.call_args.args[0]
        assert digest == hash_token(token)
        assert await token_store.load() == digest

    @pytest.mark.asyncio
    async def test_existing_digest_returned(self, token_store):
        """Test that an existing digest is returned without disclosure."""
        existing = hash_token("known-secret")
        await token_store.save(existing)
        disclose = MagicMock()
        provisioner = TokenProvisioner(token_store, disclose=disclose)

        assert await provisioner.get_or_create_digest() == existing
        disclose.assert_not_called()

    @pytest.mark.asyncio
    async def test_disclosed_once(self, token_store):
        """Test that repeated calls disclose only the first time."""
        disclose = MagicMock()
        provisioner = TokenProvisioner(token_store, disclose=disclose)

        first = await provisioner.get_or_create_digest()
        second = await provisioner.get_or_create_digest()

        assert first == second
        assert disclose.call_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_provisioning(self, token_store, db_path):
        """Test that racing provisioners agree on one digest and disclose once."""
        disclose = MagicMock()
        provisioners = [
            TokenProvisioner(TokenStore(db_path), disclose=disclose) for _ in range(5)
        ]

        digests = await asyncio.gather(*(p.get_or_create_digest() for p in provisioners))

        assert len(set(digests)) == 1
        assert disclose.call_count == 1
        assert hash_token(disclose.call_args.args[0]) == digests[0]
        assert await token_store.load() == digests[0]

    @pytest.mark.asyncio
    async def test_lost_race_not_disclosed(self):
        """Test that a provisioner whose insert lost returns the winner's digest."""
        winner = "b" * 64
        store = MagicMock()
        store.load = AsyncMock(side_effect=[None, winner])
        store.save = AsyncMock(return_value=False)
        disclose = MagicMock()

        digest = await TokenProvisioner(store, disclose=disclose).get_or_create_digest()

        assert digest == winner
        disclose.assert_not_called()

    @pytest.mark.asyncio
    async def test_vanished_digest_raises(self):
        """Test that a lost race with no retained row is a store failure."""
        store = MagicMock()
        store.load = AsyncMock(return_value=None)
        store.save = AsyncMock(return_value=False)

        with pytest.raises(StoreUnavailableError):
            await TokenProvisioner(store, disclose=MagicMock()).get_or_create_digest()

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self):
        """Test that store failures are not swallowed."""
        store = MagicMock()
        store.load = AsyncMock(side_effect=StoreUnavailableError("down", operation="load"))

        with pytest.raises(StoreUnavailableError):
            await TokenProvisioner(store).get_or_create_digest()

    @pytest.mark.asyncio
    async def test_default_disclosure_logs_plaintext(self, token_store):
        """Test that the default disclosure is one warning with the plaintext."""
        with capture_logs() as cap_logs:
            provisioner = TokenProvisioner(token_store)
            digest = await provisioner.get_or_create_digest()
            await provisioner.get_or_create_digest()

        disclosures = [e for e in cap_logs if e.get("event_type") == "webhook_token_generated"]
        assert len(disclosures) == 1
        disclosure = disclosures[0]
        assert disclosure["log_level"] == "warning"
        assert digest not in disclosure["event"]
        assert "cannot be recovered" in disclosure["event"]
        assert f"'{TOKEN_TABLE}'" in disclosure["event"]

        token = disclosure["event"].split("RapidPro: ", 1)[1].split()[0]
        assert hash_token(token) == digest
