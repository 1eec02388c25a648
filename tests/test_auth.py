#!/usr/bin/env python3
"""Unit tests for OAuth2 Token Management.

Tests cover:
    - Token caching and expiration detection
    - Configuration from AZURE_* environment variables
    - Rejected credentials are not retried
"""

import hashlib
import sys
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.primary_user.api.auth import TOKEN_URL_TEMPLATE, CachedToken, TokenManager
from src.primary_user.api.exceptions import ConfigurationError, InvalidCredentialsError


def _mock_session(status: int, json_body=None, text: str = ""):
    """Build an aiohttp.ClientSession mock answering one POST."""
    mock_response = MagicMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=json_body or {})
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = MagicMock()
    mock_session.post = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


# ============================================
# CachedToken Tests
# ============================================

class TestCachedToken:
    """Test the CachedToken dataclass."""

    def test_not_expired_when_new(self):
        token = CachedToken(access_token="tok", expires_at=time.time() + 3600)
        assert not token.is_expired
        assert token.time_remaining > 3500

    def test_expired_when_past(self):
        token = CachedToken(access_token="tok", expires_at=time.time() - 100)
        assert token.is_expired
        assert token.time_remaining == 0

    def test_expired_within_buffer(self):
        """A 2h token is refreshed 300s (capped buffer) before expiry."""
        token = CachedToken(
            access_token="tok",
            expires_at=time.time() + 200,
            expires_in=7200,
        )
        assert token.is_expired

    def test_token_id_is_sha256_prefix(self):
        token = CachedToken(access_token="graph_secret_value", expires_at=time.time() + 3600)
        assert token.token_id == hashlib.sha256(b"graph_secret_value").hexdigest()[:8]
        assert "graph_secret" not in token.token_id


# ============================================
# TokenManager Tests
# ============================================

class TestTokenManager:
    """Test the TokenManager class."""

    @pytest.fixture
    def env_vars(self, monkeypatch):
        monkeypatch.setenv("AZURE_TENANT_ID", "contoso-tenant")
        monkeypatch.setenv("AZURE_CLIENT_ID", "test_client_id")
        monkeypatch.setenv("AZURE_CLIENT_SECRET", "test_client_secret")
        monkeypatch.delenv("AZURE_TOKEN_URL", raising=False)

    def test_missing_env_vars_raises(self, monkeypatch):
        for name in ("AZURE_TENANT_ID", "AZURE_CLIENT_ID", "AZURE_CLIENT_SECRET", "AZURE_TOKEN_URL"):
            monkeypatch.delenv(name, raising=False)

        with pytest.raises(ConfigurationError) as exc:
            TokenManager()

        assert "AZURE_CLIENT_ID" in str(exc.value)
        assert exc.value.details["missing_keys"] == [
            "AZURE_TENANT_ID",
            "AZURE_CLIENT_ID",
            "AZURE_CLIENT_SECRET",
        ]

    def test_token_url_derived_from_tenant(self, env_vars):
        manager = TokenManager()
        assert manager.token_url == TOKEN_URL_TEMPLATE.format(tenant_id="contoso-tenant")

    def test_explicit_token_url_wins(self, env_vars, monkeypatch):
        monkeypatch.setenv("AZURE_TOKEN_URL", "https://login.example.com/token")
        assert TokenManager().token_url == "https://login.example.com/token"

    @pytest.mark.asyncio
    async def test_get_token_fetches_new(self, env_vars):
        manager = TokenManager()
        session = _mock_session(200, {"access_token": "new_token_abc", "expires_in": 3600})

        with patch("aiohttp.ClientSession", return_value=session):
            token = await manager.get_token()

        assert token == "new_token_abc"
        sent = session.post.call_args.kwargs["data"]
        assert sent["grant_type"] == "client_credentials"
        assert sent["scope"] == "https://graph.microsoft.com/.default"

    @pytest.mark.asyncio
    async def test_get_token_returns_cached(self, env_vars):
        manager = TokenManager()
        manager._cached_token = CachedToken(access_token="cached", expires_at=time.time() + 3600)

        with patch("aiohttp.ClientSession") as mock_session_cls:
            token = await manager.get_token()
            mock_session_cls.assert_not_called()

        assert token == "cached"

    @pytest.mark.asyncio
    async def test_rejected_credentials_not_retried(self, env_vars):
        manager = TokenManager()
        session = _mock_session(401, text='{"error": "invalid_client"}')

        with patch("aiohttp.ClientSession", return_value=session):
            with pytest.raises(InvalidCredentialsError):
                await manager.get_token()

        assert session.post.call_count == 1

    def test_invalidate_clears_cache(self, env_vars):
        manager = TokenManager()
        manager._cached_token = CachedToken(access_token="cached", expires_at=time.time() + 3600)

        manager.invalidate()

        assert manager._cached_token is None
        assert manager.token_info is None

    def test_token_info_never_exposes_token(self, env_vars):
        manager = TokenManager()
        manager._cached_token = CachedToken(
            access_token="a_very_long_token_that_should_be_hashed",
            expires_at=time.time() + 3600,
        )

        info = manager.token_info

        assert not info["is_expired"]
        assert "a_very_long" not in str(info)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
