"""Google Sheets Authentication Provider.

Supplies the bearer token for Sheets API calls. Two modes:
- Static access token (GOOGLE_SHEETS_ACCESS_TOKEN), used as-is
- OAuth2 refresh-token flow against Google's token endpoint, with caching
  and refresh before expiry
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional

import aiohttp

from core.config import AppSettings
from core.errors import StoreCredentialsError, TransientStoreError
from core.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass
class GoogleAuthConfig:
    """Configuration for Google authentication.

    Attributes:
        access_token: Pre-issued access token (takes precedence when set)
        client_id: OAuth client ID (refresh-token flow)
        client_secret: OAuth client secret
        refresh_token: Long-lived refresh token
        token_endpoint: OAuth2 token endpoint
    """
    access_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    refresh_token: Optional[str] = None
    token_endpoint: str = "https://oauth2.googleapis.com/token"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "GoogleAuthConfig":
        return cls(
            access_token=settings.access_token,
            client_id=settings.oauth_client_id,
            client_secret=settings.oauth_client_secret,
            refresh_token=settings.oauth_refresh_token,
        )

    @property
    def can_refresh(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    @property
    def is_configured(self) -> bool:
        return bool(self.access_token) or self.can_refresh


@dataclass
class GoogleToken:
    """OAuth2 access token with expiration tracking."""
    access_token: str
    token_type: str = "Bearer"
    expires_in: Optional[int] = None
    obtained_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def expires_at(self) -> Optional[datetime]:
        if self.expires_in is None:
            return None
        return self.obtained_at + timedelta(seconds=self.expires_in)

    @property
    def is_expired(self) -> bool:
        """Check if token is expired (with 5-minute buffer). Static tokens never expire locally."""
        if self.expires_at is None:
            return False
        return datetime.utcnow() >= (self.expires_at - timedelta(minutes=5))

    @property
    def authorization_header(self) -> str:
        return f"{self.token_type} {self.access_token}"


class GoogleSheetsAuthProvider:
    """Authentication provider for the Sheets API.

    Usage:
        auth = GoogleSheetsAuthProvider(GoogleAuthConfig.from_settings(settings))
        await auth.ensure_valid_token(session)
        headers = {"Authorization": auth.get_authorization_header()}
    """

    def __init__(self, config: GoogleAuthConfig):
        self.config = config
        self._token: Optional[GoogleToken] = None
        if config.access_token:
            self._token = GoogleToken(access_token=config.access_token)

    def get_authorization_header(self) -> Optional[str]:
        if self._token and not self._token.is_expired:
            return self._token.authorization_header
        return None

    def invalidate(self) -> bool:
        """Drop the cached token after a 401. Returns True if a refresh is possible."""
        if not self.config.can_refresh:
            return False
        self._token = None
        return True

    async def ensure_valid_token(self, session: aiohttp.ClientSession) -> None:
        """Ensure a usable token is cached, refreshing if needed.

        Raises:
            StoreCredentialsError: No credentials configured, or the refresh was rejected
            TransientStoreError: Token endpoint unreachable
        """
        if self._token and not self._token.is_expired:
            return
        if not self.config.can_refresh:
            raise StoreCredentialsError(
                "Google Sheets credentials are not configured "
                "(set GOOGLE_SHEETS_ACCESS_TOKEN or the GOOGLE_OAUTH_* refresh credentials)"
            )
        await self._refresh(session)

    async def _refresh(self, session: aiohttp.ClientSession) -> None:
        data = {
            "grant_type": "refresh_token",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
            "refresh_token": self.config.refresh_token,
        }
        try:
            async with session.post(self.config.token_endpoint, data=data) as response:
                if response.status != 200:
                    body = await response.text()
                    if response.status >= 500:
                        raise TransientStoreError(
                            f"Token endpoint error {response.status}", response.status, body
                        )
                    raise StoreCredentialsError(
                        f"Token refresh rejected: {response.status}", response.status, body
                    )
                token_data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientStoreError(f"Token refresh failed: {e}")

        self._token = GoogleToken(
            access_token=token_data["access_token"],
            token_type=token_data.get("token_type", "Bearer"),
            expires_in=token_data.get("expires_in", 3600),
        )
        logger.info("Refreshed Google access token")
