"""
Google Service Account Authentication
Exchanges service account credentials for short-lived Sheets access tokens
(OAuth2 JWT bearer grant). Tokens are cached until shortly before expiry.
"""
import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import aiohttp
from jose import jwt, JWTError

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
EXPIRY_MARGIN_SECONDS = 300


@dataclass
class ServiceAccountCredentials:
    client_email: str
    private_key: str
    token_uri: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["ServiceAccountCredentials"]:
        """Env vars win; otherwise a JSON key file. None when nothing is configured"""
        email = settings.google_service_account_email
        key = settings.service_account_private_key
        if email and key:
            return cls(client_email=email, private_key=key)

        path = settings.google_service_account_file
        if not path:
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                info = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Could not read service account file {path}: {e}")
            return None

        if not info.get("client_email") or not info.get("private_key"):
            logger.warning(f"⚠️ Service account file {path} lacks client_email/private_key")
            return None
        return cls(
            client_email=info["client_email"],
            private_key=info["private_key"],
            token_uri=info.get("token_uri"),
        )


class ServiceAccountTokenProvider:
    """
    Produces bearer tokens for the Sheets API from service account credentials.

    - Signs an RS256 assertion with the account's private key
    - Exchanges it at the Google token endpoint
    - Caches the token until EXPIRY_MARGIN_SECONDS before it expires

    `get_token()` never raises: missing credentials or a failed exchange
    return None so callers can move on to another access method.
    """

    def __init__(
        self,
        credentials: Optional[ServiceAccountCredentials] = None,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[], Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings or get_settings()
        self.credentials = credentials if credentials is not None else ServiceAccountCredentials.from_settings(self.settings)
        self._session_factory = session_factory or self._default_session
        self._clock = clock
        self._access_token: Optional[str] = None
        self._token_expiry: float = 0.0
        self._lock = asyncio.Lock()

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout_seconds)
        )

    @property
    def is_configured(self) -> bool:
        return self.credentials is not None

    @property
    def token_url(self) -> str:
        if self.credentials and self.credentials.token_uri:
            return self.credentials.token_uri
        return self.settings.google_token_url

    def build_assertion(self) -> str:
        """Signed JWT asserting the service account identity"""
        now = int(self._clock())
        claims = {
            "iss": self.credentials.client_email,
            "scope": self.settings.google_sheets_scope,
            "aud": self.token_url,
            "iat": now,
            "exp": now + TOKEN_LIFETIME_SECONDS,
        }
        return jwt.encode(claims, self.credentials.private_key, algorithm="RS256")

    async def get_token(self) -> Optional[str]:
        """Cached access token, refreshed when close to expiry"""
        if not self.is_configured:
            return None

        async with self._lock:
            if self._access_token and self._clock() < self._token_expiry - EXPIRY_MARGIN_SECONDS:
                return self._access_token

            try:
                assertion = self.build_assertion()
            except (JWTError, ValueError, TypeError) as e:
                logger.warning(f"⚠️ Could not sign service account assertion: {e}")
                return None

            try:
                async with self._session_factory() as session:
                    async with session.post(
                        self.token_url,
                        data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                    ) as response:
                        if response.status != 200:
                            body = await response.text()
                            logger.warning(
                                f"⚠️ Service account token exchange failed: {response.status} {body[:200]}"
                            )
                            return None
                        data = await response.json()
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
                logger.warning(f"⚠️ Service account token exchange error: {e}")
                return None

            token = data.get("access_token") if isinstance(data, dict) else None
            if not token:
                logger.warning("⚠️ Token endpoint returned no access_token")
                return None

            try:
                lifetime = float(data.get("expires_in", TOKEN_LIFETIME_SECONDS))
            except (TypeError, ValueError):
                lifetime = TOKEN_LIFETIME_SECONDS

            self._access_token = token
            self._token_expiry = self._clock() + lifetime
            logger.info(f"🔐 Service account token acquired for {self.credentials.client_email}")
            return token

    def invalidate(self) -> None:
        self._access_token = None
        self._token_expiry = 0.0
