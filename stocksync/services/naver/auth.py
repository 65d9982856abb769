"""
Access-token cache for the Naver Commerce API.

One instance per process. Tokens live in memory only and are reused until
``expires_in - safety_margin`` has passed, so callers never receive a token
that is about to expire. Concurrent callers during a refresh share a single
token request.
"""

import asyncio
import base64
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

import bcrypt
import httpx

from stocksync.core.exceptions import AuthFailure, SyncEngineError, UnauthorizedError
from stocksync.services.http_errors import send
from stocksync.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

PLATFORM = "NAVER"
MIN_TOKEN_TTL_SECONDS = 60


def sign_client_secret(client_id: str, client_secret: str, timestamp_ms: str) -> str:
    """bcrypt-hash ``{client_id}_{timestamp}`` with the client secret as salt, then base64."""
    password = f"{client_id}_{timestamp_ms}"
    hashed = bcrypt.hashpw(password.encode("utf-8"), client_secret.encode("utf-8"))
    return base64.b64encode(hashed).decode("utf-8")


class NaverCredentialCache:

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient,
        base_url: str = "https://api.commerce.naver.com/external",
        safety_margin: float = 1800,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.time,
        timeout: float = 10.0,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.http_client = http_client
        self.token_url = f"{base_url.rstrip('/')}/v1/oauth2/token"
        self.safety_margin = safety_margin
        self.retry_policy = retry_policy or RetryPolicy()
        self._clock = clock
        self.timeout = timeout

        self._token: Optional[str] = None
        self._valid_until: float = 0.0
        self._lock = asyncio.Lock()
        self.refresh_count = 0

    @property
    def has_valid_token(self) -> bool:
        return self._token is not None and self._clock() < self._valid_until

    async def get_token(self) -> str:
        if self.has_valid_token:
            return self._token

        async with self._lock:
            # Another caller may have refreshed while we waited
            if self.has_valid_token:
                return self._token
            return await self._refresh()

    def invalidate(self, stale_token: Optional[str] = None) -> None:
        """
        Drop the cached token. With ``stale_token`` the cache is only dropped
        while it still holds that token, so a 401 seen by one caller does not
        discard a token another caller has already refreshed.
        """
        if stale_token is not None and self._token != stale_token:
            return
        if self._token is not None:
            logger.info("Invalidating cached Naver access token")
        self._token = None
        self._valid_until = 0.0

    async def _refresh(self) -> str:
        if not self.client_id or not self.client_secret:
            raise AuthFailure("Naver client credentials are not configured", platform=PLATFORM)

        try:
            result = await self.retry_policy.call(self._request_token)
        except SyncEngineError as e:
            logger.error(
                f"Failed to obtain Naver access token for client {self.client_id} "
                f"({e.code}, attempts={e.attempts}): {e.message}"
            )
            raise AuthFailure(
                f"Failed to authenticate with Naver API: {e.message}",
                platform=PLATFORM,
                attempts=e.attempts,
            ) from e

        payload = result.value
        token = payload.get("access_token")
        if not token:
            raise AuthFailure("Naver token response did not contain an access_token", platform=PLATFORM)

        expires_in = float(payload.get("expires_in", 10800))
        ttl = max(expires_in - self.safety_margin, MIN_TOKEN_TTL_SECONDS)

        self._token = token
        self._valid_until = self._clock() + ttl
        self.refresh_count += 1
        logger.info(f"Naver token refreshed (expires_in={int(expires_in)}s, cached for {int(ttl)}s)")
        return token

    async def _request_token(self) -> dict:
        timestamp = str(int(self._clock() * 1000))
        try:
            signature = sign_client_secret(self.client_id, self.client_secret, timestamp)
        except ValueError as e:
            # bcrypt rejects a secret that is not a valid salt
            raise AuthFailure(f"Could not sign Naver credentials: {e}", platform=PLATFORM) from e

        data = {
            "client_id": self.client_id,
            "timestamp": timestamp,
            "client_secret_sign": signature,
            "grant_type": "client_credentials",
            "type": "SELF",
        }
        response = await send(
            self.http_client,
            PLATFORM,
            "POST",
            self.token_url,
            data=data,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            timeout=self.timeout,
        )
        return response.json()

    async def auth_headers(self) -> dict:
        return self._headers(await self.get_token())

    @staticmethod
    def _headers(token: str) -> dict:
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def call_with_refresh(self, fn: Callable[[dict], Awaitable[T]]) -> T:
        """
        Run ``fn(headers)``. On a 401 the token is dropped, a fresh one is
        minted and ``fn`` runs exactly once more; a second 401 propagates.
        """
        token = await self.get_token()
        try:
            return await fn(self._headers(token))
        except UnauthorizedError:
            logger.warning("Naver API answered 401, refreshing token and retrying once")
            self.invalidate(token)
            return await fn(await self.auth_headers())
