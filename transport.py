"""
transport.py — Authenticated HTTP transport for the REST message/user backend.

Attaches the persisted bearer token to every request. A 401 triggers at most
one token refresh (shared by every request that hit the 401 concurrently)
and at most one retry. A rejected refresh clears the session and fires the
session-expired callback, which the pipeline treats as a forced logout.
"""

import asyncio
from typing import Callable, Optional

import httpx

from config import API_BASE_URL, HTTP_TIMEOUT
from token_store import TokenStore
from monitoring import get_logger

logger = get_logger("transport")

REFRESH_PATH = "/auth/refresh"


class AuthenticatedTransport:
    def __init__(
        self,
        client: httpx.AsyncClient,
        tokens: TokenStore,
        on_session_expired: Optional[Callable[[], None]] = None,
        refresh_path: str = REFRESH_PATH,
    ):
        self.client = client
        self.tokens = tokens
        self.on_session_expired = on_session_expired
        self.refresh_path = refresh_path
        self._refresh_task: Optional[asyncio.Future] = None

    @classmethod
    def create(cls, tokens: TokenStore, base_url: str = API_BASE_URL, timeout: float = HTTP_TIMEOUT,
               on_session_expired: Optional[Callable[[], None]] = None) -> "AuthenticatedTransport":
        client = httpx.AsyncClient(base_url=base_url, timeout=timeout)
        return cls(client, tokens, on_session_expired=on_session_expired)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request with the bearer token, refreshing it once on 401."""
        token = self.tokens.access_token
        response = await self._send(method, url, token, kwargs)
        if response.status_code != 401:
            return response

        # Another request may already have rotated the token while this one was in flight
        current = self.tokens.access_token
        if current and current != token:
            logger.debug(f"Retrying {method} {url} with rotated token")
            return await self._send(method, url, current, kwargs)

        # Both tokens gone: an earlier refresh already failed and expired the session
        if not current and not self.tokens.refresh_token:
            logger.debug(f"No session to refresh for {method} {url}")
            return response

        new_token = await self._refresh_once()
        if new_token is None:
            return response

        logger.info(f"Retrying {method} {url} after token refresh")
        return await self._send(method, url, new_token, kwargs)

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def head(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("HEAD", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def _send(self, method: str, url: str, token: Optional[str], kwargs: dict) -> httpx.Response:
        options = dict(kwargs)
        headers = dict(options.pop("headers", None) or {})
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return await self.client.request(method, url, headers=headers, **options)

    async def _refresh_once(self) -> Optional[str]:
        """Join the in-flight refresh, or start one."""
        task = self._refresh_task
        if task is None:
            task = asyncio.ensure_future(self._refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _refresh(self) -> Optional[str]:
        try:
            refresh_token = self.tokens.refresh_token
            if not refresh_token:
                logger.warning("Access token rejected and no refresh token stored")
                self._expire_session()
                return None

            try:
                response = await self.client.post(self.refresh_path, json={"refreshToken": refresh_token})
            except httpx.HTTPError as e:
                logger.error(f"Token refresh request failed: {type(e).__name__}: {e}")
                response = None

            new_token = _extract_access_token(response)
            if new_token is None:
                logger.error("Refresh token expired or invalid")
                self._expire_session()
                return None

            self.tokens.save_tokens(new_token)
            logger.info("Access token refreshed")
            return new_token
        finally:
            self._refresh_task = None

    def _expire_session(self):
        self.tokens.clear()
        if self.on_session_expired is not None:
            self.on_session_expired()

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()


def _extract_access_token(response: Optional[httpx.Response]) -> Optional[str]:
    if response is None or not response.is_success:
        return None
    try:
        token = response.json()["accessToken"]
    except (ValueError, KeyError, TypeError):
        logger.error("Token refresh response did not contain an access token")
        return None
    return token if isinstance(token, str) and token else None
