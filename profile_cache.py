"""
profile_cache.py — Single-flight, read-through cache of user profiles by address.

Found profiles are kept for the lifetime of the cache object. Concurrent
lookups for the same address share one underlying request. Failed or
not-found lookups resolve to None and are not cached, so a later call retries.
"""

import asyncio
from typing import Optional

import httpx

from config import UNKNOWN_LABEL
from models import ProfileInfo
from monitoring import get_logger

logger = get_logger("profile_cache")


class ProfileCache:
    def __init__(self, api):
        self.api = api
        self._profiles: dict[str, ProfileInfo] = {}
        self._inflight: dict[str, asyncio.Future] = {}
        self.lookup_count = 0

    def peek(self, address: str) -> Optional[ProfileInfo]:
        """Return a cached profile without touching the network."""
        return self._profiles.get(address.lower())

    async def get(self, address: str) -> Optional[ProfileInfo]:
        key = address.lower()

        cached = self._profiles.get(key)
        if cached is not None:
            return cached

        # No await between the check and the insert, so callers cannot race here
        pending = self._inflight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._lookup(key))
            self._inflight[key] = pending

        return await asyncio.shield(pending)

    async def display_name(self, address: Optional[str], fallback: str = UNKNOWN_LABEL) -> str:
        if not address:
            return fallback
        profile = await self.get(address)
        return profile.display_name if profile else fallback

    async def _lookup(self, key: str) -> Optional[ProfileInfo]:
        self.lookup_count += 1
        try:
            if not await self.api.user_exists(key):
                logger.warning(f"Profile not found for address: {key}")
                return None
            profile = await self.api.get_user(key)
            self._profiles[key] = profile
            return profile
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching profile for wallet {key}: {type(e).__name__}: {e}")
            return None
        finally:
            self._inflight.pop(key, None)

    def __len__(self) -> int:
        return len(self._profiles)
