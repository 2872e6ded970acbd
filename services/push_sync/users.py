"""Commit author to Rally user resolution with a process-lifetime cache."""

import asyncio
import logging
from typing import Dict, Optional

from .errors import TrackerRequestError
from .tracker import RallyClient

logger = logging.getLogger(__name__)

# Cached for authors that were looked up and had no usable Rally user
NOT_FOUND = ""


class UserResolver:
    """Resolves author emails to Rally user refs.

    Each email is looked up at most once per resolver; misses, ambiguous
    matches and failed lookups are all cached as ``NOT_FOUND``. Entries are
    never refreshed. Lookups for the same email are serialized so concurrent
    pushes cannot issue duplicate requests.
    """

    def __init__(self, client: RallyClient):
        self.client = client
        self._cache: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, email: str) -> bool:
        return email in self._cache

    def cached(self, email: str) -> Optional[str]:
        return self._cache.get(email)

    async def resolve(self, email: str) -> str:
        """Return the Rally user ref for ``email`` or ``NOT_FOUND``."""
        if not email:
            return NOT_FOUND
        if email in self._cache:
            return self._cache[email]

        lock = self._locks.setdefault(email, asyncio.Lock())
        async with lock:
            if email in self._cache:
                return self._cache[email]
            self._cache[email] = await self._lookup(email)
        self._locks.pop(email, None)
        return self._cache[email]

    async def _lookup(self, email: str) -> str:
        try:
            users = await self.client.find_user(email)
        except TrackerRequestError as e:
            logger.warning(f"User lookup for {email} failed: {e}")
            return NOT_FOUND

        if len(users) == 1:
            logger.debug(f"Resolved author {email} to {users[0].ref}")
            return users[0].ref

        logger.info(f"No unique Rally user for {email} ({len(users)} matches)")
        return NOT_FOUND
