"""Read-through TTL cache for authority rules.

The cache is an explicit object handed to whoever needs rules: there is no
module-level instance. The loader and the clock are injected so tests can
drive expiry with a fake clock.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable

from shiplink.authority.resolver import AuthorityRuleSet, AuthorityRuleSpec

logger = logging.getLogger("shiplink.authority.cache")

RuleLoader = Callable[[], Awaitable[Iterable[AuthorityRuleSpec]]]


class AuthorityRuleCache:
    def __init__(
        self,
        loader: RuleLoader,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl = ttl_seconds
        self._clock = clock
        self._rules: AuthorityRuleSet | None = None
        self._loaded_at: float | None = None
        self._reload_lock = asyncio.Lock()
        self.load_count = 0

    @property
    def is_fresh(self) -> bool:
        if self._rules is None or self._loaded_at is None:
            return False
        return (self._clock() - self._loaded_at) < self._ttl

    async def get_rules(self) -> AuthorityRuleSet:
        """Return cached rules, reloading everything on a miss or after the TTL."""
        if self.is_fresh:
            return self._rules

        async with self._reload_lock:
            # Another waiter may have reloaded while we queued for the lock.
            if self.is_fresh:
                return self._rules
            return await self._reload()

    async def refresh(self) -> AuthorityRuleSet:
        """Force a reload regardless of age."""
        async with self._reload_lock:
            return await self._reload()

    def invalidate(self) -> None:
        self._loaded_at = None

    async def _reload(self) -> AuthorityRuleSet:
        specs = list(await self._loader())
        self._rules = AuthorityRuleSet(specs)
        self._loaded_at = self._clock()
        self.load_count += 1
        logger.info("Loaded %d authority rules (load #%d)", len(specs), self.load_count)
        return self._rules
