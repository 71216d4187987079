"""Typing/presence tracking and the "wait until the party goes quiet" probe."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from mimic_bot.config import PresenceConfig
from mimic_bot.core.ephemeral import EphemeralStore
from mimic_bot.log import get_logger

logger = get_logger(__name__)


class TypingTracker:
    """Remembers which parties are composing, with a short self-expiring marker."""

    def __init__(
        self,
        store: EphemeralStore,
        config: PresenceConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._config = config
        self._clock = clock
        self._sleep = sleep

    async def mark_composing(self, party_id: int) -> None:
        try:
            await self._store.set(self._key(party_id), str(self._clock()), ttl=self._config.typing_ttl)
            logger.debug("party_typing", party_id=party_id)
        except Exception as e:
            logger.error("typing_mark_failed", party_id=party_id, error=str(e))

    async def mark_idle(self, party_id: int) -> None:
        try:
            await self._store.delete(self._key(party_id))
            logger.debug("party_typing_stopped", party_id=party_id)
        except Exception as e:
            logger.error("typing_clear_failed", party_id=party_id, error=str(e))

    async def is_composing(self, party_id: int) -> bool:
        state = await self._probe(party_id)
        return bool(state)

    async def await_quiet(
        self,
        party_id: int,
        quiet_period: float | None = None,
        max_wait: float = 60.0,
    ) -> bool:
        """Wait until *party_id* has not been composing for *quiet_period* seconds.

        Returns False if *max_wait* elapses first. If the presence store cannot
        be read the party is treated as quiet and the call returns at once.
        """
        quiet_period = self._config.quiet_period if quiet_period is None else quiet_period
        started = self._clock()
        last_typing = started

        while self._clock() - started < max_wait:
            state = await self._probe(party_id)
            if state is None:
                logger.warning("presence_unknown_proceeding", party_id=party_id)
                return True

            now = self._clock()
            if state:
                last_typing = now
            elif now - last_typing >= quiet_period:
                logger.debug("party_quiet", party_id=party_id, waited=round(now - started, 2))
                return True

            await self._sleep(self._config.poll_interval)

        logger.warning("quiet_wait_timeout", party_id=party_id, max_wait=max_wait)
        return False

    async def _probe(self, party_id: int) -> bool | None:
        """True/False for composing, None when the store is unavailable."""
        try:
            return await self._store.get(self._key(party_id)) is not None
        except Exception as e:
            logger.error("typing_check_failed", party_id=party_id, error=str(e))
            return None

    @staticmethod
    def _key(party_id: int) -> str:
        return f"typing:party:{party_id}"
