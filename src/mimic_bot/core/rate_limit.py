"""Per-party hourly message cap with a one-time warning."""

from __future__ import annotations

from dataclasses import dataclass

from mimic_bot.config import RateLimitConfig
from mimic_bot.core.ephemeral import EphemeralStore
from mimic_bot.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Admission:
    admitted: bool
    should_warn: bool = False


class RateGovernor:
    """Fixed-window counter per party.

    The window starts when the first message is counted and expires as a
    whole; it is not a sliding log. Any store failure fails open.
    """

    def __init__(self, store: EphemeralStore, config: RateLimitConfig):
        self._store = store
        self._limit = config.max_messages_per_hour
        self._window = config.window_seconds

    @property
    def limit(self) -> int:
        return self._limit

    async def check_and_admit(self, party_id: int) -> Admission:
        """Decide whether a message from *party_id* should be processed.

        Does not count the message; call record() right after admission.
        """
        key = self._key(party_id)
        try:
            data = await self._store.hgetall(key)
        except Exception as e:
            logger.error("rate_limit_check_failed", party_id=party_id, error=str(e))
            return Admission(admitted=True)

        count = int(data.get("count", "0"))
        if count < self._limit:
            logger.debug("rate_limit_ok", party_id=party_id, count=count, limit=self._limit)
            return Admission(admitted=True)

        if data.get("warning_sent") == "1":
            logger.debug("rate_limit_suppressed", party_id=party_id, count=count)
            return Admission(admitted=False, should_warn=False)

        try:
            await self._store.hset(key, "warning_sent", "1")
        except Exception as e:
            logger.error("rate_limit_mark_warning_failed", party_id=party_id, error=str(e))
        logger.info("rate_limit_exceeded", party_id=party_id, count=count, limit=self._limit)
        return Admission(admitted=False, should_warn=True)

    async def record(self, party_id: int) -> int:
        """Count one admitted message; opens a new window on the first one."""
        key = self._key(party_id)
        try:
            count = await self._store.hincrby(key, "count", 1)
            if count == 1:
                await self._store.expire(key, self._window)
                logger.debug("rate_window_started", party_id=party_id, ttl=self._window)
            return count
        except Exception as e:
            logger.error("rate_limit_increment_failed", party_id=party_id, error=str(e))
            return 0

    async def time_to_reset(self, party_id: int) -> float:
        try:
            ttl = await self._store.ttl(self._key(party_id))
        except Exception as e:
            logger.error("rate_limit_ttl_failed", party_id=party_id, error=str(e))
            return 0.0
        return ttl if ttl > 0 else 0.0

    async def reset(self, party_id: int) -> None:
        try:
            await self._store.delete(self._key(party_id))
            logger.info("rate_limit_reset", party_id=party_id)
        except Exception as e:
            logger.error("rate_limit_reset_failed", party_id=party_id, error=str(e))

    @staticmethod
    def _key(party_id: int) -> str:
        return f"rate_limit:party:{party_id}"
