"""Randomized response delays that imitate a busy person."""

from __future__ import annotations

import random
from dataclasses import dataclass

from mimic_bot.config import DelayConfig


@dataclass(frozen=True, slots=True)
class Delay:
    seconds: float
    kind: str  # "normal" | "medium" | "long"


class DelayPolicy:
    """Picks the scheduler floor for a new message.

    Most messages get the short normal delay; a configurable share is pushed
    to a medium (minutes) or long (half hour and more) delay. Owner requests
    always get the normal delay.
    """

    def __init__(self, config: DelayConfig, rng: random.Random | None = None):
        self._config = config
        self._rng = rng or random.Random()

    def pick(self, is_owner: bool = False) -> Delay:
        cfg = self._config
        if is_owner:
            return Delay(cfg.normal_seconds, "normal")

        roll = self._rng.random()
        if roll < cfg.normal_probability:
            return Delay(cfg.normal_seconds, "normal")
        if roll < cfg.normal_probability + cfg.medium_probability:
            low, high = cfg.medium_minutes
            return Delay(float(int(self._rng.uniform(low, high) * 60)), "medium")
        low, high = cfg.long_minutes
        return Delay(float(int(self._rng.uniform(low, high) * 60)), "long")


def format_delay(seconds: float) -> str:
    """Human-readable delay, e.g. ``7m 30s`` or ``1h 5m``."""
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if minutes else f"{hours}h"
