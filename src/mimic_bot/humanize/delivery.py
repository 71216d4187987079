"""Staged, timed delivery of a generated reply through the messaging gateway."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from mimic_bot.config import HumanizeConfig
from mimic_bot.humanize.text import post_process, split_into_chunks, typing_duration
from mimic_bot.humanize.typos import introduce_typo
from mimic_bot.log import get_logger, preview
from mimic_bot.messenger.base import MessagingGateway

logger = get_logger(__name__)


class DeliveryError(Exception):
    """Nothing of a reply could be delivered."""


@dataclass
class DeliveryReport:
    sent_chunks: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def complete(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        return "\n".join(self.sent_chunks)


def reaction_marker(symbol: str) -> str:
    return f"[reaction:{symbol}]"


class HumanizedDelivery:
    """Sends replies the way a person would: in pieces, with typing pauses.

    Typing indicators and typo corrections are cosmetic; their failures are
    logged and ignored. A failed send stops the remaining chunks.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        config: HumanizeConfig,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._gateway = gateway
        self._config = config
        self._rng = rng or random.Random()
        self._sleep = sleep

    def prepare(self, text: str) -> list[str]:
        """Post-process and split *text* into the chunks that will be sent."""
        cleaned = post_process(text, self._rng, self._config.comma_drop_probability)
        return split_into_chunks(cleaned, self._rng, self._config.split_probability)

    async def deliver(self, party_id: int, text: str) -> DeliveryReport:
        chunks = self.prepare(text)
        report = DeliveryReport()
        logger.info("delivery_start", party_id=party_id, chunks=len(chunks))

        for index, chunk in enumerate(chunks):
            if index > 0:
                await self._sleep(
                    self._rng.uniform(self._config.pause_min_seconds, self._config.pause_max_seconds)
                )

            await self._show_typing(party_id)
            await self._sleep(
                typing_duration(
                    chunk,
                    self._config.chars_per_second,
                    self._config.min_typing_seconds,
                    self._config.max_typing_seconds,
                )
            )

            try:
                await self._send_chunk(party_id, chunk)
            except Exception as e:
                logger.error(
                    "delivery_chunk_failed",
                    party_id=party_id,
                    chunk_index=index,
                    sent=len(report.sent_chunks),
                    error=str(e),
                )
                report.error = str(e)
                break
            report.sent_chunks.append(chunk)

        logger.info(
            "delivery_done",
            party_id=party_id,
            sent=len(report.sent_chunks),
            total=len(chunks),
        )
        return report

    async def deliver_ack(self, party_id: int, message_id: Optional[int], symbol: str) -> str:
        """React to *message_id*; fall back to sending the symbol as text.

        Returns the text to record as the assistant turn.
        """
        if message_id is not None:
            try:
                await self._gateway.send_reaction(party_id, message_id, symbol)
                logger.info("reaction_sent", party_id=party_id, message_id=message_id, symbol=symbol)
                return reaction_marker(symbol)
            except Exception as e:
                logger.warning("reaction_failed", party_id=party_id, error=str(e))

        report = await self.deliver(party_id, symbol)
        if not report.sent_chunks:
            raise DeliveryError(report.error or "acknowledgment not delivered")
        return report.text

    async def _send_chunk(self, party_id: int, chunk: str) -> None:
        typo = introduce_typo(chunk, self._config.typo.probability, self._rng)
        if not typo.has_typo:
            await self._gateway.send_text(party_id, chunk)
            return

        message_id = await self._gateway.send_text(party_id, typo.text)
        logger.debug("typo_sent", party_id=party_id, text=preview(typo.text))
        await self._sleep(
            self._rng.uniform(self._config.typo.fix_delay_min, self._config.typo.fix_delay_max)
        )
        try:
            await self._gateway.edit_text(party_id, message_id, chunk)
        except Exception as e:
            logger.warning("typo_fix_failed", party_id=party_id, message_id=message_id, error=str(e))

    async def _show_typing(self, party_id: int) -> None:
        try:
            await self._gateway.set_typing(party_id)
        except Exception as e:
            logger.warning("typing_indicator_failed", party_id=party_id, error=str(e))
