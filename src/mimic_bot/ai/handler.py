"""Inbound event handler: gates, buffers and schedules messages; runs owner commands."""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable

from mimic_bot.ai.owner_commands import (
    CommandParser,
    OwnerCommand,
    OwnerCommandExecutor,
    OwnerRequest,
)
from mimic_bot.config import RateLimitConfig, ReadStatusConfig
from mimic_bot.core.delays import DelayPolicy, format_delay
from mimic_bot.core.presence import TypingTracker
from mimic_bot.core.rate_limit import RateGovernor
from mimic_bot.core.types import ChatKind, Role
from mimic_bot.log import get_logger, preview
from mimic_bot.messenger.base import MessagingGateway
from mimic_bot.messenger.models import DeletedMessages, IncomingMessage, PresenceEvent
from mimic_bot.services.scheduler import DebounceScheduler
from mimic_bot.storage.conversation_repo import ConversationRepository
from mimic_bot.storage.models import Turn
from mimic_bot.storage.pending_repo import PendingMessageRepository

logger = get_logger(__name__)


class InboundHandler:
    """Turns gateway events into buffer rows and scheduled pipeline runs.

    Messages written by the owner are either commands (answered privately),
    wake-word requests (queued for the assistant) or manual replies, which
    claim everything still pending for that party.
    """

    def __init__(
        self,
        gateway: MessagingGateway,
        conversations: ConversationRepository,
        pending: PendingMessageRepository,
        rate_governor: RateGovernor,
        presence: TypingTracker,
        scheduler: DebounceScheduler,
        delay_policy: DelayPolicy,
        parser: CommandParser,
        executor: OwnerCommandExecutor,
        rate_config: RateLimitConfig,
        read_status: ReadStatusConfig,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._gateway = gateway
        self._conversations = conversations
        self._pending = pending
        self._rate = rate_governor
        self._presence = presence
        self._scheduler = scheduler
        self._delays = delay_policy
        self._parser = parser
        self._executor = executor
        self._rate_config = rate_config
        self._read_status = read_status
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._background: set[asyncio.Task] = set()

    async def handle(self, message: IncomingMessage) -> None:
        if message.chat_kind != ChatKind.PRIVATE:
            logger.debug("non_private_chat_ignored", chat_kind=str(message.chat_kind))
            return

        party = message.party
        await self._conversations.upsert_party(
            party.id, party.username, party.first_name, party.last_name
        )

        if message.is_outgoing:
            await self._handle_owner_message(message)
        else:
            await self._handle_party_message(message)

    async def _handle_party_message(self, message: IncomingMessage) -> None:
        party_id = message.party.id

        admission = await self._rate.check_and_admit(party_id)
        if not admission.admitted:
            if admission.should_warn:
                try:
                    await self._gateway.send_text(party_id, self._rate_config.warning_message)
                except Exception as e:
                    logger.error("rate_warning_send_failed", party_id=party_id, error=str(e))
            return
        await self._rate.record(party_id)

        delay = self._delays.pick()
        await self._pending.append(
            party_id,
            message.text,
            delay.seconds,
            image=message.image,
            source_message_id=message.source_message_id,
        )
        job_id = self._scheduler.schedule(party_id, delay.seconds)
        logger.info(
            "message_queued",
            party_id=party_id,
            job_id=job_id,
            delay=format_delay(delay.seconds),
            delay_kind=delay.kind,
            text=preview(message.text),
        )

        self._spawn(self._mark_read_later(party_id, message.source_message_id))

    async def _handle_owner_message(self, message: IncomingMessage) -> None:
        party_id = message.party.id
        parsed = self._parser.parse(message.text)

        if isinstance(parsed, OwnerCommand):
            owner_id = self._gateway.owner_id or 0
            response = await self._executor.execute(parsed, party_id, owner_id)
            try:
                await self._gateway.notify_owner(response)
            except Exception as e:
                logger.error("owner_notify_failed", error=str(e))
            return

        if isinstance(parsed, OwnerRequest):
            delay = self._delays.pick(is_owner=True)
            await self._pending.append(
                party_id,
                parsed.text,
                delay.seconds,
                image=message.image,
                source_message_id=message.source_message_id,
                from_owner=True,
            )
            self._scheduler.schedule(party_id, delay.seconds)
            logger.info("owner_request_queued", party_id=party_id, text=preview(parsed.text))
            return

        await self._record_manual_reply(message)

    async def _record_manual_reply(self, message: IncomingMessage) -> None:
        """The owner answered by hand: retire the backlog and keep the history."""
        party_id = message.party.id
        claimed = await self._pending.claim_all(party_id)
        conversation = await self._conversations.get_or_create_conversation(party_id)

        for item in claimed:
            await self._conversations.save_turn(
                Turn(
                    conversation_id=conversation.id,
                    role=Role.USER,
                    content=item.content,
                    image=item.image,
                    source_message_id=item.source_message_id,
                )
            )
        await self._conversations.save_turn(
            Turn(
                conversation_id=conversation.id,
                role=Role.ASSISTANT,
                content=message.text,
                image=message.image,
                source_message_id=message.source_message_id,
            )
        )
        logger.info("owner_manual_reply", party_id=party_id, claimed=len(claimed))

    async def handle_presence(self, event: PresenceEvent) -> None:
        if event.is_composing:
            await self._presence.mark_composing(event.party_id)
        else:
            await self._presence.mark_idle(event.party_id)

    async def handle_deleted(self, event: DeletedMessages) -> None:
        retired = await self._pending.mark_processed_by_source(event.party_id, event.message_ids)
        if retired:
            logger.info("pending_retired_on_delete", party_id=event.party_id, count=retired)

    async def _mark_read_later(self, party_id: int, message_id: int) -> None:
        cfg = self._read_status
        if self._rng.random() < cfg.seen_without_read_probability:
            logger.debug("read_receipt_skipped", party_id=party_id, message_id=message_id)
            return
        await self._sleep(self._rng.uniform(cfg.min_delay, cfg.max_delay))
        try:
            await self._gateway.mark_read(party_id, message_id)
        except Exception as e:
            logger.warning("read_receipt_failed", party_id=party_id, error=str(e))

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain_background(self) -> None:
        """Wait for outstanding read-receipt tasks."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
