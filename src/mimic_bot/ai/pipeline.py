"""Response generation pipeline for one party's batch of pending messages.

A run re-reads all state it needs; nothing is carried over from the event
that scheduled it. The batch is reconciled against the buffer after the
quiet wait and again right before delivery, so messages claimed by the
owner, deleted, or handled by an overlapping run are never answered twice.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Optional

from mimic_bot.ai import prompts
from mimic_bot.ai.client import CompletionService, GeneratedReply
from mimic_bot.ai.conversation import ContextTurn
from mimic_bot.ai.memory import ConversationMemory
from mimic_bot.config import HumanizeConfig, ProcessingConfig
from mimic_bot.core.presence import TypingTracker
from mimic_bot.core.types import PipelineState, ReplyKind, Role
from mimic_bot.humanize.delivery import DeliveryError, HumanizedDelivery
from mimic_bot.log import get_logger
from mimic_bot.messenger.base import MessagingGateway
from mimic_bot.storage.conversation_repo import ConversationRepository
from mimic_bot.storage.models import Conversation, PendingMessage, Turn
from mimic_bot.storage.pending_repo import PendingMessageRepository

logger = get_logger(__name__)


@dataclass
class PipelineOutcome:
    state: PipelineState
    replied: bool = False
    processed_ids: list[int] = field(default_factory=list)
    reason: Optional[str] = None


class ResponsePipeline:
    """GATHERING -> AWAITING_QUIET -> RECONCILING -> GENERATING -> DELIVERING -> FINALIZING."""

    def __init__(
        self,
        pending: PendingMessageRepository,
        conversations: ConversationRepository,
        memory: ConversationMemory,
        completion: CompletionService,
        presence: TypingTracker,
        delivery: HumanizedDelivery,
        gateway: MessagingGateway,
        processing: ProcessingConfig,
        humanize: HumanizeConfig,
    ):
        self._pending = pending
        self._conversations = conversations
        self._memory = memory
        self._completion = completion
        self._presence = presence
        self._delivery = delivery
        self._gateway = gateway
        self._processing = processing
        self._humanize = humanize
        self._background: set[asyncio.Task] = set()
        self._locks: dict[int, asyncio.Lock] = {}

    async def run(self, party_id: int) -> PipelineOutcome:
        """Process everything pending for *party_id*.

        Runs for the same party are serialized; a run that waited on another
        finds the batch already processed and aborts as empty. Raises
        CompletionError or DeliveryError when the run should be retried; the
        batch then stays unprocessed.
        """
        lock = self._locks.setdefault(party_id, asyncio.Lock())
        async with lock:
            return await self._run(party_id)

    async def _run(self, party_id: int) -> PipelineOutcome:
        log = logger.bind(party_id=party_id, run_id=uuid.uuid4().hex[:8])

        # GATHERING
        conversation = await self._conversations.get_or_create_conversation(party_id)
        batch = await self._pending.list_unprocessed(party_id)

        if conversation.ignored:
            drained = await self._pending.mark_processed([m.id for m in batch])
            log.info("pipeline_aborted", reason="ignored", drained=drained)
            return PipelineOutcome(PipelineState.ABORTED, reason="ignored")
        if not batch:
            log.debug("pipeline_aborted", reason="empty")
            return PipelineOutcome(PipelineState.ABORTED, reason="empty")

        log.info("pipeline_started", batch=len(batch))

        # AWAITING_QUIET
        quiet = await self._presence.await_quiet(
            party_id, max_wait=self._processing.max_quiet_wait
        )
        if not quiet:
            log.info("pipeline_quiet_timeout_proceeding")

        # RECONCILING
        survivors = await self._reconcile(party_id, batch)
        if not survivors:
            log.info("pipeline_aborted", reason="no_survivors")
            return PipelineOutcome(PipelineState.ABORTED, reason="no_survivors")
        if len(survivors) < len(batch):
            log.info("pipeline_partial_batch", survivors=len(survivors), batch=len(batch))

        # GENERATING
        party = await self._conversations.get_party(party_id)
        context = await self._build_context(conversation, batch, party.custom_context if party else None)
        await self._show_typing(party_id)
        reply = self._coerce(await self._completion.generate_reply(
            context, party.display_name if party else ""
        ))
        log.info("reply_generated", kind=str(reply.kind), length=len(reply.text))

        survivors = await self._reconcile(party_id, survivors)
        if not survivors:
            log.info("pipeline_aborted", reason="claimed_during_generation")
            return PipelineOutcome(PipelineState.ABORTED, reason="claimed_during_generation")

        # DELIVERING
        if reply.kind == ReplyKind.ACK:
            assistant_text = await self._delivery.deliver_ack(
                party_id, survivors[-1].source_message_id, reply.symbol or ""
            )
        else:
            report = await self._delivery.deliver(party_id, reply.text)
            if not report.sent_chunks:
                raise DeliveryError(report.error or "reply produced no chunks")
            if not report.complete:
                log.warning("pipeline_partial_delivery", sent=len(report.sent_chunks))
            assistant_text = report.text

        # FINALIZING
        await self._finalize(conversation, survivors, assistant_text)
        processed = [m.id for m in survivors]
        await self._pending.mark_processed(processed)

        try:
            await self._memory.compact_if_needed(conversation)
        except Exception as e:
            log.error("compaction_failed", error=str(e))

        self._spawn_fact_extraction(party_id, conversation)
        log.info("pipeline_done", processed=len(processed))
        return PipelineOutcome(PipelineState.DONE, replied=True, processed_ids=processed)

    async def _reconcile(
        self, party_id: int, batch: list[PendingMessage]
    ) -> list[PendingMessage]:
        """Members of *batch* that are still unprocessed, in batch order."""
        live = {m.id for m in await self._pending.list_unprocessed(party_id)}
        return [m for m in batch if m.id in live]

    async def _build_context(
        self,
        conversation: Conversation,
        batch: list[PendingMessage],
        custom_context: Optional[str],
    ) -> list[ContextTurn]:
        context = await self._memory.get_context(conversation)
        stored_sources = {
            t.source_message_id
            for t in await self._conversations.recent_turns(
                conversation.id, self._processing.context_messages_limit
            )
            if t.source_message_id is not None
        }
        context.extend(
            ContextTurn(Role.USER, m.content, m.image)
            for m in batch
            if m.source_message_id is None or m.source_message_id not in stored_sources
        )

        if custom_context:
            context.append(
                ContextTurn(Role.SYSTEM, prompts.CUSTOM_CONTEXT_TURN.format(context=custom_context))
            )
        facts_turn = await self._memory.get_facts_turn(conversation.party_id)
        if facts_turn:
            context.append(facts_turn)
        if any(m.from_owner for m in batch):
            context.append(ContextTurn(Role.SYSTEM, prompts.OWNER_REQUEST_TURN))
        return context

    def _coerce(self, reply: GeneratedReply) -> GeneratedReply:
        if reply.kind == ReplyKind.ACK and reply.symbol not in self._humanize.reaction_allow_list:
            logger.warning("reaction_not_allowed", symbol=reply.symbol)
            return GeneratedReply(kind=ReplyKind.TEXT, text=self._humanize.ack_fallback_text)
        return reply

    async def _finalize(
        self,
        conversation: Conversation,
        survivors: list[PendingMessage],
        assistant_text: str,
    ) -> None:
        for message in survivors:
            await self._conversations.save_turn(
                Turn(
                    conversation_id=conversation.id,
                    role=Role.USER,
                    content=message.content,
                    image=message.image,
                    source_message_id=message.source_message_id,
                )
            )
        await self._conversations.save_turn(
            Turn(conversation_id=conversation.id, role=Role.ASSISTANT, content=assistant_text)
        )

    async def _show_typing(self, party_id: int) -> None:
        try:
            await self._gateway.set_typing(party_id)
        except Exception as e:
            logger.warning("typing_indicator_failed", party_id=party_id, error=str(e))

    def _spawn_fact_extraction(self, party_id: int, conversation: Conversation) -> None:
        task = asyncio.create_task(self._extract_facts(party_id, conversation))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _extract_facts(self, party_id: int, conversation: Conversation) -> None:
        try:
            context = await self._memory.get_context(conversation)
            turns = [t for t in context if t.role != Role.SYSTEM]
            await self._memory.extract_and_record(party_id, turns)
        except Exception as e:
            logger.error("fact_extraction_failed", party_id=party_id, error=str(e))

    async def drain_background(self) -> None:
        """Wait for outstanding fact-extraction tasks."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
