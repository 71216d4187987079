"""Application orchestrator - wires all components and manages lifecycle."""

from __future__ import annotations

import random
from datetime import timedelta

from mimic_bot.ai.client import AnthropicCompletionService, CompletionService
from mimic_bot.ai.handler import InboundHandler
from mimic_bot.ai.memory import ConversationMemory
from mimic_bot.ai.owner_commands import CommandParser, OwnerCommandExecutor
from mimic_bot.ai.pipeline import ResponsePipeline
from mimic_bot.config import AppConfig
from mimic_bot.core.delays import DelayPolicy
from mimic_bot.core.ephemeral import EphemeralStore
from mimic_bot.core.presence import TypingTracker
from mimic_bot.core.rate_limit import RateGovernor
from mimic_bot.humanize.delivery import HumanizedDelivery
from mimic_bot.log import get_logger
from mimic_bot.messenger.base import MessagingGateway
from mimic_bot.services.scheduler import DebounceScheduler
from mimic_bot.storage.conversation_repo import ConversationRepository
from mimic_bot.storage.database import Database
from mimic_bot.storage.pending_repo import PendingMessageRepository

logger = get_logger(__name__)

PRUNE_JOB_ID = "prune-pending"


class MimicBotApp:
    """Top-level application orchestrator.

    The gateway and completion service can be injected; by default the
    Telegram Business gateway and the Anthropic backend are built from config.
    """

    def __init__(
        self,
        config: AppConfig,
        gateway: MessagingGateway | None = None,
        completion: CompletionService | None = None,
        rng: random.Random | None = None,
    ):
        self.config = config
        rng = rng or random.Random()

        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.pending_repo = PendingMessageRepository(self.db)

        self.store = EphemeralStore()
        self.rate_governor = RateGovernor(self.store, config.rate_limit)
        self.presence = TypingTracker(self.store, config.presence)

        self.gateway = gateway or self._create_gateway()
        self.completion = completion or AnthropicCompletionService(
            config.anthropic, config.ai, config.humanize.reaction_allow_list
        )
        self.scheduler = DebounceScheduler(config.scheduler)

        self.memory = ConversationMemory(
            self.conversation_repo,
            self.completion,
            context_limit=config.processing.context_messages_limit,
            summary_threshold=config.processing.summary_threshold,
        )
        self.delivery = HumanizedDelivery(self.gateway, config.humanize, rng=rng)
        self.pipeline = ResponsePipeline(
            pending=self.pending_repo,
            conversations=self.conversation_repo,
            memory=self.memory,
            completion=self.completion,
            presence=self.presence,
            delivery=self.delivery,
            gateway=self.gateway,
            processing=config.processing,
            humanize=config.humanize,
        )
        self.handler = InboundHandler(
            gateway=self.gateway,
            conversations=self.conversation_repo,
            pending=self.pending_repo,
            rate_governor=self.rate_governor,
            presence=self.presence,
            scheduler=self.scheduler,
            delay_policy=DelayPolicy(config.delay, rng=rng),
            parser=CommandParser(config.owner.wake_word),
            executor=OwnerCommandExecutor(
                self.conversation_repo, self.rate_governor, config.owner.wake_word
            ),
            rate_config=config.rate_limit,
            read_status=config.read_status,
            rng=rng,
        )

    async def start(self) -> None:
        """Initialize and start all components."""
        # 1. Database
        await self.db.initialize()

        # 2. Scheduler
        self.scheduler.set_task(self.pipeline.run)
        await self.scheduler.start()
        self.scheduler.add_cron_job(
            cron_expr=self.config.scheduler.prune_cron,
            callback=self.prune_pending,
            job_id=PRUNE_JOB_ID,
        )

        # 3. Gateway
        self.gateway.on_message(self.handler.handle)
        self.gateway.on_presence(self.handler.handle_presence)
        self.gateway.on_deleted(self.handler.handle_deleted)
        await self.gateway.start()

        logger.info(
            "mimic_bot_started",
            platform=self.gateway.platform_name,
            model=self.config.ai.model,
        )

    async def stop(self) -> None:
        """Gracefully shut down all components."""
        try:
            await self.gateway.stop()
        except Exception as e:
            logger.error("gateway_stop_error", error=str(e))

        await self.scheduler.stop()
        await self.handler.drain_background()
        await self.pipeline.drain_background()
        await self.db.close()
        logger.info("mimic_bot_stopped")

    async def prune_pending(self) -> int:
        """Delete processed pending messages past the retention period.

        Also drops expired typing markers and rate windows from the
        ephemeral store.
        """
        swept = await self.store.sweep()
        if swept:
            logger.debug("ephemeral_keys_swept", count=swept)
        try:
            return await self.pending_repo.prune_processed(
                timedelta(hours=self.config.processing.pending_retention_hours)
            )
        except Exception as e:
            logger.error("pending_prune_failed", error=str(e))
            return 0

    def _create_gateway(self) -> MessagingGateway:
        from mimic_bot.messenger.telegram import TelegramBusinessGateway

        return TelegramBusinessGateway(self.config.telegram, self.config.owner)
