"""Conversation memory: context windows, rolling summaries and party facts."""

from __future__ import annotations

from typing import Optional

from mimic_bot.ai import prompts
from mimic_bot.ai.client import CompletionService, ExtractedFact
from mimic_bot.ai.conversation import ContextTurn
from mimic_bot.core.types import Role
from mimic_bot.log import get_logger
from mimic_bot.storage.conversation_repo import ConversationRepository
from mimic_bot.storage.models import Conversation

logger = get_logger(__name__)


class ConversationMemory:
    """Builds the model context for a conversation and keeps it bounded.

    Once a conversation holds more than ``summary_threshold`` turns, all but
    the newest ``context_limit`` are folded into the rolling summary.
    """

    def __init__(
        self,
        repo: ConversationRepository,
        completion: CompletionService,
        context_limit: int = 10,
        summary_threshold: int = 50,
    ):
        self._repo = repo
        self._completion = completion
        self._context_limit = context_limit
        self._summary_threshold = summary_threshold

    async def get_context(self, conversation: Conversation) -> list[ContextTurn]:
        """Summary turn (if any) followed by the newest stored turns, oldest first."""
        turns: list[ContextTurn] = []
        if conversation.summary:
            turns.append(
                ContextTurn(Role.SYSTEM, prompts.SUMMARY_TURN.format(summary=conversation.summary))
            )
        recent = await self._repo.recent_turns(conversation.id, self._context_limit)
        turns.extend(ContextTurn.from_turn(turn) for turn in recent)
        return turns

    async def compact_if_needed(self, conversation: Conversation) -> bool:
        """Summarize older turns when the conversation grew past the threshold.

        The summary rewrite and the deletion of the summarized turns commit
        together. Returns True if a compaction happened.
        """
        count = await self._repo.count_turns(conversation.id)
        if count <= self._summary_threshold:
            return False

        stored = await self._repo.all_turns(conversation.id)
        to_compact = stored[: -self._context_limit] if self._context_limit else stored
        if not to_compact:
            return False

        source: list[ContextTurn] = []
        if conversation.summary:
            source.append(
                ContextTurn(Role.SYSTEM, prompts.SUMMARY_TURN.format(summary=conversation.summary))
            )
        source.extend(ContextTurn.from_turn(turn) for turn in to_compact)

        summary = await self._completion.summarize(source)
        await self._repo.replace_summary(
            conversation.id, summary, [turn.id for turn in to_compact if turn.id is not None]
        )
        conversation.summary = summary
        logger.info(
            "conversation_summary_updated",
            conversation_id=conversation.id,
            compacted=len(to_compact),
            kept=len(stored) - len(to_compact),
        )
        return True

    async def record_facts(self, party_id: int, facts: list[ExtractedFact]) -> int:
        """Upsert facts by category; failures of single facts are skipped."""
        saved = 0
        for fact in facts:
            try:
                await self._repo.upsert_fact(party_id, fact.category, fact.value)
                saved += 1
            except Exception as e:
                logger.error("fact_save_failed", party_id=party_id, category=fact.category, error=str(e))
        if saved:
            logger.info("facts_recorded", party_id=party_id, count=saved)
        return saved

    async def get_facts_turn(self, party_id: int) -> Optional[ContextTurn]:
        facts = await self._repo.get_facts(party_id)
        if not facts:
            return None
        lines = [prompts.FACTS_HEADER]
        lines.extend(f"  - [{fact.category}] {fact.value}" for fact in facts)
        return ContextTurn(Role.SYSTEM, "\n".join(lines))

    async def extract_and_record(self, party_id: int, turns: list[ContextTurn]) -> int:
        """Ask the model for new facts about the party and store them."""
        facts = await self._completion.extract_facts(turns)
        if not facts:
            return 0
        return await self.record_facts(party_id, facts)
