"""Completion service abstraction with an Anthropic API backend."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

import anthropic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from mimic_bot.ai import prompts
from mimic_bot.ai.conversation import ContextTurn, build_messages, render_transcript
from mimic_bot.config import AIConfig, AnthropicConfig
from mimic_bot.core.types import ReplyKind
from mimic_bot.log import get_logger

logger = get_logger(__name__)

_REACT_PATTERN = re.compile(r"^\s*\[REACT:\s*(.+?)\s*\]\s*$")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class CompletionError(Exception):
    """The completion service failed or returned nothing usable."""


@dataclass(frozen=True, slots=True)
class GeneratedReply:
    kind: ReplyKind
    text: str = ""
    symbol: Optional[str] = None

    @classmethod
    def ack(cls, symbol: str) -> GeneratedReply:
        return cls(kind=ReplyKind.ACK, symbol=symbol)


class ExtractedFact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str = Field(min_length=1)
    value: str = Field(alias="fact", min_length=1)


_FACT_LIST = TypeAdapter(list[ExtractedFact])


def parse_reply(text: str) -> GeneratedReply:
    """Turn raw model output into a text reply or an acknowledgment."""
    match = _REACT_PATTERN.match(text)
    if match:
        return GeneratedReply.ack(match.group(1))
    return GeneratedReply(kind=ReplyKind.TEXT, text=text.strip())


def parse_facts(raw: str) -> list[ExtractedFact]:
    """Parse the fact-extraction answer; malformed output yields no facts."""
    cleaned = _CODE_FENCE.sub("", raw.strip())
    try:
        return _FACT_LIST.validate_python(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("facts_parse_failed", error=str(e))
        return []


class CompletionService(ABC):
    """What the pipeline and memory manager need from a language model."""

    @abstractmethod
    async def generate_reply(
        self, turns: list[ContextTurn], party_display_name: str
    ) -> GeneratedReply:
        ...

    @abstractmethod
    async def summarize(self, turns: list[ContextTurn]) -> str:
        ...

    @abstractmethod
    async def extract_facts(self, turns: list[ContextTurn]) -> list[ExtractedFact]:
        ...


class AnthropicCompletionService(CompletionService):
    """Anthropic Messages API backend using the official SDK."""

    def __init__(
        self,
        config: AnthropicConfig,
        ai_config: AIConfig,
        reactions: list[str],
        client: Any = None,
    ):
        self._client = client or anthropic.AsyncAnthropic(
            api_key=config.api_key,
            base_url=config.base_url,
            max_retries=config.max_retries,
            timeout=config.timeout,
        )
        self._ai = ai_config
        self._base_prompt = ai_config.resolve_system_prompt()
        self._reactions = reactions

    async def generate_reply(
        self, turns: list[ContextTurn], party_display_name: str
    ) -> GeneratedReply:
        addendum, messages = build_messages(turns)
        system_parts = [self._base_prompt] if self._base_prompt else []
        system_parts.append(
            prompts.REACTION_INSTRUCTIONS.format(allowed=" ".join(self._reactions))
        )
        if party_display_name:
            system_parts.append(prompts.PARTY_NAME_LINE.format(name=party_display_name))
        if addendum:
            system_parts.append(addendum)

        text = await self._complete(
            system="\n\n".join(system_parts),
            messages=messages,
            max_tokens=self._ai.max_tokens,
            temperature=self._ai.temperature,
        )
        return parse_reply(text)

    async def summarize(self, turns: list[ContextTurn]) -> str:
        request = prompts.SUMMARY_REQUEST.format(transcript=render_transcript(turns))
        return await self._complete(
            system=prompts.SUMMARY_PROMPT,
            messages=[{"role": "user", "content": request}],
            max_tokens=self._ai.summary_max_tokens,
            temperature=0.5,
        )

    async def extract_facts(self, turns: list[ContextTurn]) -> list[ExtractedFact]:
        window = turns[-self._ai.facts_window:]
        request = prompts.FACTS_REQUEST.format(transcript=render_transcript(window))
        raw = await self._complete(
            system=prompts.FACTS_PROMPT,
            messages=[{"role": "user", "content": request}],
            max_tokens=self._ai.facts_max_tokens,
            temperature=0.3,
        )
        return parse_facts(raw)

    async def _complete(
        self,
        system: str,
        messages: list[dict[str, Any]],
        max_tokens: int,
        temperature: float,
    ) -> str:
        logger.debug("api_request", model=self._ai.model, message_count=len(messages))
        try:
            response = await self._client.messages.create(
                model=self._ai.model,
                max_tokens=max_tokens,
                system=system,
                messages=messages,
                temperature=temperature,
            )
        except anthropic.APIError as e:
            logger.error("api_error", model=self._ai.model, error=str(e))
            raise CompletionError(str(e)) from e

        logger.debug(
            "api_response",
            model=self._ai.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        ).strip()
        if not text:
            raise CompletionError("Empty completion")
        return text
