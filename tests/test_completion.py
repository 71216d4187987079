"""Tests for message building and the Anthropic completion backend."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from mimic_bot.ai.client import (
    AnthropicCompletionService,
    CompletionError,
    ExtractedFact,
    parse_facts,
    parse_reply,
)
from mimic_bot.ai.conversation import ContextTurn, build_messages, render_transcript
from mimic_bot.config import AIConfig, AnthropicConfig
from mimic_bot.core.types import ReplyKind, Role


def _response(text: str) -> SimpleNamespace:
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)] if text else [],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        stop_reason="end_turn",
    )


def _service(text: str, **ai) -> tuple[AnthropicCompletionService, AsyncMock]:
    create = AsyncMock(return_value=_response(text))
    client = SimpleNamespace(messages=SimpleNamespace(create=create))
    service = AnthropicCompletionService(
        AnthropicConfig(api_key="test"),
        AIConfig(system_prompt="Be the owner.", **ai),
        reactions=["👍", "❤"],
        client=client,
    )
    return service, create


class TestBuildMessages:
    def test_system_turns_are_lifted_out(self):
        system, messages = build_messages(
            [
                ContextTurn(Role.SYSTEM, "summary"),
                ContextTurn(Role.USER, "hi"),
                ContextTurn(Role.SYSTEM, "facts"),
            ]
        )
        assert system == "summary\n\nfacts"
        assert messages == [{"role": "user", "content": "hi"}]

    def test_consecutive_same_role_turns_merge(self):
        _, messages = build_messages(
            [ContextTurn(Role.USER, "one"), ContextTurn(Role.USER, "two")]
        )
        assert len(messages) == 1
        assert [b["text"] for b in messages[0]["content"]] == ["one", "two"]

    def test_image_becomes_base64_block(self):
        _, messages = build_messages([ContextTurn(Role.USER, "look", b"\x00\x01")])
        blocks = messages[0]["content"]
        assert blocks[1]["type"] == "image"
        assert blocks[1]["source"]["data"] == "AAE="

    def test_leading_assistant_gets_placeholder_user(self):
        _, messages = build_messages(
            [ContextTurn(Role.ASSISTANT, "hello"), ContextTurn(Role.USER, "hi")]
        )
        assert [m["role"] for m in messages] == ["user", "assistant", "user"]

    def test_transcript_marks_images(self):
        text = render_transcript(
            [ContextTurn(Role.USER, "", b"img"), ContextTurn(Role.ASSISTANT, "nice")]
        )
        assert text == "user: [image]\nassistant: nice"


class TestParsing:
    def test_react_marker_is_ack(self):
        reply = parse_reply(" [REACT: 👍 ] ")
        assert reply.kind == ReplyKind.ACK
        assert reply.symbol == "👍"

    def test_plain_text(self):
        reply = parse_reply("  ну давай  ")
        assert reply.kind == ReplyKind.TEXT
        assert reply.text == "ну давай"

    def test_facts_json_with_code_fence(self):
        raw = '```json\n[{"category": "work", "fact": "Designer"}]\n```'
        assert parse_facts(raw) == [ExtractedFact(category="work", fact="Designer")]

    def test_malformed_facts_yield_nothing(self):
        assert parse_facts("no facts here") == []
        assert parse_facts('[{"category": "work"}]') == []


class TestAnthropicCompletionService:
    async def test_generate_reply_builds_system_prompt(self):
        service, create = _service("привет")

        reply = await service.generate_reply(
            [ContextTurn(Role.SYSTEM, "facts"), ContextTurn(Role.USER, "hi")], "Ann"
        )

        assert reply.text == "привет"
        kwargs = create.await_args.kwargs
        assert kwargs["system"].startswith("Be the owner.")
        assert "Ann" in kwargs["system"]
        assert "facts" in kwargs["system"]
        assert "👍 ❤" in kwargs["system"]
        assert kwargs["messages"] == [{"role": "user", "content": "hi"}]

    async def test_empty_completion_raises(self):
        service, _ = _service("")
        with pytest.raises(CompletionError):
            await service.generate_reply([ContextTurn(Role.USER, "hi")], "Ann")

    async def test_extract_facts_uses_window(self):
        service, create = _service('[{"category": "plans", "fact": "Trip"}]', facts_window=2)
        turns = [ContextTurn(Role.USER, f"m{i}") for i in range(5)]

        facts = await service.extract_facts(turns)

        assert facts[0].value == "Trip"
        request = create.await_args.kwargs["messages"][0]["content"]
        assert "m4" in request and "m3" in request and "m2" not in request

    async def test_summarize_returns_text(self):
        service, create = _service("short summary")
        assert await service.summarize([ContextTurn(Role.USER, "hi")]) == "short summary"
        assert create.await_args.kwargs["max_tokens"] == 500
