"""Shared test fixtures and fakes for mimic-bot."""

from __future__ import annotations

import random
from typing import Callable

import pytest

from mimic_bot.ai.client import CompletionError, CompletionService, ExtractedFact, GeneratedReply
from mimic_bot.ai.conversation import ContextTurn
from mimic_bot.config import AppConfig
from mimic_bot.core.types import ReplyKind
from mimic_bot.messenger.base import MessagingGateway
from mimic_bot.storage.conversation_repo import ConversationRepository
from mimic_bot.storage.database import Database
from mimic_bot.storage.pending_repo import PendingMessageRepository

# ---------------------------------------------------------------------------
# Shared helpers (plain classes and functions, importable by test files)
# ---------------------------------------------------------------------------


def make_config(**overrides) -> AppConfig:
    """AppConfig with dummy credentials; section overrides as dicts."""
    data = {
        "telegram": {"token": "test-token"},
        "anthropic": {"api_key": "test-key"},
    }
    data.update(overrides)
    return AppConfig(**data)


class FixedRandom(random.Random):
    """random() always returns *value*; uniform(a, b) follows from it."""

    def __init__(self, value: float = 0.0, seed: int = 0):
        super().__init__(seed)
        self.value = value

    def random(self) -> float:  # type: ignore[override]
        return self.value


class FakeClock:
    """Monotonic clock advanced only by its own sleep()."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


async def no_sleep(_seconds: float) -> None:
    return None


class FakeGateway(MessagingGateway):
    """Records every outbound call; failures can be switched on per call type."""

    def __init__(self, owner_id: int | None = 1):
        super().__init__()
        self._owner_id = owner_id
        self.sent: list[tuple[int, str]] = []
        self.edits: list[tuple[int, int, str]] = []
        self.typing: list[int] = []
        self.reads: list[tuple[int, int]] = []
        self.reactions: list[tuple[int, int, str]] = []
        self.owner_notes: list[str] = []
        self.fail_send_after: int | None = None
        self.fail_reaction = False
        self.fail_typing = False
        self.fail_edit = False
        self.on_send: Callable[[int, str], object] | None = None
        self._next_id = 100

    @property
    def platform_name(self) -> str:
        return "fake"

    async def start(self) -> None:
        pass

    async def stop(self) -> None:
        pass

    async def send_text(self, party_id: int, text: str) -> int:
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise RuntimeError("send failed")
        self.sent.append((party_id, text))
        if self.on_send:
            result = self.on_send(party_id, text)
            if hasattr(result, "__await__"):
                await result
        self._next_id += 1
        return self._next_id

    async def edit_text(self, party_id: int, message_id: int, text: str) -> None:
        if self.fail_edit:
            raise RuntimeError("edit failed")
        self.edits.append((party_id, message_id, text))

    async def set_typing(self, party_id: int) -> None:
        if self.fail_typing:
            raise RuntimeError("typing failed")
        self.typing.append(party_id)

    async def mark_read(self, party_id: int, message_id: int) -> None:
        self.reads.append((party_id, message_id))

    async def send_reaction(self, party_id: int, message_id: int, symbol: str) -> None:
        if self.fail_reaction:
            raise RuntimeError("reaction failed")
        self.reactions.append((party_id, message_id, symbol))

    async def notify_owner(self, text: str) -> None:
        self.owner_notes.append(text)

    def texts_to(self, party_id: int) -> list[str]:
        return [text for pid, text in self.sent if pid == party_id]


class FakeCompletion(CompletionService):
    """Scripted completion service."""

    def __init__(
        self,
        reply: GeneratedReply | None = None,
        summary: str = "summary",
        facts: list[ExtractedFact] | None = None,
    ):
        self.reply = reply or GeneratedReply(kind=ReplyKind.TEXT, text="Привет")
        self.summary = summary
        self.facts = facts or []
        self.fail = False
        self.reply_calls: list[tuple[list[ContextTurn], str]] = []
        self.summary_calls: list[list[ContextTurn]] = []
        self.fact_calls: list[list[ContextTurn]] = []
        self.before_reply: Callable[[], object] | None = None

    async def generate_reply(
        self, turns: list[ContextTurn], party_display_name: str
    ) -> GeneratedReply:
        self.reply_calls.append((list(turns), party_display_name))
        if self.before_reply:
            result = self.before_reply()
            if hasattr(result, "__await__"):
                await result
        if self.fail:
            raise CompletionError("scripted failure")
        return self.reply

    async def summarize(self, turns: list[ContextTurn]) -> str:
        self.summary_calls.append(list(turns))
        return self.summary

    async def extract_facts(self, turns: list[ContextTurn]) -> list[ExtractedFact]:
        self.fact_calls.append(list(turns))
        return self.facts


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def conversations(db) -> ConversationRepository:
    return ConversationRepository(db)


@pytest.fixture
def pending(db) -> PendingMessageRepository:
    return PendingMessageRepository(db)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def completion() -> FakeCompletion:
    return FakeCompletion()
