"""Owner control grammar: wake word + command, typed into a party's chat."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Union

from mimic_bot.core.delays import format_delay
from mimic_bot.core.rate_limit import RateGovernor
from mimic_bot.log import get_logger
from mimic_bot.storage.conversation_repo import ConversationRepository

logger = get_logger(__name__)


class CommandKind(StrEnum):
    GET_ID = "get-identifier"
    GET_PROFILE = "get-profile"
    GET_STATS = "get-stats"
    SET_CONTEXT = "set-custom-context"
    CLEAR_CONTEXT = "clear-custom-context"
    LIST_IGNORED = "list-ignored"
    IGNORE_CHAT = "ignore-this-chat"
    UNIGNORE_CHAT = "unignore-this-chat"
    LIST_COMMANDS = "list-commands"


@dataclass(frozen=True, slots=True)
class OwnerCommand:
    kind: CommandKind
    argument: Optional[str] = None


@dataclass(frozen=True, slots=True)
class OwnerRequest:
    """Wake-word text that is not a known command; answered by the model."""

    text: str


@dataclass(frozen=True, slots=True)
class NotACommand:
    pass


ParseResult = Union[OwnerCommand, OwnerRequest, NotACommand]

_ALIASES: dict[CommandKind, tuple[str, ...]] = {
    CommandKind.GET_ID: ("айди", "мой айди", "айди чата", "айди пользователя", "id", "my id"),
    CommandKind.GET_PROFILE: ("информация", "моя информация", "информация о чате", "инфо", "info"),
    CommandKind.LIST_COMMANDS: ("команды", "список команд", "помощь", "help", "commands"),
    CommandKind.GET_STATS: ("статистика", "стата", "stats"),
    CommandKind.CLEAR_CONTEXT: ("очистить контекст", "удалить контекст", "clear context"),
    CommandKind.LIST_IGNORED: ("игнор-лист", "список игнорируемых", "ignored list"),
    CommandKind.IGNORE_CHAT: ("стоп", "stop"),
    CommandKind.UNIGNORE_CHAT: ("продолжай", "continue"),
}

_SET_CONTEXT_PREFIXES = ("установить контекст", "set context")
_EDGE_SEPARATORS = re.compile(r"^[,\s]+|[,\s]+$")


class CommandParser:
    """Recognizes the wake word and maps the rest onto a command kind."""

    def __init__(self, wake_word: str):
        self._wake_word = wake_word
        self._wake_pattern = re.compile(re.escape(wake_word), re.IGNORECASE)

    def parse(self, text: str) -> ParseResult:
        if not text or not self._wake_pattern.search(text):
            return NotACommand()

        body = _EDGE_SEPARATORS.sub("", self._wake_pattern.sub("", text)).strip()
        lowered = body.lower()

        # Every occurrence of the wake word is removed, so "стоп канатик" is "стоп"
        for kind, aliases in _ALIASES.items():
            if lowered in aliases:
                return OwnerCommand(kind)

        for prefix in _SET_CONTEXT_PREFIXES:
            if lowered == prefix or lowered.startswith(prefix + " "):
                return OwnerCommand(CommandKind.SET_CONTEXT, body[len(prefix):].strip())

        return OwnerRequest(body or text.strip())


def _dash(value: Optional[str]) -> str:
    return value or "-"


class OwnerCommandExecutor:
    """Runs owner commands against storage and returns the owner-facing text."""

    def __init__(
        self,
        repo: ConversationRepository,
        rate_governor: RateGovernor,
        wake_word: str,
    ):
        self._repo = repo
        self._rate = rate_governor
        self._wake_word = wake_word

    async def execute(self, command: OwnerCommand, party_id: int, owner_id: int) -> str:
        logger.info("owner_command", kind=str(command.kind), party_id=party_id)
        kind = command.kind

        if kind == CommandKind.GET_ID:
            return f"Твой Telegram ID: `{owner_id}`\nID собеседника: `{party_id}`"
        if kind == CommandKind.GET_PROFILE:
            return await self._profile(party_id)
        if kind == CommandKind.GET_STATS:
            return await self._stats(party_id)
        if kind == CommandKind.SET_CONTEXT:
            return await self._set_context(party_id, command.argument)
        if kind == CommandKind.CLEAR_CONTEXT:
            await self._repo.set_custom_context(party_id, None)
            return "Персональный контекст удален."
        if kind == CommandKind.LIST_IGNORED:
            return await self._ignored_list()
        if kind == CommandKind.IGNORE_CHAT:
            await self._repo.set_ignored(party_id, True)
            return "Чат добавлен в игнор-лист. Я не буду отвечать на сообщения из этого чата."
        if kind == CommandKind.UNIGNORE_CHAT:
            await self._repo.set_ignored(party_id, False)
            return "Чат удален из игнор-листа. Я снова буду отвечать на сообщения."
        return self.help_text()

    async def _profile(self, party_id: int) -> str:
        party = await self._repo.get_party(party_id)
        if party is None:
            return "Пользователь не найден в базе данных."

        lines = [
            "Информация о пользователе",
            "",
            f"Telegram ID: `{party.id}`",
            f"Username: {_dash(party.username)}",
            f"Имя: {_dash(party.display_name)}",
            f"Создан: {party.created_at:%Y-%m-%d %H:%M}" if party.created_at else "Создан: -",
            "",
        ]
        if party.custom_context:
            lines.append(f"Персональный контекст:\n{party.custom_context}")
        else:
            lines.append("Персональный контекст не установлен.")
        facts = await self._repo.get_facts(party_id)
        if facts:
            lines.append("")
            lines.append("Факты:")
            lines.extend(f"• [{fact.category}] {fact.value}" for fact in facts)
        return "\n".join(lines)

    async def _stats(self, party_id: int) -> str:
        stats = await self._repo.party_stats(party_id)
        reset_in = await self._rate.time_to_reset(party_id)
        lines = [
            "Статистика",
            "",
            f"Всего диалогов: {stats.conversations}",
            f"Всего сообщений: {stats.turns}",
            f"├─ Собеседника: {stats.user_turns}",
            f"└─ Ассистента: {stats.assistant_turns}",
            f"В очереди: {stats.pending}",
            f"Фактов: {stats.facts}",
        ]
        if reset_in > 0:
            lines.append(f"Сброс лимита через: {format_delay(reset_in)}")
        return "\n".join(lines)

    async def _set_context(self, party_id: int, context: Optional[str]) -> str:
        if not context:
            return (
                "Укажи текст контекста после команды.\n\n"
                f"Пример: `{self._wake_word}, установить контекст Это мой руководитель`"
            )
        await self._repo.set_custom_context(party_id, context)
        logger.info("custom_context_set", party_id=party_id, length=len(context))
        return f"Персональный контекст обновлен:\n\n{context}"

    async def _ignored_list(self) -> str:
        parties = await self._repo.list_ignored_parties()
        if not parties:
            return "Игнор-лист пуст."
        lines = [f"Игнорируемые чаты ({len(parties)}):", ""]
        for party in parties:
            name = " ".join(p for p in (party.first_name, party.last_name) if p) or "Без имени"
            username = f" @{party.username}" if party.username else ""
            lines.append(f"• {name}{username}")
            lines.append(f"  ID: `{party.id}`")
        return "\n".join(lines)

    def help_text(self) -> str:
        w = self._wake_word
        return (
            "Доступные команды для владельца:\n\n"
            "📋 Информация\n"
            f"• `{w}, айди` - получить свой Telegram ID\n"
            f"• `{w}, информация` - информация о собеседнике\n\n"
            "📊 Статистика\n"
            f"• `{w}, статистика` - статистика по сообщениям\n\n"
            "⚙️ Управление контекстом\n"
            f"• `{w}, установить контекст [текст]` - установить персональный контекст\n"
            f"• `{w}, очистить контекст` - удалить персональный контекст\n\n"
            "🚫 Игнор-лист\n"
            f"• `{w}, игнор-лист` - список игнорируемых чатов\n"
            f"• `{w}, стоп` - добавить текущий чат в игнор-лист\n"
            f"• `{w}, продолжай` - убрать текущий чат из игнор-листа\n\n"
            "❓ Помощь\n"
            f"• `{w}, команды` - показать этот список\n\n"
            f"Другие запросы: `{w}, [что угодно]` обрабатывается как запрос к ассистенту."
        )
