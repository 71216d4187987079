"""Telegram gateway over a Business connection using python-telegram-bot v22+.

The owner links the bot to their personal account (Telegram Business ->
Chatbots). Private messages from other people, and the owner's own replies
in those chats, then arrive as business updates, and the bot can send,
edit and read messages on the owner's behalf.

The Bot API does not deliver the other side's typing status, so this
gateway never emits presence events; the presence tracker then simply
measures quiet time from the start of the wait.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from telegram import Message, Update
from telegram.constants import ChatAction, ChatType
from telegram.ext import (
    Application,
    BusinessConnectionHandler,
    BusinessMessagesDeletedHandler,
    MessageHandler as TGMessageHandler,
    filters,
)

from mimic_bot.config import OwnerConfig, TelegramConfig
from mimic_bot.core.types import ChatKind
from mimic_bot.log import get_logger, preview
from mimic_bot.messenger.base import MessagingGateway
from mimic_bot.messenger.models import DeletedMessages, IncomingMessage, PartyInfo

logger = get_logger(__name__)

_CHAT_KINDS = {
    ChatType.PRIVATE: ChatKind.PRIVATE,
    ChatType.GROUP: ChatKind.GROUP,
    ChatType.SUPERGROUP: ChatKind.GROUP,
    ChatType.CHANNEL: ChatKind.CHANNEL,
}


class TelegramBusinessGateway(MessagingGateway):
    """Messaging gateway acting on the owner's Telegram account."""

    def __init__(self, config: TelegramConfig, owner: OwnerConfig):
        super().__init__()
        self._config = config
        self._app: Application | None = None  # type: ignore[type-arg]
        self._connection_id: str | None = config.business_connection_id
        self._owner_id: int | None = owner.user_id

    @property
    def platform_name(self) -> str:
        return "telegram"

    async def start(self) -> None:
        if not self._config.token:
            raise ValueError("Telegram bot token not configured")

        self._app = Application.builder().token(self._config.token).build()
        self._app.add_handler(BusinessConnectionHandler(self._on_business_connection))
        self._app.add_handler(BusinessMessagesDeletedHandler(self._on_messages_deleted))
        self._app.add_handler(
            TGMessageHandler(filters.UpdateType.BUSINESS_MESSAGE, self._on_business_message)
        )

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(  # type: ignore[union-attr]
            allowed_updates=Update.ALL_TYPES, drop_pending_updates=True
        )
        logger.info("telegram_gateway_started", connection_id=self._connection_id)

    async def stop(self) -> None:
        if self._app:
            await self._app.updater.stop()  # type: ignore[union-attr]
            await self._app.stop()
            await self._app.shutdown()
            self._app = None
            logger.info("telegram_gateway_stopped")

    # -- outbound --------------------------------------------------------

    async def send_text(self, party_id: int, text: str) -> int:
        message = await self._bot.send_message(
            chat_id=party_id,
            text=text,
            business_connection_id=self._require_connection(),
        )
        logger.info("telegram_message_sent", party_id=party_id, message_id=message.message_id)
        return message.message_id

    async def edit_text(self, party_id: int, message_id: int, text: str) -> None:
        await self._bot.edit_message_text(
            text=text,
            chat_id=party_id,
            message_id=message_id,
            business_connection_id=self._require_connection(),
        )

    async def set_typing(self, party_id: int) -> None:
        await self._bot.send_chat_action(
            chat_id=party_id,
            action=ChatAction.TYPING,
            business_connection_id=self._require_connection(),
        )

    async def mark_read(self, party_id: int, message_id: int) -> None:
        await self._bot.read_business_message(
            business_connection_id=self._require_connection(),
            chat_id=party_id,
            message_id=message_id,
        )

    async def send_reaction(self, party_id: int, message_id: int, symbol: str) -> None:
        await self._bot.set_message_reaction(
            chat_id=party_id, message_id=message_id, reaction=symbol
        )

    async def notify_owner(self, text: str) -> None:
        if self._owner_id is None:
            logger.warning("owner_notify_skipped", reason="owner id unknown")
            return
        await self._bot.send_message(chat_id=self._owner_id, text=text)

    @property
    def _bot(self) -> Any:
        if not self._app:
            raise RuntimeError("Telegram gateway not started")
        return self._app.bot

    def _require_connection(self) -> str:
        if not self._connection_id:
            raise RuntimeError("No business connection established yet")
        return self._connection_id

    # -- inbound ---------------------------------------------------------

    async def _on_business_connection(self, update: Update, context: Any) -> None:
        connection = update.business_connection
        if connection is None:
            return
        if not connection.is_enabled:
            logger.warning("business_connection_disabled", connection_id=connection.id)
            return
        self._connection_id = connection.id
        if self._owner_id is None:
            self._owner_id = connection.user.id
        logger.info(
            "business_connection_updated", connection_id=connection.id, owner_id=self._owner_id
        )

    async def _on_messages_deleted(self, update: Update, context: Any) -> None:
        deleted = update.deleted_business_messages
        if deleted is None or not self._deleted_callback:
            return
        event = DeletedMessages(party_id=deleted.chat.id, message_ids=tuple(deleted.message_ids))
        try:
            await self._deleted_callback(event)
        except Exception as e:
            logger.error("telegram_deleted_handler_error", error=str(e), party_id=event.party_id)

    async def _on_business_message(self, update: Update, context: Any) -> None:
        msg = update.business_message
        if msg is None or not self._message_callback:
            return
        if msg.business_connection_id and not self._config.business_connection_id:
            self._connection_id = msg.business_connection_id

        incoming = await self._to_incoming(msg)
        if incoming is None:
            return

        logger.info(
            "telegram_message_received",
            party_id=incoming.party.id,
            outgoing=incoming.is_outgoing,
            text=preview(incoming.text),
            photo=incoming.image is not None,
        )
        try:
            await self._message_callback(incoming)
        except Exception as e:
            logger.error("telegram_handler_error", error=str(e), party_id=incoming.party.id)

    async def _to_incoming(self, msg: Message) -> IncomingMessage | None:
        """Convert a business message; None for unsupported content."""
        text = msg.text or msg.caption or ""
        image: bytes | None = None

        if msg.photo:
            # Highest resolution is the last size
            try:
                tg_file = await msg.photo[-1].get_file()
                image = bytes(await tg_file.download_as_bytearray())
            except Exception as e:
                logger.warning("telegram_photo_download_error", error=str(e))
        elif msg.effective_attachment:
            logger.debug("telegram_unsupported_media", message_id=msg.message_id)
            return None

        if not text and image is None:
            return None

        chat = msg.chat
        sender_id = msg.from_user.id if msg.from_user else None
        if self._owner_id is not None:
            is_outgoing = sender_id == self._owner_id
        else:
            # In a private chat the other side writes as the chat itself
            is_outgoing = sender_id is not None and sender_id != chat.id

        return IncomingMessage(
            party=PartyInfo(
                id=chat.id,
                username=chat.username,
                first_name=chat.first_name,
                last_name=chat.last_name,
            ),
            text=text,
            source_message_id=msg.message_id,
            is_outgoing=is_outgoing,
            chat_kind=_CHAT_KINDS.get(chat.type, ChatKind.GROUP),
            image=image,
            timestamp=msg.date or datetime.now(timezone.utc),
        )
