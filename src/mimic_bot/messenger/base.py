"""Abstract messaging gateway interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from mimic_bot.messenger.models import DeletedMessages, IncomingMessage, PresenceEvent


class MessagingGateway(ABC):
    """Transport for one owner's private chats.

    To add a new messenger, subclass this and implement all abstract methods.
    Callbacks are registered before start() and invoked one event at a time.
    """

    def __init__(self) -> None:
        self._message_callback: Callable[[IncomingMessage], Awaitable[None]] | None = None
        self._presence_callback: Callable[[PresenceEvent], Awaitable[None]] | None = None
        self._deleted_callback: Callable[[DeletedMessages], Awaitable[None]] | None = None
        self._owner_id: int | None = None

    @abstractmethod
    async def start(self) -> None:
        """Connect to the platform and begin receiving events."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully disconnect."""
        ...

    @abstractmethod
    async def send_text(self, party_id: int, text: str) -> int:
        """Send a text message and return its message id."""
        ...

    @abstractmethod
    async def edit_text(self, party_id: int, message_id: int, text: str) -> None:
        ...

    @abstractmethod
    async def set_typing(self, party_id: int) -> None:
        """Show the "typing..." indicator to the party."""
        ...

    @abstractmethod
    async def mark_read(self, party_id: int, message_id: int) -> None:
        ...

    @abstractmethod
    async def send_reaction(self, party_id: int, message_id: int, symbol: str) -> None:
        ...

    @abstractmethod
    async def notify_owner(self, text: str) -> None:
        """Send a private service message to the account owner."""
        ...

    def on_message(self, callback: Callable[[IncomingMessage], Awaitable[None]]) -> None:
        self._message_callback = callback

    def on_presence(self, callback: Callable[[PresenceEvent], Awaitable[None]]) -> None:
        self._presence_callback = callback

    def on_deleted(self, callback: Callable[[DeletedMessages], Awaitable[None]]) -> None:
        self._deleted_callback = callback

    @property
    def owner_id(self) -> int | None:
        """The account owner's user id, once known."""
        return self._owner_id

    @property
    @abstractmethod
    def platform_name(self) -> str:
        ...
