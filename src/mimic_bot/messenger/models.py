"""Unified event models produced by messaging gateways."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from mimic_bot.core.types import ChatKind


@dataclass(frozen=True, slots=True)
class PartyInfo:
    """The remote individual on the other end of a private chat."""

    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class IncomingMessage:
    party: PartyInfo
    text: str
    source_message_id: int
    is_outgoing: bool = False  # written by the account owner
    chat_kind: ChatKind = ChatKind.PRIVATE
    image: Optional[bytes] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True, slots=True)
class PresenceEvent:
    party_id: int
    is_composing: bool


@dataclass(frozen=True, slots=True)
class DeletedMessages:
    party_id: int
    message_ids: tuple[int, ...]
