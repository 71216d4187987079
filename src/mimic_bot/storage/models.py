"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from mimic_bot.core.types import Role


@dataclass
class Party:
    id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    custom_context: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        name = " ".join(p for p in (self.first_name, self.last_name) if p)
        return name or (f"@{self.username}" if self.username else "")


@dataclass
class Conversation:
    id: int
    party_id: int
    summary: Optional[str] = None
    ignored: bool = False
    last_activity_at: Optional[datetime] = None


@dataclass
class Turn:
    conversation_id: int
    role: Role
    content: str
    image: Optional[bytes] = None
    source_message_id: Optional[int] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class PendingMessage:
    id: int
    party_id: int
    content: str
    scheduled_for: datetime
    image: Optional[bytes] = None
    source_message_id: Optional[int] = None
    from_owner: bool = False
    claimed_by_owner: bool = False
    processed: bool = False
    created_at: Optional[datetime] = None


@dataclass
class Fact:
    party_id: int
    category: str
    value: str
    updated_at: Optional[datetime] = None


@dataclass
class PartyStats:
    conversations: int = 0
    turns: int = 0
    user_turns: int = 0
    assistant_turns: int = 0
    pending: int = 0
    facts: int = 0
