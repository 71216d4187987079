"""Shared types and enumerations."""

from __future__ import annotations

from enum import StrEnum


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatKind(StrEnum):
    PRIVATE = "private"
    GROUP = "group"
    CHANNEL = "channel"


class ReplyKind(StrEnum):
    TEXT = "text"
    ACK = "ack"


class PipelineState(StrEnum):
    GATHERING = "gathering"
    AWAITING_QUIET = "awaiting_quiet"
    RECONCILING = "reconciling"
    GENERATING = "generating"
    DELIVERING = "delivering"
    FINALIZING = "finalizing"
    DONE = "done"
    ABORTED = "aborted"
