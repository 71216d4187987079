"""Convert role-tagged context turns to Anthropic API message format."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Any, Optional

from mimic_bot.core.types import Role
from mimic_bot.storage.models import Turn

_IMAGE_MEDIA_TYPE = "image/jpeg"
_CONTINUATION = "(conversation continues)"


@dataclass(frozen=True, slots=True)
class ContextTurn:
    """One utterance handed to the completion service."""

    role: Role
    text: str
    image: Optional[bytes] = None

    @classmethod
    def from_turn(cls, turn: Turn) -> ContextTurn:
        return cls(role=turn.role, text=turn.content, image=turn.image)


def _content_blocks(turn: ContextTurn) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if turn.text:
        blocks.append({"type": "text", "text": turn.text})
    if turn.image:
        blocks.append(
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": _IMAGE_MEDIA_TYPE,
                    "data": base64.b64encode(turn.image).decode(),
                },
            }
        )
    return blocks


def build_messages(turns: list[ContextTurn]) -> tuple[str, list[dict[str, Any]]]:
    """Split context turns into a system addendum and API messages.

    System turns are lifted out into the returned system text. Consecutive
    turns of the same role are merged into one multi-block message, and the
    list always starts with a user message as the API requires.
    """
    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []

    for turn in turns:
        if turn.role == Role.SYSTEM:
            if turn.text:
                system_parts.append(turn.text)
            continue

        blocks = _content_blocks(turn)
        if not blocks:
            continue

        if messages and messages[-1]["role"] == turn.role:
            messages[-1]["content"].extend(blocks)
        else:
            messages.append({"role": str(turn.role), "content": blocks})

    if not messages or messages[0]["role"] != Role.USER:
        messages.insert(0, {"role": "user", "content": [{"type": "text", "text": _CONTINUATION}]})

    # Plain strings for single text blocks keep requests readable in logs
    for msg in messages:
        content = msg["content"]
        if len(content) == 1 and content[0]["type"] == "text":
            msg["content"] = content[0]["text"]

    return "\n\n".join(system_parts), messages


def render_transcript(turns: list[ContextTurn]) -> str:
    """Flatten turns into ``role: text`` lines for summary and fact prompts."""
    lines: list[str] = []
    for turn in turns:
        text = turn.text
        if turn.image:
            text = f"{text} [image]".strip()
        if text:
            lines.append(f"{turn.role}: {text}")
    return "\n".join(lines)
