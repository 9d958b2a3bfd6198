"""Conversation history kept between operator requests."""

from __future__ import annotations

import base64
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Literal, Sequence, Union

TurnRole = Literal["user", "assistant"]

DEFAULT_MAX_TURNS = 20


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TextBlock:
    text: str

    def as_part(self) -> Dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True)
class ImageBlock:
    """Base64-encoded image attached to a user turn."""

    data: str
    media_type: str = "image/png"

    @classmethod
    def from_bytes(cls, payload: bytes, media_type: str = "image/png") -> "ImageBlock":
        return cls(data=base64.b64encode(payload).decode("ascii"), media_type=media_type)

    def as_part(self) -> Dict[str, Any]:
        return {
            "type": "image_url",
            "image_url": {"url": f"data:{self.media_type};base64,{self.data}"},
        }


ContentBlock = Union[TextBlock, ImageBlock]


@dataclass(slots=True)
class ConversationTurn:
    role: TurnRole
    content: str | List[ContentBlock]
    created_at: datetime = field(default_factory=_utcnow)

    def as_message(self) -> Dict[str, Any]:
        """Render the turn in the chat-completions message shape."""

        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [block.as_part() for block in self.content]}

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))


class ConversationStore:
    """Sliding window over the newest ``max_turns`` turns."""

    def __init__(self, max_turns: int = DEFAULT_MAX_TURNS) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._turns: Deque[ConversationTurn] = deque(maxlen=max_turns)

    @property
    def max_turns(self) -> int:
        return self._turns.maxlen or DEFAULT_MAX_TURNS

    def add_user_turn(self, content: str | Sequence[ContentBlock]) -> ConversationTurn:
        body: str | List[ContentBlock] = content if isinstance(content, str) else list(content)
        return self._append(ConversationTurn(role="user", content=body))

    def add_assistant_turn(self, text: str) -> ConversationTurn:
        return self._append(ConversationTurn(role="assistant", content=text))

    def get_turns(self) -> List[ConversationTurn]:
        return list(self._turns)

    def as_messages(self) -> List[Dict[str, Any]]:
        return [turn.as_message() for turn in self._turns]

    def clear(self) -> None:
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def _append(self, turn: ConversationTurn) -> ConversationTurn:
        self._turns.append(turn)
        return turn


class FocusTracker:
    """Remembers which selection the conversation is about.

    :meth:`observe` returns True when the operator moved from one non-empty
    selection to a different non-empty one; the caller then starts a fresh
    conversation. An empty selection never replaces the remembered one.
    """

    def __init__(self) -> None:
        self._key = ""

    @property
    def key(self) -> str:
        return self._key

    @staticmethod
    def focus_key(node_ids: Sequence[str]) -> str:
        return ",".join(sorted(node_ids))

    def observe(self, node_ids: Sequence[str]) -> bool:
        key = self.focus_key(node_ids)
        changed = bool(key and self._key and key != self._key)
        if key:
            self._key = key
        return changed


__all__ = [
    "DEFAULT_MAX_TURNS",
    "TextBlock",
    "ImageBlock",
    "ContentBlock",
    "ConversationTurn",
    "ConversationStore",
    "FocusTracker",
]
