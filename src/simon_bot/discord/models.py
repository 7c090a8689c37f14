from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Author:
    name: str
    color: str


@dataclass
class ChatMessage:
    id: str
    author: Author
    content: str
    edited: bool
    replies: list[ChatMessage] = field(default_factory=list)


@dataclass(frozen=True)
class ChainEntry:
    id: str
    type: int
    username: str
    content: str
    is_bot: bool
