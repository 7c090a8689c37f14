"""Wire shapes for the Discord gateway and REST API.

Only the fields this bot reads are declared; anything else Discord sends is
ignored during validation.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel

MESSAGE_TYPE_DEFAULT = 0
MESSAGE_TYPE_REPLY = 19
CONVERSATION_MESSAGE_TYPES = frozenset({MESSAGE_TYPE_DEFAULT, MESSAGE_TYPE_REPLY})


class GatewayPayload(BaseModel):
    op: int
    d: Any = None
    s: int | None = None
    t: str | None = None


class HelloData(BaseModel):
    heartbeat_interval: int


class ReadyData(BaseModel):
    session_id: str
    resume_gateway_url: str


class MessageEventData(BaseModel):
    channel_id: str


class DiscordAuthor(BaseModel):
    id: str


class MessageReference(BaseModel):
    message_id: str | None = None


class DiscordMessage(BaseModel):
    type: int
    id: str
    # Present on gateway events, absent from the single-message REST fetch.
    channel_id: str | None = None
    author: DiscordAuthor
    content: str
    edited_timestamp: str | None = None
    message_reference: MessageReference | None = None

    @property
    def parent_id(self) -> str | None:
        if self.message_reference is None:
            return None
        return self.message_reference.message_id

    @property
    def is_conversation_message(self) -> bool:
        return self.type in CONVERSATION_MESSAGE_TYPES


class GuildMemberUser(BaseModel):
    username: str
    global_name: str | None = None


class GuildMember(BaseModel):
    user: GuildMemberUser
    nick: str | None = None

    @property
    def display_name(self) -> str:
        return self.nick or self.user.global_name or self.user.username


class PostMessageResponse(BaseModel):
    id: str
