from __future__ import annotations

from typing import Any

from simon_bot.discord.rest import DiscordRestClient
from simon_bot.discord.schemas import DiscordMessage, GuildMember, PostMessageResponse


class DiscordApi:
    """The four Discord endpoints the bot uses, scoped to one guild and channel."""

    def __init__(self, rest: DiscordRestClient, *, guild_id: str, channel_id: str):
        self._rest = rest
        self._guild_id = guild_id
        self._channel_id = channel_id

    @property
    def channel_id(self) -> str:
        return self._channel_id

    async def list_channel_messages(self, limit: int = 50) -> list[DiscordMessage]:
        return await self._rest.call(
            "GET",
            f"channels/{self._channel_id}/messages",
            list[DiscordMessage],
            {"limit": limit},
        )

    async def get_channel_message(self, message_id: str) -> DiscordMessage:
        return await self._rest.call(
            "GET",
            f"channels/{self._channel_id}/messages/{message_id}",
            DiscordMessage,
        )

    async def post_channel_message(self, text: str, username: str, reply_to: str | None = None) -> str:
        body: dict[str, Any] = {"content": f"{username}: {text}"}
        if reply_to:
            body["message_reference"] = {"message_id": reply_to}

        response: PostMessageResponse = await self._rest.call(
            "POST",
            f"channels/{self._channel_id}/messages",
            PostMessageResponse,
            body,
        )
        return response.id

    async def get_guild_member(self, user_id: str) -> GuildMember:
        return await self._rest.call(
            "GET",
            f"guilds/{self._guild_id}/members/{user_id}",
            GuildMember,
        )
