from __future__ import annotations

import asyncio
import re

from loguru import logger

from simon_bot.discord.api import DiscordApi
from simon_bot.discord.identity import IdentityResolver, to_author
from simon_bot.discord.models import ChainEntry, ChatMessage
from simon_bot.discord.rendering import render_inline_markdown
from simon_bot.discord.schemas import DiscordMessage

MAX_CHAIN_LENGTH = 50

# Messages relayed by the bot or the website carry their author as a "name: " prefix.
_AUTHOR_PREFIX = re.compile(r"^(.+?): (.*)$", re.DOTALL)


def message_id_sort_key(message_id: str) -> tuple[int, str]:
    # Snowflakes are unpadded decimal strings: shorter means older.
    return len(message_id), message_id


def split_author_prefix(content: str) -> tuple[str, str] | None:
    match = _AUTHOR_PREFIX.match(content)
    if match is None:
        return None
    return match.group(1), match.group(2).strip()


class MessageTreeResolver:
    def __init__(self, api: DiscordApi, identities: IdentityResolver, *, bot_username: str):
        self._api = api
        self._identities = identities
        self._bot_username = bot_username
        self._bot_prefix = f"{bot_username}: "

    @property
    def bot_username(self) -> str:
        return self._bot_username

    def is_bot_message(self, content: str) -> bool:
        return content.startswith(self._bot_prefix)

    async def get_channel_messages(self, limit: int = 50) -> list[ChatMessage]:
        """Fetch recent messages and arrange them as a reply forest.

        A reply whose parent is not part of the fetched batch is dropped,
        together with anything replying to it.
        """
        wire_messages = [m for m in await self._api.list_channel_messages(limit) if m.is_conversation_message]

        nodes = await asyncio.gather(*(self._to_chat_message(m) for m in wire_messages))

        top_level: list[ChatMessage] = []
        replies: dict[str, list[ChatMessage]] = {}
        for wire, node in zip(wire_messages, nodes):
            parent_id = wire.parent_id
            if parent_id:
                replies.setdefault(parent_id, []).append(node)
            else:
                top_level.append(node)

        def attach(siblings: list[ChatMessage]) -> list[ChatMessage]:
            for node in siblings:
                node.replies = attach(replies.pop(node.id, []))
            return sorted(siblings, key=lambda n: message_id_sort_key(n.id))

        forest = attach(top_level)
        orphaned = sum(len(v) for v in replies.values())
        if orphaned:
            logger.debug(f"Dropped {orphaned} replies whose parent is outside the fetched window")
        return forest

    async def _to_chat_message(self, message: DiscordMessage) -> ChatMessage:
        prefixed = split_author_prefix(message.content)
        if prefixed is not None:
            name, content = prefixed
            author = to_author(name)
        else:
            author = await self._identities.load(message.author.id)
            content = message.content.strip()

        return ChatMessage(
            id=message.id,
            author=author,
            content=render_inline_markdown(content),
            edited=message.edited_timestamp is not None,
        )

    async def get_message_chain(self, message_id: str) -> list[ChainEntry]:
        """Walk reply references upward from ``message_id``, returning the chain root-first.

        Stops at a message without a parent, after ``MAX_CHAIN_LENGTH`` entries,
        or when the next parent has already been visited.
        """
        chain: list[ChainEntry] = []
        visited: set[str] = set()
        current_id: str | None = message_id

        while current_id is not None:
            message = await self._api.get_channel_message(current_id)
            visited.add(current_id)
            visited.add(message.id)
            chain.insert(0, await self._to_chain_entry(message))

            if len(chain) >= MAX_CHAIN_LENGTH:
                logger.debug(f"Message chain for {message_id} truncated at {MAX_CHAIN_LENGTH} entries")
                break

            parent_id = message.parent_id
            if parent_id is not None and parent_id in visited:
                logger.warning(f"Reply cycle detected at {message.id} -> {parent_id}")
                break
            current_id = parent_id

        return chain

    async def _to_chain_entry(self, message: DiscordMessage) -> ChainEntry:
        if self.is_bot_message(message.content):
            username = self._bot_username
            content = message.content[len(self._bot_prefix) :]
            is_bot = True
        else:
            is_bot = False
            prefixed = split_author_prefix(message.content)
            if prefixed is not None:
                username, content = prefixed
            else:
                username = (await self._identities.load(message.author.id)).name
                content = message.content.strip()

        return ChainEntry(
            id=message.id,
            type=message.type,
            username=username,
            content=content,
            is_bot=is_bot,
        )

    async def post_channel_message(self, text: str, username: str, reply_to: str | None = None) -> str:
        return await self._api.post_channel_message(text, username, reply_to)
