from __future__ import annotations

import re
from collections.abc import Callable

from loguru import logger

from simon_bot.discord.gateway import GatewayHandle
from simon_bot.discord.messages import MessageTreeResolver
from simon_bot.discord.models import ChainEntry
from simon_bot.discord.schemas import DiscordMessage
from simon_bot.kv_store import KeyValueStore
from simon_bot.turn_engine import TurnEngine

SEEN_KEY_PREFIX = "discord:seen:"
SEEN_TTL_SECONDS = 60


def build_mention_pattern(bot_username: str) -> re.Pattern[str]:
    """``simon-bot`` also matches ``simonbot`` and ``simon bot``, case-insensitively."""
    parts = [re.escape(p) for p in re.split(r"[-\s]+", bot_username.strip()) if p]
    return re.compile(r"\b" + r"[- ]?".join(parts) + r"\b", re.IGNORECASE)


def chain_to_turns(chain: list[ChainEntry], bot_username: str) -> list[dict]:
    turns: list[dict] = []
    for entry in chain:
        if entry.username == bot_username:
            turns.append({"role": "assistant", "content": entry.content})
        else:
            turns.append({"role": "user", "content": f"{entry.username}: {entry.content}"})
    return turns


class BotEngine:
    def __init__(
        self,
        *,
        resolver: MessageTreeResolver,
        turn_engine: TurnEngine,
        seen_store: KeyValueStore,
        bot_username: str,
    ):
        self._resolver = resolver
        self._turn_engine = turn_engine
        self._seen_store = seen_store
        self._bot_username = bot_username
        self._mention_pattern = build_mention_pattern(bot_username)

    def mentions_bot(self, content: str) -> bool:
        return self._mention_pattern.search(content) is not None

    async def _mark_seen(self, message_id: str) -> bool:
        return await self._seen_store.set_if_absent(f"{SEEN_KEY_PREFIX}{message_id}", "1", SEEN_TTL_SECONDS)

    async def handle_message(self, message: DiscordMessage) -> None:
        if not message.is_conversation_message:
            return
        if self._resolver.is_bot_message(message.content):
            return

        try:
            if not await self._mark_seen(message.id):
                logger.debug(f"Message {message.id} already handled")
                return

            chain = await self._resolver.get_message_chain(message.id)
            if not any(self.mentions_bot(entry.content) for entry in chain):
                return

            turns = chain_to_turns(chain, self._bot_username)
            async for text in self._turn_engine.converse(turns):
                await self._resolver.post_channel_message(text, self._bot_username, message.id)

            logger.info(f"Bot responded to message {message.id}")
        except Exception:
            # No error is posted to the channel.
            logger.exception(f"Bot message handling failed for {message.id}")

    async def start(self, gateway: GatewayHandle) -> Callable[[], None]:
        logger.info("Starting bot subscription")
        unsubscribe = await gateway.subscribe_to_messages(self.handle_message)
        logger.info("Bot subscription started")
        return unsubscribe
