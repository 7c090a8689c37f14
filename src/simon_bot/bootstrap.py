from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from simon_bot.app_config import AppConfig, RuntimeEnv
from simon_bot.bot import BotEngine
from simon_bot.discord.api import DiscordApi
from simon_bot.discord.gateway import DiscordGateway, GatewayHandle
from simon_bot.discord.identity import IdentityResolver
from simon_bot.discord.messages import MessageTreeResolver
from simon_bot.discord.rest import DiscordRestClient
from simon_bot.kv_store import InMemoryKeyValueStore, KeyValueStore, SqliteKeyValueStore
from simon_bot.logging_config import setup_logging
from simon_bot.provider import LLMProvider, create_provider
from simon_bot.system_prompt import build_system_prompt
from simon_bot.tool_registry import ToolCatalog, get_all
from simon_bot.turn_engine import TurnEngine


@dataclass
class AppRuntime:
    rest: DiscordRestClient
    api: DiscordApi
    resolver: MessageTreeResolver
    seen_store: KeyValueStore
    catalog: ToolCatalog
    provider: LLMProvider
    turn_engine: TurnEngine
    bot: BotEngine
    gateway: GatewayHandle
    log_descriptions: list[str]

    async def aclose(self) -> None:
        await self.gateway.close()
        await self.rest.aclose()
        aclose_provider = getattr(self.provider, "aclose", None)
        if aclose_provider is not None:
            await aclose_provider()
        self.seen_store.close()


def _build_seen_store(app: AppConfig) -> KeyValueStore:
    if app.seen_store == "memory":
        return InMemoryKeyValueStore()

    db_path = Path(app.seen_store_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    store = SqliteKeyValueStore(str(db_path))
    purged = store.purge_expired()
    if purged:
        logger.debug(f"Purged {purged} expired seen-message keys")
    return store


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    rest = DiscordRestClient(env.discord_bot_token)
    api = DiscordApi(rest, guild_id=env.discord_guild_id, channel_id=env.discord_channel_id)
    identities = IdentityResolver(api.get_guild_member)
    resolver = MessageTreeResolver(api, identities, bot_username=app.bot_username)
    seen_store = _build_seen_store(app)

    catalog = ToolCatalog(get_all(env.lastfm_api_key, app.lastfm_user, app.owner_name))
    provider = create_provider(app.provider_name, env.anthropic_api_key)
    turn_engine = TurnEngine(
        provider=provider,
        model=app.model,
        max_tokens=app.max_tokens,
        system_prompt=build_system_prompt(app.bot_username, app.owner_name),
        catalog=catalog,
        max_iterations=app.max_agent_iterations,
    )
    bot = BotEngine(
        resolver=resolver,
        turn_engine=turn_engine,
        seen_store=seen_store,
        bot_username=app.bot_username,
    )

    gateway = GatewayHandle(
        lambda: DiscordGateway(
            env.discord_bot_token,
            env.discord_channel_id,
            intents=app.gateway_intents,
            client_name=app.bot_username,
        )
    )

    return AppRuntime(
        rest=rest,
        api=api,
        resolver=resolver,
        seen_store=seen_store,
        catalog=catalog,
        provider=provider,
        turn_engine=turn_engine,
        bot=bot,
        gateway=gateway,
        log_descriptions=log_descriptions,
    )
