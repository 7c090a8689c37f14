from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

_REQUIRED_ENV_VARS = (
    "DISCORD_BOT_TOKEN",
    "DISCORD_CHANNEL_ID",
    "DISCORD_GUILD_ID",
    "ANTHROPIC_API_KEY",
)


@dataclass
class RuntimeEnv:
    discord_bot_token: str
    discord_channel_id: str
    discord_guild_id: str
    anthropic_api_key: str
    lastfm_api_key: str | None

    def missing(self) -> list[str]:
        values = {
            "DISCORD_BOT_TOKEN": self.discord_bot_token,
            "DISCORD_CHANNEL_ID": self.discord_channel_id,
            "DISCORD_GUILD_ID": self.discord_guild_id,
            "ANTHROPIC_API_KEY": self.anthropic_api_key,
        }
        return [name for name in _REQUIRED_ENV_VARS if not values[name]]


@dataclass
class AppConfig:
    provider_name: str
    model: str
    max_tokens: int
    max_agent_iterations: int
    channel_history_limit: int
    bot_username: str
    owner_name: str
    lastfm_user: str
    gateway_intents: int
    seen_store: str
    seen_store_path: str
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def parse_app_config(config: dict) -> AppConfig:
    seen_store = str(config.get("SeenStore", "sqlite")).strip().lower()
    if seen_store not in {"sqlite", "memory"}:
        raise ValueError(f"Unknown SeenStore: {seen_store!r}. Supported: 'sqlite', 'memory'")

    return AppConfig(
        provider_name=config.get("Provider", "anthropic").strip().lower(),
        model=config.get("Model", "claude-haiku-4-5"),
        max_tokens=int(config.get("MaxTokens", 500)),
        max_agent_iterations=int(config.get("MaxAgentIterations", 5)),
        channel_history_limit=int(config.get("ChannelHistoryLimit", 50)),
        bot_username=str(config.get("BotUsername", "simon-bot")),
        owner_name=str(config.get("OwnerName", "Simon")),
        lastfm_user=str(config.get("LastFmUser", "magijo")),
        gateway_intents=int(config.get("GatewayIntents", 1 << 9)),
        seen_store=seen_store,
        seen_store_path=str(config.get("SeenStorePath", ".simon_bot/seen.db")),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    return RuntimeEnv(
        discord_bot_token=os.environ.get("DISCORD_BOT_TOKEN", ""),
        discord_channel_id=os.environ.get("DISCORD_CHANNEL_ID", ""),
        discord_guild_id=os.environ.get("DISCORD_GUILD_ID", ""),
        anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", ""),
        lastfm_api_key=os.environ.get("LASTFM_API_KEY") or None,
    )
