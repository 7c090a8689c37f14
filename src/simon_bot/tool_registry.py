from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from simon_bot.tool import Tool, ToolFailure, ToolOutcome, ToolSuccess
from simon_bot.tools.wakatime.wakatime_client import WakaTimeClient
from simon_bot.tools.wakatime.wakatime_stats_tool import WakaTimeStatsTool


@dataclass(frozen=True)
class ToolGroup:
    enabled: Callable[[dict], bool]
    build: Callable[[dict], list[Tool]]


def _always(_: dict) -> bool:
    return True


def _base_tools(ctx: dict) -> list[Tool]:
    return [WakaTimeStatsTool(WakaTimeClient(), ctx["owner_name"])]


def _lastfm_enabled(ctx: dict) -> bool:
    return bool(ctx.get("lastfm_api_key") and ctx.get("lastfm_user"))


def _lastfm_tools(ctx: dict) -> list[Tool]:
    from simon_bot.tools.lastfm.lastfm_client import LastFmClient
    from simon_bot.tools.lastfm.lastfm_recent_tracks_tool import LastFmRecentTracksTool
    from simon_bot.tools.lastfm.lastfm_top_items_tool import (
        LastFmTopAlbumsTool,
        LastFmTopArtistsTool,
        LastFmTopTracksTool,
    )

    client = LastFmClient(ctx["lastfm_api_key"])
    user = ctx["lastfm_user"]
    owner_name = ctx["owner_name"]
    return [
        LastFmRecentTracksTool(client, user, owner_name),
        LastFmTopTracksTool(client, user, owner_name),
        LastFmTopArtistsTool(client, user, owner_name),
        LastFmTopAlbumsTool(client, user, owner_name),
    ]


_GROUPS = [
    ToolGroup(enabled=_always, build=_base_tools),
    ToolGroup(enabled=_lastfm_enabled, build=_lastfm_tools),
]


def get_all(
    lastfm_api_key: str | None = None,
    lastfm_user: str | None = None,
    owner_name: str = "Simon",
) -> list[Tool]:
    ctx = {
        "lastfm_api_key": lastfm_api_key,
        "lastfm_user": lastfm_user,
        "owner_name": owner_name,
    }

    tools: list[Tool] = []
    for group in _GROUPS:
        if group.enabled(ctx):
            tools.extend(group.build(ctx))
    return tools


def _describe_validation_error(ex: ValidationError) -> str:
    first = ex.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "input"
    return f"Invalid input for {field}: {first['msg']}"


class ToolCatalog:
    def __init__(self, tools: list[Tool]):
        self._tools = {t.name: t for t in tools}

    @property
    def tools(self) -> list[Tool]:
        return list(self._tools.values())

    async def execute(self, name: str, tool_input: Any) -> ToolOutcome:
        tool = self._tools.get(name)
        if tool is None:
            return ToolFailure(f"Unknown tool: {name}")

        try:
            params = tool.input_model.model_validate(tool_input or {})
        except ValidationError as ex:
            return ToolFailure(_describe_validation_error(ex))

        try:
            return ToolSuccess(await tool.execute(params))
        except Exception as ex:
            logger.warning(f"Tool {name} failed: {ex}")
            return ToolFailure(str(ex) or type(ex).__name__)


def to_tool_result_content(outcome: ToolOutcome) -> str:
    if isinstance(outcome, ToolSuccess):
        return json.dumps(outcome.payload, default=str)
    return json.dumps({"error": outcome.error})
