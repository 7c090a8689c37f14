from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any

from pydantic import BaseModel

from simon_bot.tools.lastfm.lastfm_client import LastFmClient, TopItem
from simon_bot.tools.lastfm.lastfm_inputs import LIMIT_PROPERTY, PERIOD_PROPERTY, TopItemsInput


class _LastFmTopItemsTool:
    _name: str
    _kind: str

    def __init__(self, client: LastFmClient, user: str, owner_name: str):
        self._client = client
        self._user = user
        self._owner_name = owner_name

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return f"Get {self._owner_name}'s most played {self._kind} on Last.fm for a time period."

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"period": PERIOD_PROPERTY, "limit": LIMIT_PROPERTY},
            "required": [],
        }

    @property
    def input_model(self) -> type[BaseModel]:
        return TopItemsInput

    def _fetch(self) -> Callable[..., Awaitable[list[TopItem]]]:
        raise NotImplementedError

    async def execute(self, params: TopItemsInput) -> list[dict[str, Any]]:
        items = await self._fetch()(self._user, period=params.period, limit=params.limit)
        return [{k: v for k, v in asdict(item).items() if v is not None} for item in items]


class LastFmTopTracksTool(_LastFmTopItemsTool):
    _name = "get_top_tracks"
    _kind = "tracks"

    def _fetch(self) -> Callable[..., Awaitable[list[TopItem]]]:
        return self._client.user_get_top_tracks


class LastFmTopArtistsTool(_LastFmTopItemsTool):
    _name = "get_top_artists"
    _kind = "artists"

    def _fetch(self) -> Callable[..., Awaitable[list[TopItem]]]:
        return self._client.user_get_top_artists


class LastFmTopAlbumsTool(_LastFmTopItemsTool):
    _name = "get_top_albums"
    _kind = "albums"

    def _fetch(self) -> Callable[..., Awaitable[list[TopItem]]]:
        return self._client.user_get_top_albums
