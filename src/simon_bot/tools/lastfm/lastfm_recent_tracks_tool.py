from dataclasses import asdict
from typing import Any

from pydantic import BaseModel

from simon_bot.tools.lastfm.lastfm_client import LastFmClient
from simon_bot.tools.lastfm.lastfm_inputs import LIMIT_PROPERTY, RecentTracksInput


class LastFmRecentTracksTool:
    def __init__(self, client: LastFmClient, user: str, owner_name: str):
        self._client = client
        self._user = user
        self._owner_name = owner_name

    @property
    def name(self) -> str:
        return "get_recent_tracks"

    @property
    def description(self) -> str:
        return (
            f"Get {self._owner_name}'s recently played tracks from Last.fm. "
            "Includes the currently playing track, if any."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {"limit": LIMIT_PROPERTY}, "required": []}

    @property
    def input_model(self) -> type[BaseModel]:
        return RecentTracksInput

    async def execute(self, params: RecentTracksInput) -> list[dict[str, Any]]:
        tracks = await self._client.user_get_recent_tracks(self._user, limit=params.limit)
        return [asdict(t) for t in tracks]
