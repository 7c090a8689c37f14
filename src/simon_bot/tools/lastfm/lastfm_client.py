from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Literal

import httpx

LastFmPeriod = Literal["7day", "1month", "3month", "6month", "12month", "overall"]

_API_URL = "https://ws.audioscrobbler.com/2.0/"
_TIMEOUT_SECONDS = 3.0


@dataclass(frozen=True)
class RecentTrack:
    name: str
    artist: str
    album: str
    played_at: int | None
    now_playing: bool
    loved: bool


@dataclass(frozen=True)
class TopItem:
    name: str
    playcount: int
    artist: str | None = None


class LastFmError(Exception):
    pass


def _as_list(value: Any) -> list[dict]:
    # Last.fm collapses single-item lists into a bare object.
    if value is None:
        return []
    if isinstance(value, dict):
        return [value]
    return list(value)


def _name_of(value: Any) -> str:
    if isinstance(value, dict):
        return value.get("name") or value.get("#text") or ""
    return str(value or "")


class LastFmClient:
    def __init__(
        self,
        api_key: str,
        *,
        api_url: str = _API_URL,
        timeout: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._timeout = timeout
        self._transport = transport

    async def _call(self, method: str, **params: Any) -> dict:
        query = {"method": method, "api_key": self._api_key, "format": "json", **params}
        async with asyncio.timeout(self._timeout), httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(self._api_url, params=query)

        if response.status_code >= 400:
            raise LastFmError(f"Last.fm API error: HTTP {response.status_code}")

        data = response.json()
        if "error" in data:
            raise LastFmError(f"Last.fm API error {data['error']}: {data.get('message', '')}")
        return data

    async def user_get_recent_tracks(self, user: str, *, limit: int = 5) -> list[RecentTrack]:
        data = await self._call("user.getrecenttracks", user=user, limit=limit, extended=1)
        tracks: list[RecentTrack] = []
        for raw in _as_list(data.get("recenttracks", {}).get("track")):
            now_playing = raw.get("@attr", {}).get("nowplaying") == "true"
            uts = (raw.get("date") or {}).get("uts")
            tracks.append(
                RecentTrack(
                    name=raw.get("name", ""),
                    artist=_name_of(raw.get("artist")),
                    album=_name_of(raw.get("album")),
                    played_at=int(uts) * 1000 if uts else None,
                    now_playing=now_playing,
                    loved=raw.get("loved") == "1",
                )
            )
        # The now-playing entry is returned on top of the requested page.
        return tracks[:limit]

    async def user_get_top_tracks(self, user: str, *, period: LastFmPeriod, limit: int) -> list[TopItem]:
        data = await self._call("user.gettoptracks", user=user, period=period, limit=limit)
        return [
            TopItem(name=t.get("name", ""), playcount=int(t.get("playcount", 0)), artist=_name_of(t.get("artist")))
            for t in _as_list(data.get("toptracks", {}).get("track"))
        ][:limit]

    async def user_get_top_artists(self, user: str, *, period: LastFmPeriod, limit: int) -> list[TopItem]:
        data = await self._call("user.gettopartists", user=user, period=period, limit=limit)
        return [
            TopItem(name=a.get("name", ""), playcount=int(a.get("playcount", 0)))
            for a in _as_list(data.get("topartists", {}).get("artist"))
        ][:limit]

    async def user_get_top_albums(self, user: str, *, period: LastFmPeriod, limit: int) -> list[TopItem]:
        data = await self._call("user.gettopalbums", user=user, period=period, limit=limit)
        return [
            TopItem(name=a.get("name", ""), playcount=int(a.get("playcount", 0)), artist=_name_of(a.get("artist")))
            for a in _as_list(data.get("topalbums", {}).get("album"))
        ][:limit]
