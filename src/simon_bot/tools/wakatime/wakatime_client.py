from __future__ import annotations

import asyncio
from typing import Literal

import httpx
from pydantic import BaseModel

WakaTimePeriod = Literal["last_7_days", "last_30_days", "last_year", "all_time"]

_BASE_URL = "https://wakatime.com/share/@simonkberg"
_STATS_FILES: dict[str, str] = {
    "last_7_days": "b2bb44ec-d8bd-42ee-ad9d-8948172388d0.json",
    "last_30_days": "2daa8cdd-2a7e-4deb-836f-b913a308a93a.json",
    "last_year": "bdbe1607-6d0d-418c-aa98-9602535e8f6b.json",
    "all_time": "b65f0e73-704a-44ce-9538-eee4fc913be8.json",
}
_TIMEOUT_SECONDS = 3.0


class WakaTimeStat(BaseModel):
    name: str
    percent: float


class _StatsResponse(BaseModel):
    data: list[WakaTimeStat]


class WakaTimeClient:
    def __init__(
        self,
        *,
        base_url: str = _BASE_URL,
        timeout: float = _TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def get_stats(self, period: str = "last_7_days", limit: int = 15) -> list[WakaTimeStat]:
        if period not in _STATS_FILES:
            raise ValueError(f"Invalid period: {period}")

        async with asyncio.timeout(self._timeout), httpx.AsyncClient(transport=self._transport) as client:
            response = await client.get(f"{self._base_url}/{_STATS_FILES[period]}")

        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                f"WakaTime API error: HTTP {response.status_code}",
                request=response.request,
                response=response,
            )

        return _StatsResponse.model_validate(response.json()).data[:limit]
