import math
from typing import Any

from pydantic import BaseModel, field_validator

from simon_bot.tools.lastfm.lastfm_client import LastFmPeriod

MIN_LIMIT = 1
MAX_LIMIT = 10
DEFAULT_LIMIT = 5


class RecentTracksInput(BaseModel):
    limit: int = DEFAULT_LIMIT

    @field_validator("limit", mode="before")
    @classmethod
    def _floor_limit(cls, value: Any) -> Any:
        if isinstance(value, float) and math.isfinite(value):
            return math.floor(value)
        return value

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return max(MIN_LIMIT, min(MAX_LIMIT, value))


class TopItemsInput(RecentTracksInput):
    period: LastFmPeriod = "1month"


LIMIT_PROPERTY: dict[str, Any] = {
    "type": "number",
    "description": f"Number of results ({MIN_LIMIT}-{MAX_LIMIT}, default {DEFAULT_LIMIT})",
}

PERIOD_PROPERTY: dict[str, Any] = {
    "type": "string",
    "enum": ["7day", "1month", "3month", "6month", "12month", "overall"],
    "description": "Time period (default: 1month)",
}
