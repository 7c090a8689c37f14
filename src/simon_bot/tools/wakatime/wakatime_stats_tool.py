from typing import Any

from pydantic import BaseModel

from simon_bot.tools.wakatime.wakatime_client import WakaTimeClient


class WakaTimeStatsInput(BaseModel):
    pass


class WakaTimeStatsTool:
    def __init__(self, client: WakaTimeClient, owner_name: str):
        self._client = client
        self._owner_name = owner_name

    @property
    def name(self) -> str:
        return "get_wakatime_stats"

    @property
    def description(self) -> str:
        return (
            f"Get {self._owner_name}'s coding activity for the last 7 days. "
            "Returns languages/frameworks with usage percentages."
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    @property
    def input_model(self) -> type[BaseModel]:
        return WakaTimeStatsInput

    async def execute(self, params: WakaTimeStatsInput) -> list[dict[str, Any]]:
        stats = await self._client.get_stats()
        return [s.model_dump() for s in stats]
