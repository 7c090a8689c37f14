from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel


@runtime_checkable
class Tool(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def description(self) -> str: ...

    @property
    def input_schema(self) -> dict[str, Any]: ...

    @property
    def input_model(self) -> type[BaseModel]: ...

    async def execute(self, params: Any) -> Any: ...


@dataclass(frozen=True)
class ToolSuccess:
    payload: Any


@dataclass(frozen=True)
class ToolFailure:
    error: str


ToolOutcome = ToolSuccess | ToolFailure
