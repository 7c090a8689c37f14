import asyncio
from typing import Any

import anthropic
from loguru import logger

from simon_bot.tool import Tool

REQUEST_TIMEOUT_SECONDS = 5.0


def _block_to_dict(block: Any) -> dict:
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if block.type == "thinking":
        return {"type": "thinking", "thinking": block.thinking, "signature": block.signature}
    if block.type == "redacted_thinking":
        return {"type": "redacted_thinking", "data": block.data}
    return block.model_dump(exclude_none=True)


class AnthropicProvider:
    def __init__(self, api_key: str, *, client: Any = None, timeout: float = REQUEST_TIMEOUT_SECONDS):
        self._timeout = timeout
        # LLM calls are single-shot.
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.input_schema,
            }
            for t in tools
        ]

    async def create_message(
        self,
        model: str,
        max_tokens: int,
        system_prompt: str,
        messages: list[dict],
        tools: list[dict],
        *,
        tool_choice: dict[str, Any] | None = None,
    ) -> tuple[list[dict], str | None]:
        logger.debug(
            f"API request: model={model}, max_tokens={max_tokens}, "
            f"messages={len(messages)}, tools={len(tools)}"
        )
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": messages,
            "tools": tools,
        }
        if tool_choice is not None:
            kwargs["tool_choice"] = tool_choice

        async with asyncio.timeout(self._timeout):
            response = await self._client.messages.create(**kwargs)

        usage = response.usage
        logger.debug(
            f"API response: stop_reason={response.stop_reason}, "
            f"input_tokens={usage.input_tokens}, output_tokens={usage.output_tokens}"
        )
        return [_block_to_dict(b) for b in response.content], response.stop_reason

    async def aclose(self) -> None:
        await self._client.close()
