from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from typing import Any

from loguru import logger

from simon_bot.provider import LLMProvider
from simon_bot.tool_registry import ToolCatalog, to_tool_result_content

DEFAULT_MAX_ITERATIONS = 5
FALLBACK_RESPONSE = "sorry, i got a bit lost there - could you try asking again?"


class TurnEngine:
    def __init__(
        self,
        *,
        provider: LLMProvider,
        model: str,
        max_tokens: int,
        system_prompt: str,
        catalog: ToolCatalog,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._system_prompt = system_prompt
        self._catalog = catalog
        self._converted_tools = provider.convert_tools(catalog.tools)
        self._max_iterations = max_iterations

    async def converse(self, turns: list[dict]) -> AsyncIterator[str]:
        """Run the tool-calling loop over ``turns``, yielding text as it arrives.

        ``turns`` is copied; the caller's list is left untouched.
        """
        messages = list(turns)

        for iteration in range(1, self._max_iterations + 1):
            content, stop_reason = await self._provider.create_message(
                self._model,
                self._max_tokens,
                self._system_prompt,
                messages,
                self._converted_tools,
            )

            for block in content:
                if block.get("type") == "text":
                    yield block["text"]

            if stop_reason != "tool_use":
                return

            tool_use_blocks = [b for b in content if b.get("type") == "tool_use"]
            logger.debug(
                f"Iteration {iteration}: running tools "
                f"{', '.join(b['name'] for b in tool_use_blocks)}"
            )
            tool_results = await self.execute_tools(tool_use_blocks)

            messages.append({"role": "assistant", "content": content})
            messages.append({"role": "user", "content": tool_results})

        logger.warning(f"Agent loop exhausted without a final answer: iterations={self._max_iterations}")
        yield FALLBACK_RESPONSE

    async def execute_tools(self, tool_use_blocks: list[dict]) -> list[dict[str, Any]]:
        async def run_one(block: dict) -> dict[str, Any]:
            outcome = await self._catalog.execute(block["name"], block.get("input"))
            return {
                "type": "tool_result",
                "tool_use_id": block["id"],
                "content": to_tool_result_content(outcome),
            }

        return list(await asyncio.gather(*(run_one(b) for b in tool_use_blocks)))
