from typing import Any, Protocol, runtime_checkable

from simon_bot.tool import Tool


@runtime_checkable
class LLMProvider(Protocol):
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
        """Send one request and return (content_blocks, stop_reason).

        Content blocks are plain Anthropic-style dicts and can be echoed back
        into the history unchanged.
        """
        ...

    def convert_tools(self, tools: list[Tool]) -> list[dict]:
        """Convert Tool protocol objects to provider-specific tool schema."""
        ...


def create_provider(provider_name: str, api_key: str) -> LLMProvider:
    name = provider_name.strip().lower()
    if name == "anthropic":
        from simon_bot.providers.anthropic_provider import AnthropicProvider
        return AnthropicProvider(api_key)
    raise ValueError(f"Unknown provider: {provider_name!r}. Supported: 'anthropic'")
