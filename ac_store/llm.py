"""LLM provider used for product copy — OpenAI-compatible API via OpenRouter."""
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from openai import AsyncOpenAI


OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

# Model shortcuts
OPENROUTER_MODELS = {
    "deepseek": "deepseek/deepseek-chat",
    "gemini-flash": "google/gemini-2.0-flash-001",
    "claude-haiku": "anthropic/claude-3.5-haiku",
    "gpt-4o-mini": "openai/gpt-4o-mini",
}


@dataclass
class LLMResponse:
    """Response from an LLM provider."""
    content: str
    model: str
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, api_key: str, model: str):
        self.api_key = api_key
        self.model = model

    @abstractmethod
    async def run(self, query: str, **kwargs: Any) -> LLMResponse:
        """Execute a query against the LLM."""
        ...


def get_provider(
    model: str = "deepseek",
    api_key: str | None = None,
    site_name: str = "Classic-Solution",
) -> "OpenRouterProvider":
    """Factory function to create an OpenRouter provider."""
    key = api_key or os.environ.get("OPENROUTER_API_KEY", "")
    if not key:
        raise ValueError("OPENROUTER_API_KEY not set")
    return OpenRouterProvider(api_key=key, model=model, site_name=site_name)


class OpenRouterProvider(LLMProvider):
    """OpenRouter provider — uses OpenAI-compatible API."""

    def __init__(self, api_key: str, model: str = "deepseek", site_name: str = "Classic-Solution"):
        super().__init__(api_key, OPENROUTER_MODELS.get(model, model))
        self.site_name = site_name

    def _client(self) -> AsyncOpenAI:
        # one client per call: Flask runs each async view in its own event loop
        return AsyncOpenAI(
            api_key=self.api_key,
            base_url=OPENROUTER_BASE_URL,
            default_headers={"X-Title": self.site_name},
        )

    async def run(self, query: str, **kwargs: Any) -> LLMResponse:
        messages = []
        if kwargs.get("system"):
            messages.append({"role": "system", "content": kwargs.pop("system")})
        messages.append({"role": "user", "content": query})

        extra = {}
        if kwargs.get("json_mode"):
            extra["response_format"] = {"type": "json_object"}

        async with self._client() as client:
            response = await client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=kwargs.get("max_tokens", 1024),
                **extra,
            )

        return LLMResponse(
            content=response.choices[0].message.content or "",
            model=response.model,
            usage={
                "input": response.usage.prompt_tokens if response.usage else 0,
                "output": response.usage.completion_tokens if response.usage else 0,
            },
        )
