"""
AI Chat Handler - Single-turn chat completions through LiteLLM.

One handler per provider node:

- ai_chatgpt -> OpenAI (``openai`` credentials)
- ai_claude  -> Anthropic (``anthropic`` credentials)
- ai_gemini  -> Google Gemini (``gemini`` credentials)

Config:
- prompt: user message; falls back to ``previous_output["text"]`` and then
  to the previous output itself
- model: provider model name (defaults from EngineConfig.models)
- temperature, maxTokens: sampling controls

LiteLLM routes by model prefix, so Anthropic and Gemini models are sent as
``anthropic/<model>`` and ``gemini/<model>``. Every provider has its own
circuit breaker keyed by the provider name used in run logs.

See: https://docs.litellm.ai/docs/providers
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

import litellm

from nodeflow.errors import HandlerError
from nodeflow.graph.node import NodeType
from nodeflow.graph.registry import NodeRegistry
from nodeflow.nodes.services import HandlerServices

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatProvider:
    """How one AI node type maps onto LiteLLM."""

    node_type: str
    display_name: str
    credential_service: str
    breaker_key: str
    model_prefix: str = ""
    aliases: dict[str, str] = field(default_factory=dict)


PROVIDERS: dict[str, ChatProvider] = {
    NodeType.AI_CHATGPT: ChatProvider(
        node_type=NodeType.AI_CHATGPT,
        display_name="ChatGPT",
        credential_service="openai",
        breaker_key="chatgpt",
        aliases={"gpt-4": "gpt-4.1", "gpt-4-turbo": "gpt-4.1", "gpt-5.0": "gpt-4.1"},
    ),
    NodeType.AI_CLAUDE: ChatProvider(
        node_type=NodeType.AI_CLAUDE,
        display_name="Claude",
        credential_service="anthropic",
        breaker_key="claude",
        model_prefix="anthropic/",
    ),
    NodeType.AI_GEMINI: ChatProvider(
        node_type=NodeType.AI_GEMINI,
        display_name="Gemini",
        credential_service="gemini",
        breaker_key="gemini",
        model_prefix="gemini/",
    ),
}


def resolve_prompt(config: dict[str, Any], previous_output: Any) -> str:
    """Prompt text from config, else the previous output's text, else the output itself."""
    prompt = config.get("prompt")
    if prompt is None and isinstance(previous_output, dict):
        prompt = previous_output.get("text")
    if prompt is None:
        prompt = previous_output
    if not prompt:
        return ""
    if isinstance(prompt, str):
        return prompt
    return json.dumps(prompt, indent=2, default=str)


def resolve_model(provider: ChatProvider, requested: str | None, default: str) -> str:
    """Apply aliases and the LiteLLM provider prefix to the requested model."""
    model = requested or default
    model = provider.aliases.get(model, model)
    if provider.model_prefix and not model.startswith(provider.model_prefix):
        model = f"{provider.model_prefix}{model}"
    return model


class _ChatHandler:
    """Executes one provider's chat node."""

    def __init__(self, provider: ChatProvider, services: HandlerServices):
        self._provider = provider
        self._services = services

    def _default_model(self) -> str:
        models = self._services.config.models
        return models.get(self._provider.credential_service, "")

    async def _complete(self, kwargs: dict[str, Any]) -> Any:
        try:
            return await litellm.acompletion(**kwargs)
        except Exception as e:
            raise HandlerError(
                f"{self._provider.display_name} request failed: {e} (model: {kwargs['model']})"
            ) from e

    async def __call__(self, config: dict[str, Any], previous_output: Any = None) -> dict[str, Any]:
        prompt = resolve_prompt(config, previous_output)
        if not prompt:
            raise HandlerError(f"No prompt provided to {self._provider.display_name} node")

        credentials = await self._services.get_credentials(self._provider.credential_service)
        model = resolve_model(self._provider, config.get("model"), self._default_model())

        kwargs: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": int(config.get("maxTokens") or 1000),
            "timeout": self._services.config.http_timeout,
        }
        if config.get("temperature") is not None:
            kwargs["temperature"] = float(config["temperature"])
        if credentials.get("api_key"):
            kwargs["api_key"] = credentials["api_key"]

        logger.debug(f"{self._provider.display_name} completion with model {model}")
        response = await self._services.breakers.execute(
            self._provider.breaker_key, lambda: self._complete(kwargs)
        )

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        return {
            "success": True,
            "response": content,
            "model": model,
            "tokensUsed": usage.total_tokens if usage else None,
        }


def register_handlers(registry: NodeRegistry, services: HandlerServices) -> None:
    """Register ai_chatgpt, ai_claude and ai_gemini."""
    for type_tag, provider in PROVIDERS.items():
        registry.register(type_tag, _ChatHandler(provider, services))
