"""Provider clients that specialist invocations are sent through.

Each client turns one system prompt plus one user message into a single
``LLMResponse``. Clients may raise; ``LLMModelInvoker`` converts failures
into error responses before they reach the specialist service.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar, NamedTuple

try:
    import anthropic
except ImportError:
    anthropic = None

try:
    import openai
except ImportError:
    openai = None

logger = logging.getLogger(__name__)


@dataclass
class LLMResponse:
    """One completed model call, or the reason it failed."""

    content: str
    model: str
    tokens_used: int
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class LLMClient(ABC):
    """A provider SDK wrapped behind one async call."""

    provider: ClassVar[str] = ""

    def __init__(self, api_key: str):
        self.api_key = api_key

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system: str | None = None,
    ) -> LLMResponse:
        """Complete ``prompt`` as the specialist described by ``system``."""
        pass


class AnthropicLLMClient(LLMClient):
    """Messages API; the specialist prompt travels as the ``system`` field."""

    provider = "anthropic"

    def __init__(self, api_key: str):
        if anthropic is None:
            raise ImportError("Install ensemble[anthropic] to use Claude models")
        super().__init__(api_key)
        self.client = anthropic.AsyncAnthropic(api_key=api_key)

    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system: str | None = None,
    ) -> LLMResponse:
        request = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            request["system"] = system

        message = await self.client.messages.create(**request)
        usage = message.usage
        return LLMResponse(
            content="".join(getattr(block, "text", "") for block in message.content),
            model=model,
            tokens_used=usage.input_tokens + usage.output_tokens,
        )


class OpenAILLMClient(LLMClient):
    """Chat completions API; the specialist prompt is the leading system message."""

    provider = "openai"

    def __init__(self, api_key: str):
        if openai is None:
            raise ImportError("Install ensemble[openai] to use GPT models")
        super().__init__(api_key)
        self.client = openai.AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system: str | None = None,
    ) -> LLMResponse:
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})

        completion = await self.client.chat.completions.create(
            model=model, max_tokens=max_tokens, temperature=temperature, messages=messages
        )
        return LLMResponse(
            content=completion.choices[0].message.content or "",
            model=model,
            tokens_used=completion.usage.total_tokens if completion.usage else 0,
        )


class Provider(NamedTuple):
    env_var: str
    model_prefix: str
    client_class: type[LLMClient]


class LLMClientFactory:
    """Picks the client for the ``model`` config section.

    The provider comes from ``model.provider``, else from the model name
    prefix, else from whichever API key is set. ``None`` means no provider
    is usable and the caller should fall back to the echo invoker.
    """

    PROVIDERS: ClassVar[dict[str, Provider]] = {
        "anthropic": Provider("ANTHROPIC_API_KEY", "claude-", AnthropicLLMClient),
        "openai": Provider("OPENAI_API_KEY", "gpt-", OpenAILLMClient),
    }

    @classmethod
    def create(cls, config, preferred_provider: str | None = None) -> LLMClient | None:
        name = preferred_provider or config.model.provider
        if name == "echo":
            return None
        name = name or cls._infer_provider(config.model.model) or cls._find_available_provider()
        if not name:
            logger.warning("Specialists will echo prompts: no model API key is set")
            return None

        provider = cls.PROVIDERS.get(name)
        if provider is None:
            logger.warning("Unknown model provider %r; expected one of %s", name, ", ".join(cls.PROVIDERS))
            return None

        api_key = os.getenv(provider.env_var)
        if not api_key:
            logger.warning("Model provider %s selected but %s is not set", name, provider.env_var)
            return None

        try:
            client = provider.client_class(api_key)
        except ImportError as e:
            logger.warning("%s", e)
            return None
        logger.info("Specialists will run on %s (%s)", name, config.model.model)
        return client

    @classmethod
    def _infer_provider(cls, model: str) -> str | None:
        for name, provider in cls.PROVIDERS.items():
            if model.startswith(provider.model_prefix):
                return name
        return None

    @classmethod
    def _find_available_provider(cls) -> str | None:
        for name, provider in cls.PROVIDERS.items():
            if os.getenv(provider.env_var):
                return name
        return None

    @classmethod
    def is_available(cls) -> bool:
        """Whether any provider has an API key set."""
        return cls._find_available_provider() is not None
