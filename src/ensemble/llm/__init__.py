"""LLM client module."""
from ensemble.llm.client import (
    AnthropicLLMClient,
    LLMClient,
    LLMClientFactory,
    LLMResponse,
    OpenAILLMClient,
)
from ensemble.llm.invoker import EchoInvoker, LLMModelInvoker, ModelInvoker, create_invoker

__all__ = [
    "AnthropicLLMClient",
    "EchoInvoker",
    "LLMClient",
    "LLMClientFactory",
    "LLMModelInvoker",
    "LLMResponse",
    "ModelInvoker",
    "OpenAILLMClient",
    "create_invoker",
]
