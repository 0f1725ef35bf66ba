"""Model invokers: the narrow call contract used by the specialist service."""

import asyncio
import logging
from abc import ABC, abstractmethod

from ensemble.llm.client import LLMClient, LLMClientFactory, LLMResponse

logger = logging.getLogger(__name__)


class ModelInvoker(ABC):
    """Completes a prompt for a specialist.

    Implementations never raise for a failed call; the failure is returned
    as ``LLMResponse.error``.
    """

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        context: str | None,
        prompt: str,
        temperature: float,
    ) -> LLMResponse:
        pass


def build_user_message(context: str | None, prompt: str) -> str:
    """Join optional context and the prompt into one user message."""
    if not context:
        return prompt
    return f"## Context\n{context}\n\n## Request\n{prompt}"


class LLMModelInvoker(ModelInvoker):
    """Adapter from an ``LLMClient`` to the invoker contract."""

    def __init__(
        self,
        client: LLMClient,
        model: str,
        max_tokens: int = 4096,
        timeout_seconds: float | None = None,
    ):
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds

    async def complete(
        self,
        system_prompt: str,
        context: str | None,
        prompt: str,
        temperature: float,
    ) -> LLMResponse:
        call = self.client.complete(
            prompt=build_user_message(context, prompt),
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=temperature,
            system=system_prompt,
        )
        try:
            return await asyncio.wait_for(call, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Model call timed out after %ss", self.timeout_seconds)
            return LLMResponse(
                content="", model=self.model, tokens_used=0, error="Model call timed out"
            )
        except Exception as e:
            logger.warning("Model call failed: %s", e)
            return LLMResponse(content="", model=self.model, tokens_used=0, error=str(e))


class EchoInvoker(ModelInvoker):
    """Offline invoker that echoes the request back.

    Used when no API key is configured so the CLI stays usable.
    """

    model = "echo"

    async def complete(
        self,
        system_prompt: str,
        context: str | None,
        prompt: str,
        temperature: float,
    ) -> LLMResponse:
        content = build_user_message(context, prompt)
        return LLMResponse(content=content, model=self.model, tokens_used=len(content.split()))


def create_invoker(config) -> ModelInvoker:
    """Build the invoker described by the ``model`` config section."""
    client = LLMClientFactory.create(config)
    if client is None:
        return EchoInvoker()
    return LLMModelInvoker(
        client,
        model=config.model.model,
        max_tokens=config.model.max_tokens,
        timeout_seconds=config.model.timeout_seconds,
    )
