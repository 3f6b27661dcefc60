"""
Model-call service for slidechat.

Thin async wrapper around an OpenAI-compatible chat-completions endpoint.
Supports buffered calls and incremental streaming, both with an optional
tool list and ``tool_choice="auto"``.
"""

import logging
from typing import Any, AsyncIterator, Optional

from openai import AsyncOpenAI

from .errors import EmptyModelResponse, ProviderCallFailure, mask_sensitive_info
from .models import LLMConfig

logger = logging.getLogger(__name__)


class LLMClient:
    """Async chat-completions client bound to one immutable LLMConfig."""

    def __init__(self, config: LLMConfig, client: Optional[AsyncOpenAI] = None):
        self.config = config
        self._client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.endpoint,
        )

    @property
    def model(self) -> str:
        return self.config.model

    def _build_params(
        self,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
        stream: bool = False,
    ) -> dict:
        params: dict[str, Any] = {
            "model": self.config.model,
            "messages": messages,
            "temperature": self.config.temperature,
            "max_tokens": self.config.max_tokens,
        }
        if tools:
            params["tools"] = tools
            params["tool_choice"] = "auto"
        if stream:
            params["stream"] = True
        return params

    async def complete(
        self,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
    ):
        """
        Make one buffered model call.

        Returns:
            Tuple of the first choice's message (``content`` and
            ``tool_calls``) and the usage record, if any.

        Raises:
            ProviderCallFailure: If the call fails or returns no choices.
        """
        params = self._build_params(messages, tools)
        try:
            response = await self._client.chat.completions.create(**params)
        except Exception as e:
            logger.error(f"Model call failed: {mask_sensitive_info(str(e))}")
            raise ProviderCallFailure(f"Failed to get LLM response: {e}") from e

        if not response.choices:
            raise EmptyModelResponse("No response from LLM")
        return response.choices[0].message, getattr(response, "usage", None)

    async def stream(
        self,
        messages: list[dict],
        tools: Optional[list[dict]] = None,
    ) -> AsyncIterator[Any]:
        """
        Make one streaming model call, yielding raw chunks.

        Raises:
            ProviderCallFailure: If opening or reading the stream fails.
        """
        params = self._build_params(messages, tools, stream=True)
        try:
            response_stream = await self._client.chat.completions.create(**params)
            async for chunk in response_stream:
                yield chunk
        except Exception as e:
            logger.error(f"Streaming model call failed: {mask_sensitive_info(str(e))}")
            raise ProviderCallFailure(f"Failed to stream LLM response: {e}") from e

    async def close(self) -> None:
        await self._client.close()
