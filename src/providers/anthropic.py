"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import os
import time

import anthropic as anthropic_sdk

from config.config_loader import ProviderConfig
from src.models import GenerationRequest, GenerationResponse
from src.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

_DEFAULT_MAX_TOKENS = 4096


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK. No web search tool."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if request.search_enabled:
            logger.debug("Provider %s has no search tool; ignoring for %s", self._config.name, request.agent_id)

        kwargs: dict = {
            "model": request.model,
            "max_tokens": request.max_output_tokens or _DEFAULT_MAX_TOKENS,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_instruction:
            kwargs["system"] = request.system_instruction

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.content:
            raise ProviderError(self._config.name, "Empty response content")

        text_blocks = [b.text for b in response.content if b.type == "text"]
        if not text_blocks:
            raise ProviderError(self._config.name, "No text blocks in response")

        input_tokens: int | None = None
        output_tokens: int | None = None
        if response.usage:
            input_tokens = response.usage.input_tokens
            output_tokens = response.usage.output_tokens

        logger.info(
            "Anthropic %s (%s): %.2fs, %s/%s tokens",
            request.agent_id,
            request.model,
            latency,
            input_tokens,
            output_tokens,
        )

        return GenerationResponse(
            text="\n".join(text_blocks),
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
