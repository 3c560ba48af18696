"""OpenAI-compatible provider using openai SDK with native async.

Also serves OpenAI-compatible endpoints (xAI, DeepSeek) through ``base_url``.
"""

import asyncio
import logging
import os
import time

from openai import AsyncOpenAI

from config.config_loader import ProviderConfig
from src.models import GenerationRequest, GenerationResponse
from src.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK. No web search tool."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        if config.base_url:
            self._client = AsyncOpenAI(api_key=api_key, base_url=config.base_url)
        else:
            self._client = AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        if request.search_enabled:
            logger.debug("Provider %s has no search tool; ignoring for %s", self._config.name, request.agent_id)

        messages = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})
        messages.append({"role": "user", "content": request.prompt})

        kwargs: dict = {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
        }
        if request.seed is not None:
            kwargs["seed"] = request.seed
        if request.max_output_tokens:
            kwargs["max_tokens"] = request.max_output_tokens
        if request.response_format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message.content:
            raise ProviderError(self._config.name, "Empty response content")

        input_tokens: int | None = None
        output_tokens: int | None = None
        if response.usage:
            input_tokens = response.usage.prompt_tokens
            output_tokens = response.usage.completion_tokens

        logger.info(
            "OpenAI %s (%s): %.2fs, %s/%s tokens",
            request.agent_id,
            request.model,
            latency,
            input_tokens,
            output_tokens,
        )

        return GenerationResponse(
            text=choice.message.content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
