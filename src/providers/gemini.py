"""Gemini provider using google-genai SDK with native async and Google Search grounding."""

import asyncio
import logging
import os
import time

from google import genai
from google.genai import types as genai_types

from config.config_loader import ProviderConfig
from src.models import GenerationRequest, GenerationResponse, SearchSource, SearchUsage
from src.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)


def _build_config(request: GenerationRequest) -> genai_types.GenerateContentConfig:
    kwargs: dict = {"temperature": request.temperature}
    if request.seed is not None:
        kwargs["seed"] = request.seed
    if request.search_enabled:
        kwargs["tools"] = [genai_types.Tool(google_search=genai_types.GoogleSearch())]
    if request.system_instruction:
        kwargs["system_instruction"] = request.system_instruction
    # Gemini rejects a JSON MIME type combined with the search tool.
    if request.response_format == "json" and not request.search_enabled:
        kwargs["response_mime_type"] = "application/json"
        if request.response_schema:
            kwargs["response_schema"] = request.response_schema
    if request.max_output_tokens:
        kwargs["max_output_tokens"] = request.max_output_tokens
    if request.thinking_budget is not None:
        kwargs["thinking_config"] = genai_types.ThinkingConfig(thinking_budget=request.thinking_budget)
    return genai_types.GenerateContentConfig(**kwargs)


def _extract_search_usage(response: genai_types.GenerateContentResponse) -> SearchUsage | None:
    """Turn grounding metadata on the first candidate into SearchUsage."""
    if not response.candidates:
        return None
    metadata = response.candidates[0].grounding_metadata
    if metadata is None:
        return None

    queries = list(metadata.web_search_queries or [])
    sources = [
        SearchSource(title=chunk.web.title, uri=chunk.web.uri)
        for chunk in (metadata.grounding_chunks or [])
        if chunk.web is not None
    ]
    return SearchUsage(
        used=True,
        query_count=len(queries),
        source_count=len(sources),
        queries=queries,
        sources=sources,
        usage_count=1,
    )


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=request.model,
                    contents=request.prompt,
                    config=_build_config(request),
                ),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        if not response.text:
            raise ProviderError(self._config.name, "Empty response text")

        input_tokens: int | None = None
        output_tokens: int | None = None
        if response.usage_metadata:
            input_tokens = response.usage_metadata.prompt_token_count
            output_tokens = response.usage_metadata.candidates_token_count

        search = _extract_search_usage(response)
        if search is not None:
            logger.info(
                "Google Search used by %s: %d queries, %d sources",
                request.agent_id,
                search.query_count,
                search.source_count,
            )
            logger.debug("Search queries for %s: %s", request.agent_id, search.queries)

        logger.info(
            "Gemini %s (%s): %.2fs, %s/%s tokens",
            request.agent_id,
            request.model,
            latency,
            input_tokens,
            output_tokens,
        )

        return GenerationResponse(
            text=response.text,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            search=search,
        )
