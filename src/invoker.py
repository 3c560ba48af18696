"""Single agent call: config resolution, temperature/search policy, metrics, output cleanup."""

import logging
import re
import time
from dataclasses import dataclass, replace

from config.config_loader import AgentConfig
from src.models import AgentMetrics, GenerationRequest, SearchUsage
from src.providers.base import AIProvider, ProviderError
from src.tokens import estimate_tokens

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error:"

# Structural extraction steps must be reproducible regardless of the run temperature.
ZERO_TEMPERATURE_ROLES = frozenset({"classification", "summarization"})
SEARCH_ROLES = frozenset({"expert"})

_JSON_FENCE = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class ConfigNotFoundError(KeyError):
    """Raised when an agent id has no configuration."""

    def __init__(self, agent_id: str) -> None:
        self.agent_id = agent_id
        super().__init__(agent_id)

    def __str__(self) -> str:
        return f"Config not found for {self.agent_id}"


@dataclass
class AgentCall:
    text: str
    metrics: AgentMetrics

    @property
    def failed(self) -> bool:
        return is_error_text(self.text)


def is_error_text(text: str) -> bool:
    """True when ``text`` is an in-band error marker rather than model output."""
    return text.startswith(ERROR_PREFIX)


def strip_json_fence(text: str) -> str:
    """Remove one surrounding ```lang ... ``` fence, if present."""
    match = _JSON_FENCE.match(text.strip())
    if match and match.group(2):
        return match.group(2).strip()
    return text


def effective_temperature(agent: AgentConfig, temperature: float) -> float:
    return 0.0 if agent.role in ZERO_TEMPERATURE_ROLES else temperature


def search_allowed(agent: AgentConfig, search_enabled: bool) -> bool:
    return search_enabled and agent.role in SEARCH_ROLES


class AgentInvoker:
    """Runs one agent call against its provider and reports metrics.

    Never raises for call-level failures: missing configuration, provider
    errors and unexpected exceptions all come back as an ``Error:`` text with
    zeroed metrics. The invoker does not touch shared run state; callers
    merge the returned metrics.
    """

    def __init__(self, agents: dict[str, AgentConfig], providers: dict[str, AIProvider]) -> None:
        self._agents = dict(agents)
        self._providers = providers

    def resolve(self, agent_id: str) -> AgentConfig:
        try:
            return self._agents[agent_id]
        except KeyError:
            raise ConfigNotFoundError(agent_id) from None

    def display_name(self, agent_id: str) -> str:
        agent = self._agents.get(agent_id)
        return agent.display_name if agent else agent_id

    def update_instruction(self, agent_id: str, instruction: str) -> AgentConfig:
        """Replace an agent's standing instruction for subsequent calls."""
        updated = replace(self.resolve(agent_id), system_instruction=instruction)
        self._agents[agent_id] = updated
        return updated

    async def invoke(
        self,
        agent_id: str,
        prompt: str | None = None,
        *,
        search_enabled: bool = False,
        seed: int | None = None,
        temperature: float = 0.0,
    ) -> AgentCall:
        """Call ``agent_id`` with ``prompt`` (or its configured default prompt).

        Args:
            agent_id: Configured agent identity.
            prompt: Dynamic prompt; falls back to the agent's template when empty.
            search_enabled: Run-level search toggle. Only expert agents get search.
            seed: Optional sampling seed passed through to the provider.
            temperature: Run-level temperature. Classification and summarization
                agents always run at 0.

        Returns:
            AgentCall with normalized text and this call's metrics.
        """
        try:
            agent = self.resolve(agent_id)
        except ConfigNotFoundError as exc:
            logger.error("%s", exc)
            return AgentCall(text=f"{ERROR_PREFIX} {exc}", metrics=AgentMetrics())

        provider = self._providers.get(agent.provider)
        if provider is None:
            logger.error("Provider '%s' for agent %s is not available", agent.provider, agent_id)
            return AgentCall(text=f"{ERROR_PREFIX} {agent_id} call failed", metrics=AgentMetrics())

        prompt_text = prompt or agent.prompt
        use_search = search_allowed(agent, search_enabled)
        request = GenerationRequest(
            agent_id=agent_id,
            model=agent.model,
            prompt=prompt_text,
            temperature=effective_temperature(agent, temperature),
            seed=seed,
            search_enabled=use_search,
            system_instruction=agent.system_instruction,
            response_format=agent.response_format,
            response_schema=agent.response_schema,
            max_output_tokens=agent.max_output_tokens,
            thinking_budget=agent.thinking_budget,
        )

        logger.debug(
            "Calling %s (%s) temperature=%s seed=%s search=%s",
            agent_id,
            agent.model,
            request.temperature,
            seed,
            use_search,
        )

        input_tokens = estimate_tokens(prompt_text)
        start = time.monotonic()
        try:
            response = await provider.generate(request)
        except ProviderError as exc:
            logger.warning("Agent %s failed: %s", agent_id, exc)
            return AgentCall(text=f"{ERROR_PREFIX} {agent_id} call failed", metrics=AgentMetrics())
        except Exception as exc:
            logger.warning("Agent %s unexpected failure: %s", agent_id, exc)
            return AgentCall(text=f"{ERROR_PREFIX} {agent_id} call failed", metrics=AgentMetrics())
        duration_ms = (time.monotonic() - start) * 1000.0

        text = response.text
        if agent.response_format == "json":
            text = strip_json_fence(text)

        search = response.search
        if use_search and search is None:
            search = SearchUsage()

        return AgentCall(
            text=text,
            metrics=AgentMetrics(
                duration_ms=duration_ms,
                input_tokens=input_tokens,
                output_tokens=estimate_tokens(text),
                calls=1,
                search=search,
            ),
        )
