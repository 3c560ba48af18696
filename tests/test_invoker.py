"""Tests for src/invoker.py: policy, failure absorption and metrics of single agent calls."""

import pytest

from src.invoker import AgentInvoker, ConfigNotFoundError, is_error_text, strip_json_fence
from src.models import SearchUsage
from src.providers.base import ProviderError
from tests.conftest import MockProvider


async def test_invoke_returns_text_and_metrics(invoker, mock_provider):
    call = await invoker.invoke("expert_1", "abcdefgh")
    assert call.text == "Mock response"
    assert not call.failed
    assert call.metrics.calls == 1
    assert call.metrics.input_tokens == 2
    assert call.metrics.output_tokens == 4  # ceil(13 / 4)
    assert call.metrics.duration_ms >= 0


async def test_search_attached_only_for_experts(invoker, mock_provider):
    await invoker.invoke("expert_1", "p", search_enabled=True)
    await invoker.invoke("proposal_classification_agent", "p", search_enabled=True)
    await invoker.invoke("final_decision_agent", "p", search_enabled=True)

    assert mock_provider.requests_for("expert_1")[0].search_enabled is True
    assert mock_provider.requests_for("proposal_classification_agent")[0].search_enabled is False
    assert mock_provider.requests_for("final_decision_agent")[0].search_enabled is False


async def test_search_off_never_attached(invoker, mock_provider):
    await invoker.invoke("expert_2", "p", search_enabled=False)
    assert mock_provider.requests_for("expert_2")[0].search_enabled is False


async def test_expert_search_call_always_reports_search_usage(invoker):
    call = await invoker.invoke("expert_1", "p", search_enabled=True)
    assert call.metrics.search == SearchUsage()
    plain = await invoker.invoke("expert_1", "p")
    assert plain.metrics.search is None


async def test_temperature_forced_to_zero_for_extraction_roles(invoker, mock_provider):
    await invoker.invoke("proposal_classification_agent", "p", temperature=0.9)
    await invoker.invoke("proposal_information_summarize_agent", "p", temperature=0.9)
    await invoker.invoke("expert_3", "p", temperature=0.9)

    assert mock_provider.requests_for("proposal_classification_agent")[0].temperature == 0.0
    assert mock_provider.requests_for("proposal_information_summarize_agent")[0].temperature == 0.0
    assert mock_provider.requests_for("expert_3")[0].temperature == 0.9


async def test_seed_and_agent_settings_forwarded(invoker, mock_provider):
    await invoker.invoke("final_decision_agent", "p", seed=42)
    request = mock_provider.requests_for("final_decision_agent")[0]
    assert request.seed == 42
    assert request.model == "mock-model"
    assert request.response_format == "json"


async def test_default_prompt_used_when_none(invoker, mock_provider):
    await invoker.invoke("framework_tracker_agent")
    assert mock_provider.requests_for("framework_tracker_agent")[0].prompt == "Report on:\n{execution_data}"


async def test_json_fence_stripped_for_json_agents(invoker, mock_provider):
    mock_provider.replies["final_decision_agent"] = '```json\n{"feasibilityScore": 70}\n```'
    mock_provider.replies["expert_1"] = "```json\n{}\n```"

    scored = await invoker.invoke("final_decision_agent", "p")
    expert = await invoker.invoke("expert_1", "p")

    assert scored.text == '{"feasibilityScore": 70}'
    assert expert.text == "```json\n{}\n```"


def test_strip_json_fence_variants():
    assert strip_json_fence('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_json_fence('  ```JSON\n{"a": 1}\n```  ') == '{"a": 1}'
    assert strip_json_fence('{"a": 1}') == '{"a": 1}'


async def test_unknown_agent_returns_error_text(invoker, mock_provider):
    call = await invoker.invoke("ghost_agent", "p")
    assert call.text == "Error: Config not found for ghost_agent"
    assert call.failed
    assert call.metrics.calls == 0
    assert mock_provider.requests == []


def test_resolve_unknown_raises_config_not_found(invoker):
    with pytest.raises(ConfigNotFoundError) as exc_info:
        invoker.resolve("ghost_agent")
    assert isinstance(exc_info.value, KeyError)
    assert str(exc_info.value) == "Config not found for ghost_agent"


async def test_provider_error_absorbed(sample_agents):
    provider = MockProvider(replies={"expert_1": ProviderError("mock", "503 overloaded")})
    invoker = AgentInvoker(sample_agents, {"mock": provider})

    call = await invoker.invoke("expert_1", "p")

    assert call.text == "Error: expert_1 call failed"
    assert call.metrics.input_tokens == 0
    assert call.metrics.output_tokens == 0


async def test_unexpected_exception_absorbed(sample_agents):
    provider = MockProvider(replies={"expert_2": RuntimeError("boom")})
    invoker = AgentInvoker(sample_agents, {"mock": provider})
    call = await invoker.invoke("expert_2", "p")
    assert is_error_text(call.text)


async def test_missing_provider_absorbed(sample_agents):
    invoker = AgentInvoker(sample_agents, {})
    call = await invoker.invoke("expert_1", "p")
    assert call.text == "Error: expert_1 call failed"


def test_display_name_strips_prefix(invoker):
    assert invoker.display_name("expert_1") == "Treasury Analyst"
    assert invoker.display_name("final_decision_agent") == "Final Decision Agent"
    assert invoker.display_name("unknown") == "unknown"


async def test_update_instruction_applies_to_next_call(invoker, mock_provider):
    invoker.update_instruction("expert_2", "Security concerns about audits are resolved.")
    await invoker.invoke("expert_2", "p")
    assert mock_provider.requests_for("expert_2")[0].system_instruction == (
        "Security concerns about audits are resolved."
    )
