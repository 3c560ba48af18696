"""Shared pytest fixtures."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AgentConfig,
    AppConfig,
    DefaultsConfig,
    DiscussionConfig,
    FrameworkConfig,
    InboxConfig,
    ProviderConfig,
)
from src.decision import decide
from src.invoker import AgentInvoker
from src.models import (
    AnalysisReport,
    DiscussionMessage,
    GenerationRequest,
    GenerationResponse,
    InitialAnalysis,
    IterationResult,
    Proposal,
    ProposalContext,
    RunMetrics,
    RunSettings,
)
from src.providers.base import AIProvider

# str, list of replies, callable(request) -> str, or an exception to raise.
Reply = object


def scoring_json(score: float, rationale: str = "Solid plan", factors: tuple[str, ...] = ("budget",)) -> str:
    return json.dumps({"feasibilityScore": score, "rationale": rationale, "keyFactors": list(factors)})


class MockProvider(AIProvider):
    """Test double AIProvider that answers per agent id and records every request.

    ``replies`` maps agent id -> a fixed string, a list consumed one call at a
    time, a callable taking the request, or an exception to raise.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        replies: dict[str, Reply] | None = None,
        default: str = "Mock response",
    ) -> None:
        self._name = provider_name
        self.replies: dict[str, Reply] = dict(replies or {})
        self.default = default
        self.requests: list[GenerationRequest] = []
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(side_effect=self._respond)  # type: ignore[assignment]

    def name(self) -> str:
        return self._name

    async def _respond(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        reply = self.replies.get(request.agent_id, self.default)
        if isinstance(reply, list):
            reply = reply.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
        return GenerationResponse(text=reply)

    async def generate(self, request: GenerationRequest) -> GenerationResponse:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return GenerationResponse(text=self.default)

    def requests_for(self, agent_id: str) -> list[GenerationRequest]:
        return [r for r in self.requests if r.agent_id == agent_id]


def _agent(agent_id: str, name: str, role: str, **kwargs) -> AgentConfig:
    return AgentConfig(id=agent_id, name=name, provider="mock", model="mock-model", role=role, **kwargs)


@pytest.fixture
def sample_agents() -> dict[str, AgentConfig]:
    agents = [
        _agent(
            "proposal_classification_agent",
            "Proposal Classification Agent",
            "classification",
            prompt="Classify this proposal:\n{proposal_info}",
            response_format="json",
        ),
        _agent(
            "proposal_information_summarize_agent",
            "Proposal Summarization Agent",
            "summarization",
            prompt="Summarize:\n{url_content}",
            response_format="json",
        ),
        _agent("expert_1", "Expert 1: Treasury Analyst", "expert", system_instruction="Focus on treasury impact."),
        _agent("expert_2", "Expert 2: Security Reviewer", "expert", system_instruction="Focus on security."),
        _agent("expert_3", "Expert 3: Community Specialist", "expert", system_instruction="Focus on the community."),
        _agent(
            "final_decision_agent",
            "Final Decision Agent",
            "scoring",
            prompt='Score this discussion as {"feasibilityScore": n}:\n{expert_discussion_transcript}',
            response_format="json",
        ),
        _agent("framework_tracker_agent", "Framework Tracker", "utility", prompt="Report on:\n{execution_data}"),
        _agent(
            "prompt_update_agent",
            "Prompt Update Agent",
            "utility",
            prompt="Instruction: {expert_instruction}\nQuestion: {user_question}\nAnswer: {expert_response}",
            response_format="json",
        ),
    ]
    return {a.id: a for a in agents}


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider(
        replies={
            "proposal_classification_agent": '{"category": "Treasury", "risk": "medium"}',
            "proposal_information_summarize_agent": '{"title": "Liquidity program", "budget": "500k"}',
            "final_decision_agent": scoring_json(75),
            "framework_tracker_agent": "All agents performed within expectations.",
        }
    )


@pytest.fixture
def invoker(sample_agents: dict[str, AgentConfig], mock_provider: MockProvider) -> AgentInvoker:
    return AgentInvoker(sample_agents, {"mock": mock_provider})


@pytest.fixture
def run_settings() -> RunSettings:
    return RunSettings(iterations=3, inter_call_delay_sec=0.0)


@pytest.fixture
def sample_context() -> ProposalContext:
    return ProposalContext(
        proposal_info="Fund a 500k token liquidity mining program for six months.",
        classification='{"category": "Treasury"}',
        summary='{"title": "Liquidity program"}',
    )


@pytest.fixture
def sample_proposal() -> Proposal:
    return Proposal(proposal_info="Fund a 500k token liquidity mining program for six months.")


@pytest.fixture
def sample_report(sample_proposal: Proposal, sample_context: ProposalContext) -> AnalysisReport:
    transcript = (
        DiscussionMessage("expert_1", "Treasury Analyst", "The budget is sustainable."),
        DiscussionMessage("expert_2", "Security Reviewer", "Contracts need an audit first."),
    )
    iterations = [
        IterationResult(1, 70.0, "Viable with audit", ("audit",), transcript),
        IterationResult(2, 80.0, "Good treasury fit", ("treasury",), transcript),
        IterationResult(3, 50.0, "Evaluation 3 failed to parse: bad json", ("Parsing error occurred",), transcript, True),
    ]
    return AnalysisReport(
        proposal=sample_proposal,
        analysis=InitialAnalysis(
            classification=sample_context.classification,
            summary=sample_context.summary,
            context=sample_context,
            summary_data={"title": "Liquidity program"},
        ),
        decision=decide(iterations),
        metrics=RunMetrics(),
        settings=RunSettings(iterations=3, inter_call_delay_sec=0.0),
        performance_report="Tracker says fine.",
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_agents: dict[str, AgentConfig]) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(output_dir=tmp_path / "output"),
        framework=FrameworkConfig(iterations=4, seed=7, temperature=0.3),
        discussion=DiscussionConfig(
            participants=["expert_1", "expert_2", "expert_3"],
            turns_per_participant=2,
            scoring_agent="final_decision_agent",
            classification_agent="proposal_classification_agent",
            summarization_agent="proposal_information_summarize_agent",
            tracker_agent="framework_tracker_agent",
            prompt_update_agent="prompt_update_agent",
            inter_call_delay_sec=0.0,
        ),
        providers={"mock": ProviderConfig(name="mock", sdk="google-genai", api_key_env="TEST_API_KEY", timeout_sec=30)},
        agents=sample_agents,
        inbox=InboxConfig(dir=tmp_path / "inbox", archive_dir=tmp_path / "inbox" / "archive"),
        available_providers={"mock"},
    )
