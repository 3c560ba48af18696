"""Pure dataclasses for the proposal council pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class Decision(str, Enum):
    PROCEED = "Proceed"
    PROCEED_WITH_CAUTION = "Proceed with Caution"
    NOT_RECOMMENDED = "Not Recommended"
    DO_NOT_PROCEED = "Do Not Proceed"


class ConfidenceLevel(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


@dataclass
class Proposal:
    proposal_info: str
    date: str = ""
    url: str = ""
    source: str = "cli"    # "cli" or file path


@dataclass(frozen=True)
class ProposalContext:
    proposal_info: str
    classification: str
    summary: str

    @property
    def text(self) -> str:
        return (
            f"Proposal: {self.proposal_info}\n\n"
            "Analysis Context:\n"
            f"- Classification: {self.classification}\n"
            f"- URL Content Summary: {self.summary}\n"
        )


@dataclass(frozen=True)
class DiscussionMessage:
    participant_id: str
    participant_name: str
    text: str


@dataclass(frozen=True)
class SearchSource:
    title: str | None = None
    uri: str | None = None
    snippet: str | None = None


@dataclass
class SearchUsage:
    used: bool = False
    query_count: int = 0
    source_count: int = 0
    queries: list[str] = field(default_factory=list)
    sources: list[SearchSource] = field(default_factory=list)
    usage_count: int = 0   # calls that actually searched


@dataclass
class AgentMetrics:
    duration_ms: float = 0.0
    input_tokens: int = 0
    output_tokens: int = 0
    calls: int = 0
    search: SearchUsage | None = None


@dataclass(frozen=True)
class IterationResult:
    iteration_index: int   # 1-based
    feasibility_score: float
    rationale: str
    key_factors: tuple[str, ...] = ()
    transcript: tuple[DiscussionMessage, ...] = ()
    parse_failed: bool = False


@dataclass
class SearchSummary:
    total_usage_count: int = 0
    total_queries: int = 0
    total_sources: int = 0
    participants_used: set[str] = field(default_factory=set)


@dataclass
class RunMetrics:
    total_duration_ms: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    per_participant: dict[str, AgentMetrics] = field(default_factory=dict)
    search_summary: SearchSummary = field(default_factory=SearchSummary)
    finalized: bool = False


@dataclass(frozen=True)
class DecisionStatistics:
    mean: float
    median: float
    standard_deviation: float
    confidence_level: ConfidenceLevel


@dataclass(frozen=True)
class DecisionResult:
    decision: Decision
    median_score: float
    justification: str
    iterations: tuple[IterationResult, ...]
    statistics: DecisionStatistics


@dataclass(frozen=True)
class GenerationRequest:
    agent_id: str
    model: str
    prompt: str
    temperature: float = 0.0
    seed: int | None = None
    search_enabled: bool = False
    system_instruction: str = ""
    response_format: str = "text"          # "text" or "json"
    response_schema: dict | None = None
    max_output_tokens: int | None = None
    thinking_budget: int | None = None


@dataclass
class GenerationResponse:
    text: str
    input_tokens: int | None = None        # provider-reported, informational only
    output_tokens: int | None = None
    search: SearchUsage | None = None


@dataclass(frozen=True)
class RunSettings:
    iterations: int = 3
    seed: int | None = None
    temperature: float = 0.0
    search_enabled: bool = False
    participants: tuple[str, ...] = ("expert_1", "expert_2", "expert_3")
    turns_per_participant: int = 2
    scoring_agent: str = "final_decision_agent"
    classification_agent: str = "proposal_classification_agent"
    summarization_agent: str = "proposal_information_summarize_agent"
    tracker_agent: str | None = "framework_tracker_agent"
    prompt_update_agent: str | None = "prompt_update_agent"
    inter_call_delay_sec: float = 0.2
    max_context_tokens: int = 12000


@dataclass
class InitialAnalysis:
    classification: str
    summary: str
    context: ProposalContext
    summary_data: dict | None = None


@dataclass
class AnalysisReport:
    proposal: Proposal
    analysis: InitialAnalysis
    decision: DecisionResult
    metrics: RunMetrics
    settings: RunSettings
    performance_report: str | None = None


@dataclass(frozen=True)
class InstructionUpdate:
    agent_id: str
    agent_name: str
    previous: str
    updated: str
