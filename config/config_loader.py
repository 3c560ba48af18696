"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

AGENT_ROLES = frozenset(
    {"classification", "summarization", "expert", "scoring", "utility"}
)


@dataclass
class ProviderConfig:
    name: str
    sdk: str
    api_key_env: str
    timeout_sec: int
    base_url: str | None = None


@dataclass
class AgentConfig:
    id: str
    name: str
    provider: str
    model: str
    prompt: str = ""
    description: str = ""
    role: str = "utility"
    system_instruction: str = ""
    response_format: str = "text"       # "text" or "json"
    response_schema: dict | None = None
    max_output_tokens: int | None = None
    thinking_budget: int | None = None

    @property
    def display_name(self) -> str:
        """'Expert 1: Treasury Analyst' -> 'Treasury Analyst'."""
        _, sep, rest = self.name.partition(":")
        return rest.strip() if sep and rest.strip() else self.name


@dataclass
class FrameworkConfig:
    iterations: int = 3
    seed: int | None = None
    temperature: float = 0.0
    description: str = ""


@dataclass
class DiscussionConfig:
    participants: list[str]
    turns_per_participant: int
    scoring_agent: str
    classification_agent: str
    summarization_agent: str
    tracker_agent: str | None = None
    prompt_update_agent: str | None = None
    inter_call_delay_sec: float = 0.2
    max_context_tokens: int = 12000


@dataclass
class DefaultsConfig:
    output_dir: Path
    expert_pro_model: str = "gemini-2.5-pro"
    reader_url: str = "https://r.jina.ai/"
    fetch_timeout_sec: float = 30.0


@dataclass
class InboxConfig:
    dir: Path = Path("./inbox")
    archive_dir: Path = Path("./inbox/archive")


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    framework: FrameworkConfig
    discussion: DiscussionConfig
    providers: dict[str, ProviderConfig]
    agents: dict[str, AgentConfig]
    inbox: InboxConfig = field(default_factory=InboxConfig)
    available_providers: set[str] = field(default_factory=set)


def infer_role(agent_id: str) -> str:
    """Derive an agent's role from its id when the config does not state one."""
    if agent_id.startswith("expert_"):
        return "expert"
    if "classification" in agent_id:
        return "classification"
    if "summar" in agent_id:
        return "summarization"
    if agent_id.startswith("final_decision"):
        return "scoring"
    return "utility"


def _load_agent(agent_id: str, raw: dict) -> AgentConfig:
    role = str(raw.get("role") or infer_role(agent_id))
    if role not in AGENT_ROLES:
        raise ValueError(f"Agent '{agent_id}' has unknown role '{role}'")
    response_format = str(raw.get("response_format", "text"))
    if response_format not in ("text", "json"):
        raise ValueError(f"Agent '{agent_id}' has unknown response_format '{response_format}'")
    return AgentConfig(
        id=agent_id,
        name=str(raw.get("name", agent_id)),
        provider=str(raw["provider"]),
        model=str(raw["model"]),
        prompt=str(raw.get("prompt", "")),
        description=str(raw.get("description", "")),
        role=role,
        system_instruction=str(raw.get("system_instruction", "")),
        response_format=response_format,
        response_schema=raw.get("response_schema"),
        max_output_tokens=raw.get("max_output_tokens"),
        thinking_budget=raw.get("thinking_budget"),
    )


def _validate(config: AppConfig) -> None:
    if config.framework.iterations < 1:
        raise ValueError(f"framework.iterations must be >= 1, got {config.framework.iterations}")
    if config.discussion.turns_per_participant < 1:
        raise ValueError(
            f"discussion.turns_per_participant must be >= 1, got {config.discussion.turns_per_participant}"
        )
    if not config.discussion.participants:
        raise ValueError("discussion.participants must list at least one agent")

    referenced = [
        *config.discussion.participants,
        config.discussion.scoring_agent,
        config.discussion.classification_agent,
        config.discussion.summarization_agent,
    ]
    for optional in (config.discussion.tracker_agent, config.discussion.prompt_update_agent):
        if optional:
            referenced.append(optional)
    missing = [a for a in referenced if a not in config.agents]
    if missing:
        raise ValueError(f"discussion references unknown agents: {', '.join(missing)}")

    for agent in config.agents.values():
        if agent.provider not in config.providers:
            raise ValueError(f"Agent '{agent.id}' uses unknown provider '{agent.provider}'")


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on invalid
    iteration/turn counts or dangling agent references.
    Logs warnings for missing API keys but does not raise; callers check
    available_providers.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        output_dir=Path(defaults_raw["output_dir"]),
        expert_pro_model=str(defaults_raw.get("expert_pro_model", "gemini-2.5-pro")),
        reader_url=str(defaults_raw.get("reader_url", "https://r.jina.ai/")),
        fetch_timeout_sec=float(defaults_raw.get("fetch_timeout_sec", 30.0)),
    )

    framework_raw = raw.get("framework", {})
    seed = framework_raw.get("seed")
    framework = FrameworkConfig(
        iterations=int(framework_raw.get("iterations", 3)),
        seed=int(seed) if seed is not None else None,
        temperature=float(framework_raw.get("temperature", 0.0)),
        description=str(framework_raw.get("description", "")),
    )

    discussion_raw = raw["discussion"]
    discussion = DiscussionConfig(
        participants=list(discussion_raw["participants"]),
        turns_per_participant=int(discussion_raw.get("turns_per_participant", 2)),
        scoring_agent=str(discussion_raw["scoring_agent"]),
        classification_agent=str(discussion_raw["classification_agent"]),
        summarization_agent=str(discussion_raw["summarization_agent"]),
        tracker_agent=discussion_raw.get("tracker_agent"),
        prompt_update_agent=discussion_raw.get("prompt_update_agent"),
        inter_call_delay_sec=float(discussion_raw.get("inter_call_delay_sec", 0.2)),
        max_context_tokens=int(discussion_raw.get("max_context_tokens", 12000)),
    )

    inbox_raw = raw.get("inbox", {})
    inbox = InboxConfig(
        dir=Path(inbox_raw.get("dir", "./inbox")),
        archive_dir=Path(inbox_raw.get("archive_dir", "./inbox/archive")),
    )

    providers: dict[str, ProviderConfig] = {}
    available_providers: set[str] = set()

    for provider_name, provider_raw in raw["providers"].items():
        providers[provider_name] = ProviderConfig(
            name=provider_name,
            sdk=provider_raw["sdk"],
            api_key_env=provider_raw["api_key_env"],
            timeout_sec=int(provider_raw["timeout_sec"]),
            base_url=provider_raw.get("base_url"),
        )

        api_key = os.environ.get(provider_raw["api_key_env"], "").strip()
        if api_key:
            available_providers.add(provider_name)
            logger.info("Provider available: %s", provider_name)
        else:
            logger.info(
                "Provider skipped (no API key): %s (set %s in .env)",
                provider_name,
                provider_raw["api_key_env"],
            )

    agents = {agent_id: _load_agent(agent_id, agent_raw) for agent_id, agent_raw in raw["agents"].items()}

    config = AppConfig(
        defaults=defaults,
        framework=framework,
        discussion=discussion,
        providers=providers,
        agents=agents,
        inbox=inbox,
        available_providers=available_providers,
    )
    _validate(config)
    return config
