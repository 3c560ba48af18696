"""Click CLI: orchestrates config loading, provider setup, analysis runs, Q&A and output."""

import asyncio
import logging
import sys
from dataclasses import replace
from functools import partial
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AgentConfig, AppConfig, load_config
from src.healthcheck import run_health_checks
from src.inbox import archive_file, ensure_dirs, parse_proposal_file, scan_inbox
from src.invoker import AgentInvoker
from src.models import AnalysisReport, DiscussionMessage, Proposal, RunSettings
from src.orchestrator import RunCancelledError
from src.output import print_decision, print_metrics, print_qa, print_report, save_json, save_to_file
from src.pipeline import fetch_url_content, rerun_discussion, run_pipeline
from src.providers.anthropic import AnthropicProvider
from src.providers.base import AIProvider
from src.providers.gemini import GeminiProvider
from src.providers.openai_provider import OpenAIProvider
from src.qa import ask_experts, propose_instruction_updates
from src.state import RunEvent, RunPhase, RunState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "google-genai": GeminiProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
}

_PHASE_LABELS = {
    RunPhase.ANALYSIS: "Classifying and summarizing proposal...",
    RunPhase.AGGREGATION: "Aggregating scores...",
    RunPhase.TRACKING: "Running performance tracker...",
}


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_providers(config: AppConfig) -> dict[str, AIProvider]:
    """Build all available providers. Returns dict keyed by provider name."""
    providers: dict[str, AIProvider] = {}
    for name in config.available_providers:
        provider_cfg = config.providers[name]
        cls = PROVIDER_CLASSES.get(provider_cfg.sdk)
        if cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, provider_cfg.sdk)
            continue
        try:
            providers[name] = cls(provider_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
    return providers


def _apply_model_tier(agents: dict[str, AgentConfig], use_pro: bool, pro_model: str) -> dict[str, AgentConfig]:
    """Switch expert agents to ``pro_model`` when ``use_pro``; other roles are untouched."""
    if not use_pro:
        return dict(agents)
    return {
        agent_id: replace(agent, model=pro_model) if agent.role == "expert" else agent
        for agent_id, agent in agents.items()
    }


def _build_run_settings(
    config: AppConfig,
    iterations: int | None = None,
    seed: int | None = None,
    temperature: float | None = None,
    search: bool = False,
) -> RunSettings:
    """Effective run settings. Explicit arguments win over config values."""
    discussion = config.discussion
    framework = config.framework
    effective_iterations = iterations if iterations is not None else framework.iterations
    if effective_iterations < 1:
        raise click.BadParameter(f"iterations must be >= 1, got {effective_iterations}")
    return RunSettings(
        iterations=effective_iterations,
        seed=seed if seed is not None else framework.seed,
        temperature=temperature if temperature is not None else framework.temperature,
        search_enabled=search,
        participants=tuple(discussion.participants),
        turns_per_participant=discussion.turns_per_participant,
        scoring_agent=discussion.scoring_agent,
        classification_agent=discussion.classification_agent,
        summarization_agent=discussion.summarization_agent,
        tracker_agent=discussion.tracker_agent,
        prompt_update_agent=discussion.prompt_update_agent,
        inter_call_delay_sec=discussion.inter_call_delay_sec,
        max_context_tokens=discussion.max_context_tokens,
    )


# Frontmatter values arrive as whatever YAML produced; convert them like CLI options.
_OVERRIDE_TYPES = {"iterations": click.INT, "seed": click.INT, "temperature": click.FLOAT, "search": click.BOOL}


def _coerce_overrides(overrides: dict, source: str) -> dict:
    """Convert frontmatter overrides to their option types. Null values are dropped."""
    coerced = {}
    for key, value in overrides.items():
        if value is None:
            continue
        param_type = _OVERRIDE_TYPES.get(key)
        if param_type is None:
            coerced[key] = value
            continue
        try:
            coerced[key] = param_type.convert(value, None, None)
        except click.BadParameter as exc:
            raise click.BadParameter(exc.message, param_hint=f"frontmatter '{key}' in {source}") from exc
    return coerced


def _health_probes(
    agents: dict[str, AgentConfig],
    providers: dict[str, AIProvider],
) -> dict[str, tuple[AIProvider, str]]:
    """One (provider, model) probe per provider referenced by an agent."""
    probes: dict[str, tuple[AIProvider, str]] = {}
    for agent in agents.values():
        if agent.provider in providers and agent.provider not in probes:
            probes[agent.provider] = (providers[agent.provider], agent.model)
    return probes


def _agents_without_provider(agents: dict[str, AgentConfig], providers: dict[str, AIProvider]) -> list[str]:
    return sorted(a.id for a in agents.values() if a.provider not in providers)


def _check_and_filter_providers(
    agents: dict[str, AgentConfig],
    providers: dict[str, AIProvider],
) -> dict[str, AIProvider]:
    """Run health checks, print results, and ask user what to do on failures.

    Returns the filtered dict of working providers. Exits if the user
    declines to continue or no providers pass.
    """
    console.print("\n[bold]Checking providers...[/bold]")
    results = asyncio.run(run_health_checks(_health_probes(agents, providers)))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
            failed_names.append(name)

    if not failed_names:
        console.print()
        return providers

    working = {n: p for n, p in providers.items() if n not in failed_names}
    if not working:
        console.print("\n[bold red]Error:[/bold red] No providers passed the health check.")
        sys.exit(1)

    affected = _agents_without_provider(agents, working)
    console.print(f"\n[yellow]{len(failed_names)} provider(s) failed:[/yellow] {', '.join(failed_names)}")
    console.print(f"Agents that will return errors: {', '.join(affected)}")

    if not click.confirm("Continue anyway?", default=False):
        sys.exit(0)

    console.print()
    return working


def _progress_listener(progress: Progress, task_id, verbose: bool):
    def on_event(event: RunEvent, state: RunState) -> None:
        if event == RunEvent.PHASE_CHANGED and state.phase in _PHASE_LABELS:
            progress.update(task_id, description=_PHASE_LABELS[state.phase])
        elif event == RunEvent.ITERATION_STARTED:
            progress.update(
                task_id,
                description=f"Running iteration {state.current_iteration}/{state.total_iterations} "
                "(expert discussion + scoring)...",
            )
        elif event == RunEvent.MESSAGE and verbose:
            message = state.live_transcript[-1]
            progress.print(f"[dim]{message.participant_name}: {message.text[:100]}[/dim]")
        elif event == RunEvent.ITERATION_COMPLETE:
            result = state.iterations[-1]
            marker = " [red](parse error)[/red]" if result.parse_failed else ""
            progress.print(
                f"[green]OK[/green] Iteration {result.iteration_index} scored "
                f"{result.feasibility_score:g}/100{marker}"
            )

    return on_event


async def _run_qa(
    report: AnalysisReport,
    invoker: AgentInvoker,
    settings: RunSettings,
    questions: tuple[str, ...],
) -> None:
    history: list[DiscussionMessage] = []
    for question in questions:
        answers = await ask_experts(question, report, invoker, settings, history)
        updates = await propose_instruction_updates(question, answers, invoker, settings)
        print_qa(question, answers, updates)
        history.append(DiscussionMessage(participant_id="user", participant_name="You", text=question))
        history.extend(answers)


async def _run_single(
    proposal: Proposal,
    config: AppConfig,
    agents: dict[str, AgentConfig],
    providers: dict[str, AIProvider],
    settings: RunSettings,
    output_dir: Path,
    questions: tuple[str, ...] = (),
    rerun: bool = False,
    json_out: bool = False,
    verbose: bool = False,
    slug_override: str | None = None,
) -> Path:
    """Run one full analysis and return the saved report path."""
    invoker = AgentInvoker(agents, providers)
    fetcher = partial(
        fetch_url_content,
        reader_url=config.defaults.reader_url,
        timeout_sec=config.defaults.fetch_timeout_sec,
    )

    preview = proposal.proposal_info[:80] + ("..." if len(proposal.proposal_info) > 80 else "")
    console.print(
        f"\n[bold cyan]Proposal Council[/bold cyan] | {settings.iterations} iterations, "
        f"{len(settings.participants)} experts x {settings.turns_per_participant} turns"
    )
    console.print(
        f"Temperature: {settings.temperature} | Seed: {settings.seed} | "
        f"Web search: {'on' if settings.search_enabled else 'off'}"
    )
    console.print(f"Proposal: [italic]{preview}[/italic]\n")

    state = RunState()
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Starting analysis...", total=None)
        state.subscribe(_progress_listener(progress, task_id, verbose))
        report = await run_pipeline(proposal, invoker, settings, state=state, fetcher=fetcher)

    print_report(report)

    if questions:
        await _run_qa(report, invoker, settings, questions)
        if rerun:
            console.print("\n[bold]Restarting discussion with updated perspectives...[/bold]")
            decision, metrics = await rerun_discussion(report.analysis.context, invoker, settings)
            report = replace(report, decision=decision, metrics=metrics, performance_report=None)
            print_decision(decision)
            print_metrics(metrics)

    saved_path = save_to_file(report, output_dir, slug_override=slug_override)
    console.print(f"\n[dim]Saved to: {saved_path}[/dim]")
    if json_out:
        json_path = save_json(report, output_dir, slug_override=slug_override)
        console.print(f"[dim]JSON saved to: {json_path}[/dim]")
    return saved_path


async def _run_inbox(
    config: AppConfig,
    agents: dict[str, AgentConfig],
    providers: dict[str, AIProvider],
    inbox_dir: Path,
    archive_dir: Path,
    iterations_cli: int | None,
    seed_cli: int | None,
    temperature_cli: float | None,
    search_cli: bool | None,
    output_dir: Path,
    json_out: bool,
    verbose: bool,
) -> None:
    """Process all .md proposals in the inbox folder.

    Precedence for per-file settings: CLI flag > frontmatter > config default.
    """
    ensure_dirs(inbox_dir, archive_dir)
    files = scan_inbox(inbox_dir)

    if not files:
        click.echo("No proposals in inbox.")
        return

    for file_path in files:
        proposal, meta = parse_proposal_file(file_path)
        try:
            meta = _coerce_overrides(meta, file_path.name)
            settings = _build_run_settings(
                config,
                iterations=iterations_cli if iterations_cli is not None else meta.get("iterations"),
                seed=seed_cli if seed_cli is not None else meta.get("seed"),
                temperature=temperature_cli if temperature_cli is not None else meta.get("temperature"),
                search=search_cli if search_cli is not None else meta.get("search", False),
            )
            saved = await _run_single(
                proposal=proposal,
                config=config,
                agents=agents,
                providers=providers,
                settings=settings,
                output_dir=output_dir,
                json_out=json_out,
                verbose=verbose,
                slug_override=file_path.stem,
            )
            archived = archive_file(file_path, archive_dir)
            click.echo(f"Processed: {file_path.name} -> {saved} (archived: {archived.name})")
        except Exception as e:
            logger.error("Failed: %s -- %s", file_path.name, e)
            archive_file(file_path, archive_dir, failed=True)


@click.command()
@click.argument("proposal", required=False)
@click.option("--file", "proposal_file", type=click.Path(exists=True), help="Read proposal from .md file")
@click.option("--url", default=None, help="Proposal URL; its content is fetched and summarized")
@click.option("--date", "proposal_date", default="", help="Proposal date, for the report header")
@click.option("--iterations", default=None, type=click.IntRange(min=1),
              help="Number of independent iterations (default: from config)")
@click.option("--seed", default=None, type=int, help="Sampling seed passed to every call")
@click.option("--temperature", default=None, type=float, help="Run temperature (default: from config)")
@click.option("--search/--no-search", default=None, help="Web search for expert agents (default: off)")
@click.option("--pro", "use_pro", is_flag=True, default=False, help="Use the pro model for expert agents")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.option("--json", "json_out", is_flag=True, default=False, help="Also export the report as JSON")
@click.option("--ask", "questions", multiple=True, help="Follow-up question for the experts (repeatable)")
@click.option("--rerun", is_flag=True, default=False,
              help="After --ask, rerun the discussion with updated expert perspectives")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging and live transcript")
@click.option("--inbox", "use_inbox", is_flag=True, default=False, help="Process all .md proposals in inbox folder")
@click.option("--inbox-dir", "inbox_dir_override", default=None, help="Override inbox folder path")
@click.option("--skip-health-check", is_flag=True, default=False, help="Skip the API connectivity check at startup")
def main(
    proposal: str | None,
    proposal_file: str | None,
    url: str | None,
    proposal_date: str,
    iterations: int | None,
    seed: int | None,
    temperature: float | None,
    search: bool | None,
    use_pro: bool,
    output_path: str | None,
    json_out: bool,
    questions: tuple[str, ...],
    rerun: bool,
    verbose: bool,
    use_inbox: bool,
    inbox_dir_override: str | None,
    skip_health_check: bool,
) -> None:
    """Proposal Council -- multi-agent feasibility analysis of governance proposals.

    \b
    Examples:
      python -m src.cli "Fund a 500k token liquidity program" --iterations 5
      python -m src.cli --file proposal.md --search --json
      python -m src.cli --url https://forum.example.org/t/proposal-42 --pro
      python -m src.cli --file proposal.md --ask "What if the budget is halved?" --rerun
      python -m src.cli --inbox
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if rerun and not questions:
        console.print("[yellow]--rerun has no effect without --ask[/yellow]")

    effective_output = Path(output_path) if output_path else config.defaults.output_dir
    agents = _apply_model_tier(config.agents, use_pro, config.defaults.expert_pro_model)

    providers = _build_providers(config)
    if not providers:
        console.print("[bold red]Error:[/bold red] No providers available. Check API keys in .env.")
        sys.exit(1)

    if not skip_health_check:
        providers = _check_and_filter_providers(agents, providers)

    missing = _agents_without_provider(agents, providers)
    if missing:
        logger.warning("Agents without an available provider (calls will return errors): %s", ", ".join(missing))

    if use_inbox:
        inbox_dir = Path(inbox_dir_override) if inbox_dir_override else config.inbox.dir
        asyncio.run(
            _run_inbox(
                config=config,
                agents=agents,
                providers=providers,
                inbox_dir=inbox_dir,
                archive_dir=config.inbox.archive_dir,
                iterations_cli=iterations,
                seed_cli=seed,
                temperature_cli=temperature,
                search_cli=search,
                output_dir=effective_output,
                json_out=json_out,
                verbose=verbose,
            )
        )
        return

    overrides: dict = {}
    if proposal_file:
        parsed, overrides = parse_proposal_file(Path(proposal_file))
        overrides = _coerce_overrides(overrides, Path(proposal_file).name)
        proposal_obj = replace(
            parsed,
            url=url or parsed.url,
            date=proposal_date or parsed.date,
        )
    elif proposal or url:
        proposal_obj = Proposal(
            proposal_info=proposal or url or "",
            date=proposal_date,
            url=url or "",
            source="cli",
        )
    else:
        console.print("[bold red]Error:[/bold red] Provide a PROPOSAL argument, --file, --url, or --inbox.")
        sys.exit(1)

    settings = _build_run_settings(
        config,
        iterations=iterations if iterations is not None else overrides.get("iterations"),
        seed=seed if seed is not None else overrides.get("seed"),
        temperature=temperature if temperature is not None else overrides.get("temperature"),
        search=search if search is not None else overrides.get("search", False),
    )

    try:
        asyncio.run(
            _run_single(
                proposal=proposal_obj,
                config=config,
                agents=agents,
                providers=providers,
                settings=settings,
                output_dir=effective_output,
                questions=questions,
                rerun=rerun,
                json_out=json_out,
                verbose=verbose,
            )
        )
    except RunCancelledError as exc:
        console.print(f"[yellow]{exc}[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
