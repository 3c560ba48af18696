"""End-to-end analysis: initial analysis, iterations, decision, performance tracking."""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable

import httpx

from src.decision import decide
from src.invoker import AgentCall, AgentInvoker, is_error_text
from src.metrics import finalize_run_metrics, metrics_to_dict, record_participant
from src.models import (
    AgentMetrics,
    AnalysisReport,
    DecisionResult,
    InitialAnalysis,
    Proposal,
    ProposalContext,
    RunMetrics,
    RunSettings,
)
from src.orchestrator import run_all
from src.prompts import render
from src.state import RunPhase, RunState
from src.tokens import truncate_prompt

logger = logging.getLogger(__name__)

Fetcher = Callable[[str], Awaitable[str]]

DEFAULT_READER_URL = "https://r.jina.ai/"


async def fetch_url_content(
    url: str,
    reader_url: str = DEFAULT_READER_URL,
    timeout_sec: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Fetch ``url`` as readable text through the reader proxy.

    Raises:
        httpx.HTTPError: On connection failure or a non-2xx status.
    """
    async with httpx.AsyncClient(timeout=timeout_sec, transport=transport) as client:
        response = await client.get(f"{reader_url}{url}")
        response.raise_for_status()
        return response.text


def build_context(proposal_info: str, classification: str, summary: str) -> ProposalContext:
    return ProposalContext(proposal_info=proposal_info, classification=classification, summary=summary)


async def _summarize(
    proposal: Proposal,
    invoker: AgentInvoker,
    settings: RunSettings,
    fetcher: Fetcher,
) -> AgentCall:
    if proposal.url.strip():
        try:
            content = await fetcher(proposal.url.strip())
        except httpx.HTTPError as exc:
            logger.error("Failed to fetch proposal content from %s: %s", proposal.url, exc)
            return AgentCall(
                text=f"Error: Could not retrieve or summarize content from URL. {exc}",
                metrics=AgentMetrics(),
            )
    else:
        content = proposal.proposal_info

    try:
        template = invoker.resolve(settings.summarization_agent).prompt
    except KeyError:
        template = "{url_content}"
    prompt = truncate_prompt(render(template, {"url_content": content}), settings.max_context_tokens)
    return await invoker.invoke(
        settings.summarization_agent,
        prompt,
        seed=settings.seed,
        temperature=settings.temperature,
    )


async def run_initial_analysis(
    proposal: Proposal,
    invoker: AgentInvoker,
    settings: RunSettings,
    metrics: RunMetrics,
    fetcher: Fetcher | None = None,
) -> InitialAnalysis:
    """Classify and summarize the proposal, then build the shared context.

    Both calls run concurrently and never use search. A summary that parses
    as JSON is pretty-printed into the context; otherwise the raw text is used.
    """
    fetcher = fetcher or fetch_url_content

    try:
        class_template = invoker.resolve(settings.classification_agent).prompt
    except KeyError:
        class_template = "{proposal_info}"
    class_prompt = truncate_prompt(
        render(class_template, {"proposal_info": proposal.proposal_info}),
        settings.max_context_tokens,
    )

    classification, summary = await asyncio.gather(
        invoker.invoke(
            settings.classification_agent,
            class_prompt,
            seed=settings.seed,
            temperature=settings.temperature,
        ),
        _summarize(proposal, invoker, settings, fetcher),
    )

    record_participant(metrics, settings.classification_agent, classification.metrics)
    record_participant(metrics, settings.summarization_agent, summary.metrics)

    summary_text = summary.text
    summary_data: dict | None = None
    if not is_error_text(summary.text):
        try:
            parsed = json.loads(summary.text)
        except json.JSONDecodeError as exc:
            logger.warning("Summary output is not valid JSON, passing raw content to experts: %s", exc)
        else:
            if isinstance(parsed, dict):
                summary_data = parsed
            summary_text = json.dumps(parsed, indent=2, ensure_ascii=False)

    context = build_context(proposal.proposal_info, classification.text, summary_text)
    return InitialAnalysis(
        classification=classification.text,
        summary=summary.text,
        context=context,
        summary_data=summary_data,
    )


async def run_tracker(metrics: RunMetrics, invoker: AgentInvoker, settings: RunSettings) -> str | None:
    """Ask the tracker agent for a performance report on the finished run."""
    if not settings.tracker_agent:
        return None
    try:
        template = invoker.resolve(settings.tracker_agent).prompt
    except KeyError:
        logger.warning("Tracker agent %s is not configured; skipping", settings.tracker_agent)
        return None

    execution_data = json.dumps(metrics_to_dict(metrics), indent=2)
    prompt = truncate_prompt(render(template, {"execution_data": execution_data}), settings.max_context_tokens)
    call = await invoker.invoke(
        settings.tracker_agent,
        prompt,
        seed=settings.seed,
        temperature=settings.temperature,
    )
    if call.failed:
        logger.warning("Framework tracker failed: %s", call.text)
        return None
    return call.text


async def rerun_discussion(
    context: ProposalContext,
    invoker: AgentInvoker,
    settings: RunSettings,
    state: RunState | None = None,
) -> tuple[DecisionResult, RunMetrics]:
    """Run iterations and the decision again on an existing context with fresh metrics."""
    state = state if state is not None else RunState()
    started = time.monotonic()
    metrics = RunMetrics()

    orchestration = await run_all(context, invoker, settings, state=state, metrics=metrics)
    state.set_phase(RunPhase.AGGREGATION)
    decision = decide(orchestration.iterations)
    state.set_decision(decision)

    finalize_run_metrics(metrics, started)
    state.set_phase(RunPhase.DONE)
    return decision, metrics


async def run_pipeline(
    proposal: Proposal,
    invoker: AgentInvoker,
    settings: RunSettings,
    state: RunState | None = None,
    fetcher: Fetcher | None = None,
) -> AnalysisReport:
    """Run the full analysis for one proposal.

    Args:
        proposal: Proposal text and optional source URL.
        invoker: Agent invoker.
        settings: Run configuration.
        state: Optional observable state (progress, live transcript, cancel).
        fetcher: URL content fetcher; defaults to the reader proxy.

    Returns:
        AnalysisReport with the decision, finalized metrics and tracker report.

    Raises:
        RunCancelledError: If cancellation was requested between iterations.
    """
    state = state if state is not None else RunState()
    started = time.monotonic()
    metrics = RunMetrics()
    state.metrics = metrics

    state.set_phase(RunPhase.ANALYSIS)
    analysis = await run_initial_analysis(proposal, invoker, settings, metrics, fetcher)
    state.set_analysis(analysis)

    orchestration = await run_all(analysis.context, invoker, settings, state=state, metrics=metrics)

    state.set_phase(RunPhase.AGGREGATION)
    decision = decide(orchestration.iterations)
    state.set_decision(decision)

    finalize_run_metrics(metrics, started)

    state.set_phase(RunPhase.TRACKING)
    performance_report = await run_tracker(metrics, invoker, settings)

    state.set_phase(RunPhase.DONE)
    return AnalysisReport(
        proposal=proposal,
        analysis=analysis,
        decision=decision,
        metrics=metrics,
        settings=settings,
        performance_report=performance_report,
    )
