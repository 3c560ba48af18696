"""Rich console output and Markdown/JSON report export for analysis results."""

import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.metrics import metrics_to_dict
from src.models import (
    AnalysisReport,
    Decision,
    DecisionResult,
    DiscussionMessage,
    InstructionUpdate,
    IterationResult,
    RunMetrics,
)

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

DECISION_STYLES: dict[Decision, str] = {
    Decision.PROCEED: "bold green",
    Decision.PROCEED_WITH_CAUTION: "bold yellow",
    Decision.NOT_RECOMMENDED: "bold dark_orange",
    Decision.DO_NOT_PROCEED: "bold red",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _preview(text: str, words: int = 50) -> str:
    """Return first N words of a text."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def score_range(decision: DecisionResult) -> tuple[float, float]:
    scores = [it.feasibility_score for it in decision.iterations]
    return min(scores), max(scores)


def print_analysis(report: AnalysisReport) -> None:
    console.print(Rule("[bold cyan]Initial Analysis[/bold cyan]"))
    console.print(Panel(_preview(report.analysis.classification, 80), title="[bold]Classification[/bold]", border_style="dim"))
    console.print(Panel(_preview(report.analysis.summary, 80), title="[bold]Summary[/bold]", border_style="dim"))


def print_iteration_summary(result: IterationResult) -> None:
    """Print a brief summary of one iteration's score and rationale."""
    subtitle = "placeholder (parse error)" if result.parse_failed else f"{len(result.transcript)} messages"
    console.print(
        Panel(
            _preview(result.rationale),
            title=f"[bold]Iteration {result.iteration_index}[/bold] - {result.feasibility_score:g}/100",
            subtitle=subtitle,
            border_style="red" if result.parse_failed else "dim",
        )
    )


def print_decision(decision: DecisionResult) -> None:
    """Print the recommendation panel with statistics."""
    stats = decision.statistics
    low, high = score_range(decision)
    console.print(Rule("[bold green]Feasibility Decision[/bold green]"))
    body = Text(justify="center")
    body.append(f"{decision.decision.value}\n", style=DECISION_STYLES[decision.decision])
    body.append(f"Median Feasibility Score: {decision.median_score:.1f}/100\n")
    body.append(
        f"Confidence: {stats.confidence_level.value} (σ = {stats.standard_deviation:.1f}) | "
        f"Mean: {stats.mean:.1f}\n",
        style="dim",
    )
    body.append(
        f"Based on {len(decision.iterations)} independent evaluations, score range {low:g} - {high:g}",
        style="dim",
    )
    console.print(Panel(body, border_style=DECISION_STYLES[decision.decision].split()[-1]))
    console.print(decision.justification)


def print_metrics(metrics: RunMetrics) -> None:
    """Print the per-agent performance table and search summary."""
    table = Table(title="Agent Performance", show_lines=False)
    table.add_column("Agent")
    table.add_column("Calls", justify="right")
    table.add_column("Duration (s)", justify="right")
    table.add_column("Input tok", justify="right")
    table.add_column("Output tok", justify="right")
    table.add_column("Searches", justify="right")
    for agent_id, m in sorted(metrics.per_participant.items()):
        searches = str(m.search.usage_count) if m.search else "-"
        table.add_row(
            agent_id,
            str(m.calls),
            f"{m.duration_ms / 1000:.1f}",
            str(m.input_tokens),
            str(m.output_tokens),
            searches,
        )
    console.print(table)

    summary = metrics.search_summary
    console.print(
        Text(
            f"Total: {metrics.total_duration_ms / 1000:.1f}s | "
            f"{metrics.total_input_tokens} input / {metrics.total_output_tokens} output tokens | "
            f"Search: {summary.total_usage_count} calls, {summary.total_queries} queries, "
            f"{summary.total_sources} sources",
            style="dim",
        )
    )


def print_report(report: AnalysisReport) -> None:
    print_analysis(report)
    console.print(Rule("[bold cyan]Iterations[/bold cyan]"))
    for result in report.decision.iterations:
        print_iteration_summary(result)
    print_decision(report.decision)
    print_metrics(report.metrics)
    if report.performance_report:
        console.print(Rule("[bold]Performance Report[/bold]"))
        console.print(Markdown(report.performance_report))


def print_qa(question: str, answers: list[DiscussionMessage], updates: list[InstructionUpdate]) -> None:
    console.print(Rule(f"[bold magenta]Q&A[/bold magenta]: {question[:60]}"))
    for answer in answers:
        console.print(Panel(Markdown(answer.text), title=f"[bold]{answer.participant_name}[/bold]", border_style="dim"))
    for update in updates:
        console.print(
            f"[italic]Perspective updated for {update.agent_name}. "
            "A restart of the discussion will use this new perspective.[/italic]"
        )


def report_to_dict(report: AnalysisReport) -> dict:
    """Plain JSON-serializable view of a full report."""
    data = {
        "proposal": asdict(report.proposal),
        "settings": asdict(report.settings),
        "analysis": {
            "classification": report.analysis.classification,
            "summary": report.analysis.summary,
            "summary_data": report.analysis.summary_data,
            "context": report.analysis.context.text,
        },
        "decision": asdict(report.decision),
        "metrics": metrics_to_dict(report.metrics),
        "performance_report": report.performance_report,
    }
    data["decision"]["decision"] = report.decision.decision.value
    data["decision"]["statistics"]["confidence_level"] = report.decision.statistics.confidence_level.value
    return data


def _output_path(report: AnalysisReport, output_dir: Path, suffix: str, slug_override: str | None) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(report.proposal.proposal_info)
    return output_dir / f"{timestamp}_{slug}{suffix}"


def save_json(report: AnalysisReport, output_dir: Path, slug_override: str | None = None) -> Path:
    filepath = _output_path(report, output_dir, ".json", slug_override)
    filepath.write_text(json.dumps(report_to_dict(report), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("JSON report saved to: %s", filepath)
    return filepath


def save_to_file(report: AnalysisReport, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full analysis as a Markdown report.

    Args:
        report: The completed AnalysisReport.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the proposal text. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    filepath = _output_path(report, output_dir, ".md", slug_override)
    decision = report.decision
    stats = decision.statistics
    low, high = score_range(decision)

    lines: list[str] = [
        f"# Proposal Feasibility Report: {report.proposal.proposal_info[:80]}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Source:** {report.proposal.source}",
    ]
    if report.proposal.url:
        lines.append(f"**URL:** {report.proposal.url}")
    if report.proposal.date:
        lines.append(f"**Proposal date:** {report.proposal.date}")
    lines += [
        f"**Iterations:** {len(decision.iterations)}",
        f"**Temperature:** {report.settings.temperature}"
        + (f" | **Seed:** {report.settings.seed}" if report.settings.seed is not None else ""),
        f"**Web search:** {'enabled' if report.settings.search_enabled else 'disabled'}",
        "",
        "---",
        "",
        "## Decision",
        "",
        f"**{decision.decision.value}** (median score {decision.median_score:.1f}/100)",
        "",
        decision.justification,
        "",
        "| Mean | Median | Std. deviation | Confidence | Range |",
        "|---|---|---|---|---|",
        f"| {stats.mean:.1f} | {stats.median:.1f} | {stats.standard_deviation:.2f} "
        f"| {stats.confidence_level.value} | {low:g} - {high:g} |",
        "",
        "## Initial Analysis",
        "",
        "### Classification",
        "",
        report.analysis.classification,
        "",
        "### Summary",
        "",
        report.analysis.summary,
        "",
    ]

    for result in decision.iterations:
        lines.append(f"## Iteration {result.iteration_index}: {result.feasibility_score:g}/100")
        lines.append("")
        lines.append(result.rationale)
        lines.append("")
        if result.key_factors:
            lines.append("**Key factors:**")
            lines.extend(f"- {factor}" for factor in result.key_factors)
            lines.append("")
        lines.append("### Discussion")
        lines.append("")
        for message in result.transcript:
            lines.append(f"**{message.participant_name}:** {message.text}")
            lines.append("")

    metrics = report.metrics
    lines += [
        "## Performance",
        "",
        f"*Total duration: {metrics.total_duration_ms / 1000:.1f}s | "
        f"Input tokens: {metrics.total_input_tokens} | Output tokens: {metrics.total_output_tokens}*",
        "",
        "| Agent | Calls | Duration (s) | Input tokens | Output tokens | Searches |",
        "|---|---|---|---|---|---|",
    ]
    for agent_id, m in sorted(metrics.per_participant.items()):
        searches = m.search.usage_count if m.search else 0
        lines.append(
            f"| {agent_id} | {m.calls} | {m.duration_ms / 1000:.1f} | {m.input_tokens} "
            f"| {m.output_tokens} | {searches} |"
        )
    summary = metrics.search_summary
    lines += [
        "",
        f"Web search: {summary.total_usage_count} calls, {summary.total_queries} queries, "
        f"{summary.total_sources} sources"
        + (f" ({', '.join(sorted(summary.participants_used))})" if summary.participants_used else ""),
        "",
    ]
    if report.performance_report:
        lines += ["## Performance Report", "", report.performance_report, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
