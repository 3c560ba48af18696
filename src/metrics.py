"""Additive accumulation of per-agent call metrics into run-level totals."""

import logging
import time
from dataclasses import asdict

from src.models import AgentMetrics, RunMetrics, SearchUsage

logger = logging.getLogger(__name__)


def merge_search_usage(a: SearchUsage | None, b: SearchUsage | None) -> SearchUsage | None:
    """Combine two search usages: flags OR'd, counts summed, lists concatenated."""
    if a is None and b is None:
        return None
    a = a or SearchUsage()
    b = b or SearchUsage()
    return SearchUsage(
        used=a.used or b.used,
        query_count=a.query_count + b.query_count,
        source_count=a.source_count + b.source_count,
        queries=[*a.queries, *b.queries],
        sources=[*a.sources, *b.sources],
        usage_count=a.usage_count + b.usage_count,
    )


def merge_metrics(a: AgentMetrics, b: AgentMetrics) -> AgentMetrics:
    """Return a new AgentMetrics holding the sum of ``a`` and ``b``."""
    return AgentMetrics(
        duration_ms=a.duration_ms + b.duration_ms,
        input_tokens=a.input_tokens + b.input_tokens,
        output_tokens=a.output_tokens + b.output_tokens,
        calls=a.calls + b.calls,
        search=merge_search_usage(a.search, b.search),
    )


def accumulate(bucket: dict[str, AgentMetrics], agent_id: str, metrics: AgentMetrics) -> None:
    """Add ``metrics`` into ``bucket[agent_id]``, creating the entry if needed."""
    bucket[agent_id] = merge_metrics(bucket.get(agent_id, AgentMetrics()), metrics)


def record_participant(run: RunMetrics, agent_id: str, metrics: AgentMetrics) -> None:
    """Merge one participant's metrics into the run totals and search summary."""
    if run.finalized:
        raise RuntimeError("RunMetrics already finalized")

    accumulate(run.per_participant, agent_id, metrics)
    run.total_input_tokens += metrics.input_tokens
    run.total_output_tokens += metrics.output_tokens

    search = metrics.search
    if search is not None and search.used:
        summary = run.search_summary
        summary.total_usage_count += search.usage_count
        summary.total_queries += search.query_count
        summary.total_sources += search.source_count
        summary.participants_used.add(agent_id)


def record_all(run: RunMetrics, bucket: dict[str, AgentMetrics]) -> None:
    for agent_id, metrics in bucket.items():
        record_participant(run, agent_id, metrics)


def metrics_to_dict(run: RunMetrics) -> dict:
    """Plain JSON-serializable view of ``run``."""
    data = asdict(run)
    data["search_summary"]["participants_used"] = sorted(run.search_summary.participants_used)
    return data


def finalize_run_metrics(run: RunMetrics, started_at: float) -> RunMetrics:
    """Stamp the wall-clock duration since ``started_at`` (time.monotonic()) and freeze."""
    run.total_duration_ms = (time.monotonic() - started_at) * 1000.0
    run.finalized = True
    logger.info(
        "Run finished in %.1fs: %d input / %d output tokens across %d agents",
        run.total_duration_ms / 1000.0,
        run.total_input_tokens,
        run.total_output_tokens,
        len(run.per_participant),
    )
    return run
