"""Multi-iteration orchestration: N sequential discussion+scoring cycles with metric merging."""

import logging
from dataclasses import dataclass

from src.invoker import AgentInvoker
from src.iteration import run_iteration
from src.metrics import record_all
from src.models import DiscussionMessage, IterationResult, ProposalContext, RunMetrics, RunSettings
from src.state import RunPhase, RunState

logger = logging.getLogger(__name__)


class RunCancelledError(Exception):
    """Raised when a run is cancelled between iterations."""

    def __init__(self, completed: list[IterationResult]) -> None:
        self.completed = completed
        super().__init__(f"Run cancelled after {len(completed)} completed iteration(s)")


@dataclass
class OrchestrationResult:
    iterations: list[IterationResult]
    metrics: RunMetrics

    @property
    def current_transcript(self) -> tuple[DiscussionMessage, ...]:
        """The last iteration's discussion, i.e. the live view after a run."""
        return self.iterations[-1].transcript if self.iterations else ()


async def run_all(
    context: ProposalContext,
    invoker: AgentInvoker,
    settings: RunSettings,
    state: RunState | None = None,
    metrics: RunMetrics | None = None,
) -> OrchestrationResult:
    """Run ``settings.iterations`` independent iterations, one after another.

    Iterations never share a transcript. A scoring failure degrades to a
    placeholder result, so the returned list always has exactly N entries.
    Cancellation via ``state.request_cancel()`` is honored before an
    iteration starts, never in the middle of one.

    Args:
        context: Proposal context shared read-only by every round.
        invoker: Agent invoker.
        settings: Run configuration (iteration count, participants, policy).
        state: Optional observable state for progress reporting and cancellation.
        metrics: Run metrics to merge into; a fresh RunMetrics when omitted.

    Returns:
        OrchestrationResult with the N iteration results and merged metrics.

    Raises:
        ValueError: If ``settings.iterations`` < 1.
        RunCancelledError: If cancellation was requested between iterations.
    """
    if settings.iterations < 1:
        raise ValueError(f"iterations must be >= 1, got {settings.iterations}")

    run_metrics = metrics if metrics is not None else RunMetrics()
    state = state if state is not None else RunState()
    iterations: list[IterationResult] = []

    state.metrics = run_metrics
    state.iterations = []
    state.set_phase(RunPhase.DISCUSSION)
    logger.info("Starting %d iterations (discussion + scoring each)", settings.iterations)

    for index in range(1, settings.iterations + 1):
        if state.cancel_requested:
            logger.warning("Run cancelled before iteration %d/%d", index, settings.iterations)
            state.set_phase(RunPhase.CANCELLED)
            raise RunCancelledError(iterations)

        state.begin_iteration(index, settings.iterations)
        outcome = await run_iteration(context, index, invoker, settings, on_message=state.add_message)

        record_all(run_metrics, outcome.metrics)
        iterations.append(outcome.result)
        state.complete_iteration(outcome.result)

        logger.info(
            "Iteration %d/%d finished - score %.1f/100%s",
            index,
            settings.iterations,
            outcome.result.feasibility_score,
            " (placeholder)" if outcome.result.parse_failed else "",
        )

    failed = sum(1 for r in iterations if r.parse_failed)
    if failed:
        logger.warning("%d/%d iterations fell back to the neutral score", failed, len(iterations))

    return OrchestrationResult(iterations=iterations, metrics=run_metrics)
