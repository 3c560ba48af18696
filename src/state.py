"""Observable run state shared between the orchestration core and any front end."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from src.models import DecisionResult, DiscussionMessage, InitialAnalysis, IterationResult, RunMetrics

logger = logging.getLogger(__name__)


class RunPhase(str, Enum):
    IDLE = "idle"
    ANALYSIS = "analysis"
    DISCUSSION = "discussion"
    AGGREGATION = "aggregation"
    TRACKING = "tracking"
    DONE = "done"
    CANCELLED = "cancelled"


class RunEvent(str, Enum):
    PHASE_CHANGED = "phase_changed"
    ANALYSIS_READY = "analysis_ready"
    ITERATION_STARTED = "iteration_started"
    MESSAGE = "message"
    ITERATION_COMPLETE = "iteration_complete"
    DECISION_READY = "decision_ready"


Listener = Callable[[RunEvent, "RunState"], None]


@dataclass
class RunState:
    """Mutable progress of one run. Listeners are notified on every change.

    ``live_transcript`` holds the discussion of the iteration in progress and
    is reset at each iteration start, so after a run it shows the last one.
    """

    phase: RunPhase = RunPhase.IDLE
    current_iteration: int = 0
    total_iterations: int = 0
    analysis: InitialAnalysis | None = None
    live_transcript: list[DiscussionMessage] = field(default_factory=list)
    iterations: list[IterationResult] = field(default_factory=list)
    decision: DecisionResult | None = None
    metrics: RunMetrics | None = None
    cancel_requested: bool = False
    _listeners: list[Listener] = field(default_factory=list, init=False, repr=False)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def emit(self, event: RunEvent) -> None:
        for listener in list(self._listeners):
            listener(event, self)

    def request_cancel(self) -> None:
        """Ask the orchestrator to stop at the next iteration boundary."""
        logger.info("Cancellation requested")
        self.cancel_requested = True

    def set_phase(self, phase: RunPhase) -> None:
        self.phase = phase
        self.emit(RunEvent.PHASE_CHANGED)

    def set_analysis(self, analysis: InitialAnalysis) -> None:
        self.analysis = analysis
        self.emit(RunEvent.ANALYSIS_READY)

    def begin_iteration(self, index: int, total: int) -> None:
        self.current_iteration = index
        self.total_iterations = total
        self.live_transcript = []
        self.emit(RunEvent.ITERATION_STARTED)

    def add_message(self, message: DiscussionMessage) -> None:
        self.live_transcript.append(message)
        self.emit(RunEvent.MESSAGE)

    def complete_iteration(self, result: IterationResult) -> None:
        self.iterations.append(result)
        self.emit(RunEvent.ITERATION_COMPLETE)

    def set_decision(self, decision: DecisionResult) -> None:
        self.decision = decision
        self.emit(RunEvent.DECISION_READY)
