"""Aggregate iteration scores into statistics and a categorical recommendation."""

import logging
import statistics
from collections.abc import Sequence

from src.models import ConfidenceLevel, Decision, DecisionResult, DecisionStatistics, IterationResult

logger = logging.getLogger(__name__)

# Upper bounds on the population standard deviation.
HIGH_CONFIDENCE_MAX_STDEV = 5.0
MEDIUM_CONFIDENCE_MAX_STDEV = 15.0

# Median thresholds: > 80 proceed, [50, 80] caution, [30, 50) not recommended, < 30 do not proceed.
PROCEED_ABOVE = 80.0
CAUTION_FROM = 50.0
NOT_RECOMMENDED_FROM = 30.0


class NoIterationsError(ValueError):
    """Raised when statistics are requested over an empty iteration set."""


def confidence_for(standard_deviation: float) -> ConfidenceLevel:
    if standard_deviation <= HIGH_CONFIDENCE_MAX_STDEV:
        return ConfidenceLevel.HIGH
    if standard_deviation <= MEDIUM_CONFIDENCE_MAX_STDEV:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def classify_median(median: float) -> Decision:
    if median > PROCEED_ABOVE:
        return Decision.PROCEED
    if median >= CAUTION_FROM:
        return Decision.PROCEED_WITH_CAUTION
    if median >= NOT_RECOMMENDED_FROM:
        return Decision.NOT_RECOMMENDED
    return Decision.DO_NOT_PROCEED


def compute_statistics(scores: Sequence[float]) -> DecisionStatistics:
    """Mean, median and population standard deviation of ``scores``."""
    if not scores:
        raise NoIterationsError("Cannot compute statistics over zero iterations")
    mean = statistics.fmean(scores)
    median = float(statistics.median(scores))
    stdev = statistics.pstdev(scores, mu=mean)
    return DecisionStatistics(
        mean=mean,
        median=median,
        standard_deviation=stdev,
        confidence_level=confidence_for(stdev),
    )


def decide(iterations: Sequence[IterationResult]) -> DecisionResult:
    """Build the final DecisionResult from every iteration, placeholders included.

    Raises:
        NoIterationsError: If ``iterations`` is empty.
    """
    scores = [float(it.feasibility_score) for it in iterations]
    stats = compute_statistics(scores)
    decision = classify_median(stats.median)

    justification = (
        f"Based on the median assessment score of {stats.median:.1f}/100 "
        f"with {stats.confidence_level.value.lower()} confidence "
        f"(standard deviation: {stats.standard_deviation:.1f}), "
        f"the recommendation is: {decision.value}."
    )

    logger.info(
        "Final results - scores: %s, median: %.1f, stdev: %.2f, decision: %s",
        ", ".join(f"{s:g}" for s in scores),
        stats.median,
        stats.standard_deviation,
        decision.value,
    )

    return DecisionResult(
        decision=decision,
        median_score=stats.median,
        justification=justification,
        iterations=tuple(iterations),
        statistics=stats,
    )
