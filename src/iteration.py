"""One iteration: a fresh discussion round followed by one independent scoring call."""

import logging
from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError, field_validator

from src.discussion import MessageCallback, run_round
from src.invoker import AgentInvoker, is_error_text
from src.metrics import accumulate
from src.models import AgentMetrics, DiscussionMessage, IterationResult, ProposalContext, RunSettings
from src.prompts import build_scoring_prompt
from src.tokens import truncate_prompt

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0
PARSE_ERROR_FACTOR = "Parsing error occurred"


class ScoringPayload(BaseModel):
    """Structured output expected from the scoring agent."""

    model_config = ConfigDict(populate_by_name=True)

    # Strict so a JSON boolean is not read as 0 or 1.
    feasibility_score: StrictInt | StrictFloat = Field(alias="feasibilityScore", ge=0, le=100)
    rationale: str = ""
    key_factors: list[str] = Field(default_factory=list, alias="keyFactors")

    @field_validator("rationale", mode="before")
    @classmethod
    def _null_rationale(cls, value):
        return "" if value is None else value

    @field_validator("key_factors", mode="before")
    @classmethod
    def _null_key_factors(cls, value):
        return [] if value is None else value


@dataclass
class IterationOutcome:
    result: IterationResult
    metrics: dict[str, AgentMetrics] = field(default_factory=dict)


def describe_validation_error(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in exc.errors()
    )


def parse_scoring_output(
    text: str,
    iteration_index: int,
    transcript: tuple[DiscussionMessage, ...] = (),
) -> IterationResult:
    """Parse the scoring agent's output into an IterationResult.

    Anything unusable (an error-marked call, invalid JSON, a missing or
    out-of-range score) yields a placeholder at NEUTRAL_SCORE whose rationale
    starts with "Evaluation <n> failed to parse".
    """
    reason: str | None = None
    payload: ScoringPayload | None = None

    if is_error_text(text):
        reason = f"scoring call returned an error ({text})"
    else:
        try:
            payload = ScoringPayload.model_validate_json(text)
        except ValidationError as exc:
            reason = describe_validation_error(exc)

    if payload is None:
        logger.error("Iteration %d: failed to parse evaluation: %s", iteration_index, reason)
        return IterationResult(
            iteration_index=iteration_index,
            feasibility_score=NEUTRAL_SCORE,
            rationale=f"Evaluation {iteration_index} failed to parse: {reason}",
            key_factors=(PARSE_ERROR_FACTOR,),
            transcript=transcript,
            parse_failed=True,
        )

    return IterationResult(
        iteration_index=iteration_index,
        feasibility_score=float(payload.feasibility_score),
        rationale=payload.rationale,
        key_factors=tuple(payload.key_factors),
        transcript=transcript,
    )


async def run_iteration(
    context: ProposalContext,
    iteration_index: int,
    invoker: AgentInvoker,
    settings: RunSettings,
    on_message: MessageCallback | None = None,
) -> IterationOutcome:
    """Run one discussion round, then score its transcript once.

    The scoring prompt is built from this iteration's transcript alone and
    tells the scorer to judge independently, so iterations stay independent
    samples. Scoring never uses search.
    """
    logger.info("Iteration %d: expert discussion", iteration_index)
    round_result = await run_round(
        context,
        settings.participants,
        settings.turns_per_participant,
        invoker,
        settings,
        on_message=on_message,
    )
    transcript = tuple(round_result.transcript)

    logger.info("Iteration %d: feasibility scoring", iteration_index)
    try:
        template = invoker.resolve(settings.scoring_agent).prompt
    except KeyError:
        template = "{expert_discussion_transcript}"
    prompt = build_scoring_prompt(template, transcript, iteration_index)
    prompt = truncate_prompt(prompt, settings.max_context_tokens)

    call = await invoker.invoke(
        settings.scoring_agent,
        prompt,
        search_enabled=False,
        seed=settings.seed,
        temperature=settings.temperature,
    )

    metrics = dict(round_result.metrics)
    accumulate(metrics, settings.scoring_agent, call.metrics)

    result = parse_scoring_output(call.text, iteration_index, transcript)
    logger.info("Iteration %d: score %.1f/100", iteration_index, result.feasibility_score)
    return IterationOutcome(result=result, metrics=metrics)
