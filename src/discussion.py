"""Discussion rounds: sequential expert turns over a shared, growing transcript."""

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from src.invoker import AgentInvoker
from src.metrics import accumulate
from src.models import AgentMetrics, DiscussionMessage, ProposalContext, RunSettings
from src.prompts import build_discussion_prompt
from src.tokens import truncate_prompt

logger = logging.getLogger(__name__)

MessageCallback = Callable[[DiscussionMessage], None]


@dataclass
class RoundResult:
    transcript: list[DiscussionMessage] = field(default_factory=list)
    metrics: dict[str, AgentMetrics] = field(default_factory=dict)


async def run_round(
    context: ProposalContext,
    participant_ids: Sequence[str],
    turns_per_participant: int,
    invoker: AgentInvoker,
    settings: RunSettings,
    on_message: MessageCallback | None = None,
) -> RoundResult:
    """Run one multi-turn discussion among ``participant_ids``.

    Each of the ``turns_per_participant`` turns gives every participant one
    call, in order. Every prompt carries the full transcript so far, so each
    message is visible to all later speakers in this round.

    Args:
        context: Shared proposal context, read-only.
        participant_ids: Speaking order.
        turns_per_participant: Number of passes through the participants (>= 1).
        invoker: Agent invoker used for every call.
        settings: Seed, temperature, search toggle, delay and token budget.
        on_message: Optional callback invoked as soon as each message is appended.

    Returns:
        RoundResult with the ordered transcript and per-participant metrics.
    """
    if turns_per_participant < 1:
        raise ValueError(f"turns_per_participant must be >= 1, got {turns_per_participant}")

    result = RoundResult()

    for turn in range(1, turns_per_participant + 1):
        logger.debug("Discussion turn %d/%d", turn, turns_per_participant)
        for participant_id in participant_ids:
            try:
                instruction = invoker.resolve(participant_id).system_instruction
            except KeyError:
                instruction = ""
            prompt = build_discussion_prompt(context.text, result.transcript, instruction)
            prompt = truncate_prompt(prompt, settings.max_context_tokens)

            call = await invoker.invoke(
                participant_id,
                prompt,
                search_enabled=settings.search_enabled,
                seed=settings.seed,
                temperature=settings.temperature,
            )
            accumulate(result.metrics, participant_id, call.metrics)

            message = DiscussionMessage(
                participant_id=participant_id,
                participant_name=invoker.display_name(participant_id),
                text=call.text,
            )
            result.transcript.append(message)
            if on_message:
                on_message(message)

            # Rate-limit spacing between external calls.
            if settings.inter_call_delay_sec > 0:
                await asyncio.sleep(settings.inter_call_delay_sec)

    return result
