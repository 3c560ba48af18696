"""Follow-up questions to the expert panel and perspective updates from their answers."""

import asyncio
import json
import logging

from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from src.invoker import AgentInvoker, is_error_text
from src.iteration import describe_validation_error
from src.models import AnalysisReport, DiscussionMessage, InstructionUpdate, RunSettings
from src.prompts import format_transcript, render
from src.tokens import truncate_prompt

logger = logging.getLogger(__name__)


class InstructionUpdatePayload(BaseModel):
    """Structured output expected from the prompt-update agent."""

    model_config = ConfigDict(populate_by_name=True)

    update: StrictBool
    new_instruction: str = Field(default="", alias="newInstruction")

    @field_validator("new_instruction", mode="before")
    @classmethod
    def _null_instruction(cls, value):
        return "" if value is None else value


def build_qa_context(report: AnalysisReport, history: list[DiscussionMessage]) -> str:
    last_transcript = report.decision.iterations[-1].transcript if report.decision.iterations else ()
    summary = (
        json.dumps(report.analysis.summary_data, indent=2, ensure_ascii=False)
        if report.analysis.summary_data is not None
        else report.analysis.summary
    )
    transcript = format_transcript(last_transcript, separator="\n")
    previous_qa = format_transcript(history, separator="\n") or "No Q&A history yet."
    return (
        "Here is the full context of the original analysis:\n"
        f"**Original Proposal:**\n{report.proposal.proposal_info}\n\n"
        f"**Initial Analysis & Summary:**\n"
        f"Classification:\n{report.analysis.classification}\n\nSummary:\n{summary}\n\n"
        f"**Expert Discussion Transcript:**\n{transcript}\n\n"
        f"**Final Decision:**\n{report.decision.decision.value} "
        f"(median {report.decision.median_score:.1f}/100). {report.decision.justification}\n\n"
        f"--- PREVIOUS Q&A HISTORY ---\n{previous_qa}"
    )


async def ask_experts(
    question: str,
    report: AnalysisReport,
    invoker: AgentInvoker,
    settings: RunSettings,
    history: list[DiscussionMessage] | None = None,
) -> list[DiscussionMessage]:
    """Put ``question`` to every discussion participant concurrently.

    Returns one message per participant, in panel order. ``history`` holds
    earlier Q&A exchanges (user questions included) and is not modified.
    """
    context = build_qa_context(report, history or [])

    async def _answer(agent_id: str) -> DiscussionMessage:
        try:
            instruction = invoker.resolve(agent_id).system_instruction
        except KeyError:
            instruction = ""
        prompt = (
            f"{context}\n\n--- NEW QUESTION FROM USER ---\n{question}\n\n--- YOUR TASK ---\n"
            f'As {invoker.display_name(agent_id)}, your core instruction is: "{instruction}".\n\n'
            "Based on this instruction and all provided context, answer the user's question. "
            "**If the user's point convinces you or resolves one of your previous concerns, say so "
            "explicitly (e.g. 'That's a valid point, my concerns about X are addressed.').** "
            "Keep your answer concise and focused on your area of expertise."
        )
        call = await invoker.invoke(
            agent_id,
            truncate_prompt(prompt, settings.max_context_tokens),
            search_enabled=settings.search_enabled,
            seed=settings.seed,
            temperature=settings.temperature,
        )
        return DiscussionMessage(
            participant_id=agent_id,
            participant_name=invoker.display_name(agent_id),
            text=call.text,
        )

    return list(await asyncio.gather(*(_answer(a) for a in settings.participants)))


async def propose_instruction_updates(
    question: str,
    answers: list[DiscussionMessage],
    invoker: AgentInvoker,
    settings: RunSettings,
) -> list[InstructionUpdate]:
    """Let the prompt-update agent revise expert instructions after a Q&A exchange.

    Accepted updates are applied to ``invoker`` immediately, so the next
    discussion run uses them. Unparseable or failed update calls are skipped.
    """
    if not settings.prompt_update_agent:
        return []
    try:
        template = invoker.resolve(settings.prompt_update_agent).prompt
    except KeyError:
        logger.warning("Prompt update agent %s is not configured; skipping", settings.prompt_update_agent)
        return []

    updates: list[InstructionUpdate] = []
    for answer in answers:
        if is_error_text(answer.text):
            continue
        try:
            previous = invoker.resolve(answer.participant_id).system_instruction
        except KeyError:
            continue

        prompt = render(
            template,
            {
                "expert_instruction": previous,
                "user_question": question,
                "expert_response": answer.text,
            },
        )
        call = await invoker.invoke(
            settings.prompt_update_agent,
            truncate_prompt(prompt, settings.max_context_tokens),
            seed=settings.seed,
            temperature=settings.temperature,
        )
        if call.failed:
            logger.warning("Prompt update for %s failed: %s", answer.participant_id, call.text)
            continue

        try:
            payload = InstructionUpdatePayload.model_validate_json(call.text)
        except ValidationError as exc:
            logger.error(
                "Failed to parse prompt update for %s (%s). Raw response: %s",
                answer.participant_name,
                describe_validation_error(exc),
                call.text,
            )
            continue

        new_instruction = payload.new_instruction.strip()
        if payload.update and new_instruction:
            invoker.update_instruction(answer.participant_id, new_instruction)
            logger.info(
                "Updated instruction for %s. Old: %r New: %r",
                answer.participant_name,
                previous,
                new_instruction,
            )
            updates.append(
                InstructionUpdate(
                    agent_id=answer.participant_id,
                    agent_name=answer.participant_name,
                    previous=previous,
                    updated=new_instruction,
                )
            )
    return updates
