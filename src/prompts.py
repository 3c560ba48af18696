"""Prompt assembly for discussion turns and scoring calls."""

from collections.abc import Iterable, Mapping

from src.models import DiscussionMessage

NO_HISTORY_PLACEHOLDER = "(No history yet. You are the first to speak.)"

DISCOURSE_RULES = """\
Communicate as a domain expert would, using professional terminology and drawing from established knowledge in your field.
Base every claim on evidence or sound reasoning. When uncertain, state your confidence explicitly (e.g. "Based on available evidence", "This requires further verification").
Ask the questions a real expert would ask: What evidence supports this? What are the risks or limitations? Has this been tried before? What are the implementation challenges?
When one of your concerns has been adequately addressed, say so clearly: "My concerns about [issue] have been resolved based on [reasoning/evidence]."
Criticize constructively: identify specific weaknesses and suggest improvements instead of rejecting outright. Frame objections around evidence, feasibility, or consequences.
If the proposal is truly unacceptable (safety, ethical or technical impossibility), explain why and offer alternative directions where possible."""

INDEPENDENCE_INSTRUCTION = (
    "**Independent Assessment #{iteration}**: Provide your fresh, independent evaluation "
    "of this discussion only. Ignore any other iteration or previous assessment."
)


def render(template: str, bindings: Mapping[str, str]) -> str:
    """Replace each literal ``{key}`` in ``template``; other braces are left alone."""
    for key, value in bindings.items():
        template = template.replace("{" + key + "}", value)
    return template


def format_transcript(messages: Iterable[DiscussionMessage], separator: str = "\n\n") -> str:
    return separator.join(f"{m.participant_name}: {m.text}" for m in messages)


def build_discussion_prompt(
    context: str,
    history: list[DiscussionMessage],
    instruction: str,
) -> str:
    history_text = format_transcript(history) or NO_HISTORY_PLACEHOLDER
    return (
        f"{context}\n\n"
        f"Conversation History:\n{history_text}\n\n"
        f"Your instruction: {instruction}\n\n"
        f"Conversation rules:\n{DISCOURSE_RULES}"
    )


def build_scoring_prompt(
    template: str,
    transcript: Iterable[DiscussionMessage],
    iteration_index: int,
) -> str:
    base = render(template, {"expert_discussion_transcript": format_transcript(transcript)})
    return f"{base}\n\n{INDEPENDENCE_INSTRUCTION.format(iteration=iteration_index)}"
