"""Tests for src/prompts.py."""

from src.models import DiscussionMessage
from src.prompts import (
    DISCOURSE_RULES,
    NO_HISTORY_PLACEHOLDER,
    build_discussion_prompt,
    build_scoring_prompt,
    format_transcript,
    render,
)

MESSAGES = [
    DiscussionMessage("expert_1", "Treasury Analyst", "Budget looks fine."),
    DiscussionMessage("expert_2", "Security Reviewer", "Needs an audit."),
]


def test_render_leaves_other_braces_alone():
    template = 'Return {"score": n} for {proposal_info}'
    assert render(template, {"proposal_info": "P-1"}) == 'Return {"score": n} for P-1'


def test_render_replaces_every_occurrence():
    assert render("{a} and {a}", {"a": "x"}) == "x and x"


def test_format_transcript():
    assert format_transcript(MESSAGES) == "Treasury Analyst: Budget looks fine.\n\nSecurity Reviewer: Needs an audit."
    assert format_transcript([]) == ""


def test_discussion_prompt_first_speaker_gets_placeholder():
    prompt = build_discussion_prompt("CONTEXT", [], "Be thorough.")
    assert prompt.startswith("CONTEXT")
    assert NO_HISTORY_PLACEHOLDER in prompt
    assert "Your instruction: Be thorough." in prompt
    assert DISCOURSE_RULES in prompt


def test_discussion_prompt_contains_history():
    prompt = build_discussion_prompt("CONTEXT", MESSAGES, "Be thorough.")
    assert "Treasury Analyst: Budget looks fine." in prompt
    assert NO_HISTORY_PLACEHOLDER not in prompt


def test_scoring_prompt_binds_transcript_and_independence():
    prompt = build_scoring_prompt("Score:\n{expert_discussion_transcript}", MESSAGES, 4)
    assert "Security Reviewer: Needs an audit." in prompt
    assert "Independent Assessment #4" in prompt
    assert "{expert_discussion_transcript}" not in prompt
