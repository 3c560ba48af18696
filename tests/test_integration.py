"""Integration tests: real API calls, no mocks. Requires GEMINI_API_KEY in .env."""

import os
from dataclasses import replace
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

pytestmark = pytest.mark.integration

if not os.environ.get("GEMINI_API_KEY", "").strip():
    pytestmark = pytest.mark.skip(reason="GEMINI_API_KEY not set")


async def test_full_pipeline_single_iteration(tmp_path: Path):
    """Run a real one-iteration analysis with the bundled agents, verify no crash."""
    from config.config_loader import load_config
    from src.cli import _build_providers, _build_run_settings
    from src.invoker import AgentInvoker
    from src.models import Proposal
    from src.output import save_to_file
    from src.pipeline import run_pipeline

    config = load_config()
    providers = _build_providers(config)
    assert "gemini" in providers

    agents = {a.id: a for a in config.agents.values() if a.provider in providers}
    settings = replace(
        _build_run_settings(config, iterations=1),
        turns_per_participant=1,
    )
    invoker = AgentInvoker(agents, providers)

    proposal = Proposal(
        proposal_info=(
            "Allocate 250,000 governance tokens from the community treasury to fund "
            "an independent smart contract audit of the lending module before the v3 launch."
        ),
        source="integration_test",
    )

    report = await run_pipeline(proposal, invoker, settings)

    assert len(report.decision.iterations) == 1
    iteration = report.decision.iterations[0]
    assert 0 <= iteration.feasibility_score <= 100
    assert len(iteration.transcript) == len(settings.participants)
    assert report.metrics.finalized
    assert report.metrics.total_input_tokens > 0

    saved = save_to_file(report, tmp_path / "output")
    content = saved.read_text(encoding="utf-8")
    assert "# Proposal Feasibility Report" in content
    assert "## Iteration 1" in content
