"""Unit tests for src/inbox.py: no API calls."""

import textwrap
from pathlib import Path

from src.inbox import archive_file, ensure_dirs, parse_proposal_file, scan_inbox


def test_parse_file_no_frontmatter(tmp_path: Path) -> None:
    """File without frontmatter becomes a proposal with empty overrides."""
    f = tmp_path / "proposal.md"
    f.write_text("Allocate 200k to a bug bounty program.", encoding="utf-8")
    proposal, overrides = parse_proposal_file(f)
    assert proposal.proposal_info == "Allocate 200k to a bug bounty program."
    assert proposal.url == ""
    assert proposal.source == str(f)
    assert overrides == {}


def test_parse_file_with_frontmatter(tmp_path: Path) -> None:
    """Frontmatter fills url/date and returns run overrides."""
    f = tmp_path / "proposal.md"
    f.write_text(
        textwrap.dedent("""\
            ---
            url: https://forum.example.org/t/12
            date: 2025-03-01
            iterations: 5
            search: true
            author: ignored
            ---
            Migrate the treasury to a multisig.
        """),
        encoding="utf-8",
    )
    proposal, overrides = parse_proposal_file(f)
    assert proposal.proposal_info == "Migrate the treasury to a multisig."
    assert proposal.url == "https://forum.example.org/t/12"
    assert proposal.date == "2025-03-01"
    assert overrides == {"iterations": 5, "search": True}


def test_archive_file_success(tmp_path: Path) -> None:
    """archive_file() moves file to archive dir with timestamp prefix."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = inbox / "my-proposal.md"
    src.write_text("A proposal", encoding="utf-8")

    dest = archive_file(src, archive)

    assert not src.exists(), "Source should be moved"
    assert dest.exists(), "Destination should exist"
    assert dest.parent == archive
    # Timestamp prefix: YYYY-MM-DDTHHMM_my-proposal.md
    assert dest.name.endswith("_my-proposal.md")
    assert not dest.name.startswith("FAILED_")


def test_archive_file_failed(tmp_path: Path) -> None:
    """archive_file(failed=True) prefixes filename with FAILED_."""
    inbox = tmp_path / "inbox"
    archive = tmp_path / "archive"
    ensure_dirs(inbox, archive)

    src = inbox / "broken.md"
    src.write_text("Bad proposal", encoding="utf-8")

    dest = archive_file(src, archive, failed=True)

    assert not src.exists()
    assert dest.name.startswith("FAILED_")
    assert "broken.md" in dest.name


def test_scan_inbox_only_markdown(tmp_path: Path) -> None:
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    (inbox / "a.md").write_text("A", encoding="utf-8")
    (inbox / "notes.txt").write_text("skip", encoding="utf-8")
    assert [p.name for p in scan_inbox(inbox)] == ["a.md"]


def test_scan_inbox_empty(tmp_path: Path) -> None:
    """scan_inbox() on an empty directory returns an empty list."""
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    assert scan_inbox(inbox) == []
