"""Proposal inbox: scan for markdown proposals, read frontmatter overrides, archive."""

import shutil
from datetime import datetime
from pathlib import Path

import frontmatter

from src.models import Proposal

# Frontmatter keys that override run settings for a single proposal.
OVERRIDE_KEYS = ("iterations", "search", "seed", "temperature")


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return all .md proposals in inbox_dir, oldest first."""
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def parse_proposal_file(file_path: Path) -> tuple[Proposal, dict]:
    """Read a proposal from markdown with optional YAML frontmatter.

    Returns:
        (proposal, overrides). The body becomes ``proposal_info``; ``url``
        and ``date`` frontmatter fill the matching Proposal fields. Any of
        OVERRIDE_KEYS present in the frontmatter are returned as overrides.
    """
    post = frontmatter.load(str(file_path))
    metadata = dict(post.metadata)
    proposal = Proposal(
        proposal_info=post.content.strip(),
        date=str(metadata.get("date", "") or ""),
        url=str(metadata.get("url", "") or ""),
        source=str(file_path),
    )
    overrides = {k: metadata[k] for k in OVERRIDE_KEYS if k in metadata}
    return proposal, overrides


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed proposal into archive_dir with a timestamp prefix.

    Failed runs get an extra "FAILED_" prefix.
    """
    timestamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    prefix = "FAILED_" if failed else ""
    dest = archive_dir / f"{prefix}{timestamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
