"""Inbox of queued research requests: markdown files with optional frontmatter."""

import shutil
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

import frontmatter


@dataclass
class ResearchRequest:
    path: Path
    query: str
    mode: str | None = None
    provider: str | None = None
    brief: str | None = None        # skips straight to research when given
    attach: Path | None = None      # resolved relative to the request file


def ensure_dirs(inbox_dir: Path, archive_dir: Path) -> None:
    """Create inbox and archive directories if they don't exist."""
    inbox_dir.mkdir(parents=True, exist_ok=True)
    archive_dir.mkdir(parents=True, exist_ok=True)


def scan_inbox(inbox_dir: Path) -> list[Path]:
    """Return queued .md requests, oldest first."""
    return sorted(inbox_dir.glob("*.md"), key=lambda p: p.stat().st_mtime)


def _optional_str(metadata: dict, key: str) -> str | None:
    value = metadata.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_request(file_path: Path) -> ResearchRequest:
    """Read one queued request.

    The body is the research query. Frontmatter keys: mode, provider, brief,
    attach. Unknown keys are ignored.

    Raises:
        ValueError: If the body is empty.
    """
    post = frontmatter.load(str(file_path))
    query = post.content.strip()
    if not query:
        raise ValueError(f"Research request has no query text: {file_path.name}")

    metadata = dict(post.metadata)
    attach = _optional_str(metadata, "attach")
    attach_path: Path | None = None
    if attach:
        attach_path = Path(attach)
        if not attach_path.is_absolute():
            attach_path = file_path.parent / attach_path

    return ResearchRequest(
        path=file_path,
        query=query,
        mode=_optional_str(metadata, "mode"),
        provider=_optional_str(metadata, "provider"),
        brief=_optional_str(metadata, "brief"),
        attach=attach_path,
    )


def archive_file(file_path: Path, archive_dir: Path, *, failed: bool = False) -> Path:
    """Move a processed request into archive_dir, timestamped; failures get a FAILED_ prefix."""
    stamp = datetime.now().strftime("%Y-%m-%dT%H%M")
    dest = archive_dir / f"{'FAILED_' if failed else ''}{stamp}_{file_path.name}"
    shutil.move(str(file_path), str(dest))
    return dest
