from __future__ import annotations

import subprocess
from pathlib import Path
from typing import IO, Any


class GitError(RuntimeError):
    """Raised when a git command fails or git is unavailable."""


def git_check_output(
    args: list[str],
    *,
    cwd: Path,
    stderr: int | IO[Any] | None = subprocess.STDOUT,
) -> str:
    """
    Run a git command and return its stdout.

    Args are passed without the leading `git` (e.g., `['rev-parse', 'HEAD']`).
    """

    try:
        return subprocess.check_output(
            ["git", *args],
            cwd=str(cwd),
            stderr=stderr,
            text=True,
        )
    except subprocess.CalledProcessError as exc:  # pragma: no cover
        msg = (exc.output or "").strip()
        raise GitError(msg or f"git command failed: {' '.join(args)}") from exc
    except (FileNotFoundError, NotADirectoryError) as exc:  # pragma: no cover
        raise GitError("git is unavailable") from exc


def git_head(*, cwd: Path) -> str | None:
    """
    Return the current commit hash for `cwd`, or None outside a repository.

    History entries record it for context only, so a missing git binary is
    not an error.
    """

    try:
        out = git_check_output(["rev-parse", "HEAD"], cwd=cwd, stderr=subprocess.DEVNULL).strip()
    except (GitError, PermissionError):
        return None
    return out or None
