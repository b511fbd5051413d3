from __future__ import annotations

from pathlib import Path


def safe_relpath(path: Path, root: Path) -> str:
    """
    Return a stable, POSIX-style path for reporting output.

    Prefer a path relative to `root`; fall back to `path.as_posix()` when the
    path is outside the root or cannot be resolved.
    """

    try:
        resolved_path = path.resolve()
    except OSError:
        resolved_path = path

    try:
        resolved_root = root.resolve()
    except OSError:
        resolved_root = root

    try:
        return resolved_path.relative_to(resolved_root).as_posix()
    except ValueError:
        return path.as_posix()


def resolve_under_root(root: Path, spec: Path | str) -> Path | None:
    """Resolve `spec` against `root`, returning None when it escapes the root."""

    raw = Path(spec)
    candidate = raw if raw.is_absolute() else (root / raw)
    try:
        root_resolved = root.resolve()
        candidate_resolved = candidate.resolve()
        candidate_resolved.relative_to(root_resolved)
    except (OSError, RuntimeError, ValueError):
        return None
    return candidate_resolved


def padded_path(relative_path: str) -> str:
    # "/app/src/main/.../Foo.kt" so segment checks like "/data/" also match the first segment.
    rel = relative_path.replace("\\", "/").lstrip("/")
    return f"/{rel}"


def file_name(relative_path: str) -> str:
    return relative_path.replace("\\", "/").rsplit("/", 1)[-1]
