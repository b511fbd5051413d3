from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from qualitysentinel.config import DEFAULT_OUTPUT_DIR, QualitySentinelConfig, path_is_ignored
from qualitysentinel.engine.types import FileInfo, Layer
from qualitysentinel.utils import padded_path, safe_relpath

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DIRS = {
    ".git",
    ".gradle",
    ".idea",
    "build",
    "generated",
    "bin",
    "out",
    "node_modules",
    DEFAULT_OUTPUT_DIR,
}

# Generated output that can sit below a source root.
GENERATED_GLOBS: tuple[str, ...] = (
    "*/build/*",
    "*/generated/*",
    "*/.gradle/*",
    "*/intermediates/*",
    "*/tmp/kapt3/*",
)

QUALITYSENTINEL_WORKERS_ENV = "QUALITYSENTINEL_WORKERS"
DEFAULT_MAX_WORKERS = 32


class ScanError(RuntimeError):
    """Raised when the scan root is missing or is not a directory."""


def resolve_worker_count(
    raw_value: str | None,
    *,
    default: int | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> int:
    """
    Resolve a safe worker count from an env var-style string.

    - None/""/"auto" fall back to the default
    - Values <= 0 fall back to the default
    - Values above `max_workers` are clamped
    """

    cpu = os.cpu_count() or 1
    resolved_default = max(1, default if default is not None else cpu)
    if raw_value is None:
        return min(resolved_default, max_workers)

    normalized = raw_value.strip().lower()
    if not normalized or normalized in {"auto", "default"}:
        return min(resolved_default, max_workers)

    try:
        workers = int(normalized)
    except ValueError:
        logger.debug("Ignoring invalid %s=%r", QUALITYSENTINEL_WORKERS_ENV, raw_value)
        return min(resolved_default, max_workers)

    if workers <= 0:
        return min(resolved_default, max_workers)
    return min(workers, max_workers)


def worker_count_from_env(*, default: int | None = None) -> int:
    return resolve_worker_count(os.environ.get(QUALITYSENTINEL_WORKERS_ENV), default=default)


def detect_layer(relative_path: str) -> Layer | None:
    padded = padded_path(relative_path)
    if "/data/" in padded:
        return "data"
    if "/domain/" in padded:
        return "domain"
    if "/ui/" in padded or "/presentation/" in padded:
        return "ui"
    if "/di/" in padded:
        return "di"
    if "/test/" in padded or "/androidTest/" in padded:
        return "test"
    return None


def file_info(path: Path, project_root: Path) -> FileInfo:
    """Build a `FileInfo` for one file. Raises `OSError` when it cannot be stat'ed."""

    stat = path.stat()
    relative = safe_relpath(path, project_root)
    return FileInfo(
        path=path.resolve(),
        relative_path=relative,
        size=stat.st_size,
        last_modified=stat.st_mtime,
        layer=detect_layer(relative),
    )


class FileScanner:
    """Enumerates candidate source files for a project root."""

    def __init__(self, config: QualitySentinelConfig | None = None) -> None:
        self.config = config or QualitySentinelConfig()

    def scan_directory(self, root: Path, *, project_root: Path | None = None) -> list[FileInfo]:
        """
        Walk `root` recursively and return one record per regular file.

        Relative paths are computed against `project_root` (default: `root`).
        Build output and IDE directories are pruned during the walk.
        """

        if not root.exists():
            raise ScanError(f"Scan root does not exist: {root}")
        if not root.is_dir():
            raise ScanError(f"Scan root is not a directory: {root}")

        base_root = project_root or root
        skip_dirs = DEFAULT_SKIP_DIRS | {Path(self.config.output_dir).parts[0]}
        files: list[FileInfo] = []
        for dirpath, dirnames, filenames in os.walk(root, topdown=True):
            dirnames[:] = sorted(d for d in dirnames if d not in skip_dirs)
            base = Path(dirpath)
            for filename in filenames:
                path = base / filename
                try:
                    files.append(file_info(path, base_root))
                except OSError as exc:
                    logger.warning("Skipping %s: %s", path, exc)
        return sorted(files, key=lambda f: f.relative_path)

    def filter_files(self, files: Iterable[FileInfo]) -> list[FileInfo]:
        extensions = tuple(self.config.extensions)
        max_bytes = self.config.max_file_size_kb * 1024
        ignore = self.config.ignore.paths
        out: list[FileInfo] = []
        for info in files:
            if not info.relative_path.lower().endswith(extensions):
                continue
            if is_generated(info.relative_path):
                continue
            if ignore and path_is_ignored(info.relative_path, ignore):
                continue
            if info.size > max_bytes:
                logger.info("Skipping %s: larger than %d KB", info.relative_path, self.config.max_file_size_kb)
                continue
            out.append(info)
        return out

    def expand_paths(self, paths: Iterable[Path], *, project_root: Path) -> list[FileInfo]:
        """Records for explicit files plus every file below explicit directories."""

        by_path: dict[str, FileInfo] = {}
        for path in paths:
            if path.is_dir():
                for info in self.scan_directory(path, project_root=project_root):
                    by_path[info.relative_path] = info
            else:
                info = file_info(path, project_root)
                by_path[info.relative_path] = info
        return [by_path[key] for key in sorted(by_path)]


def is_generated(relative_path: str) -> bool:
    padded = padded_path(relative_path)
    return any(fnmatch.fnmatch(padded, pattern) for pattern in GENERATED_GLOBS)
