"""Isolated build working areas.

Every build attempt gets its own directory under ``settings.build_root``,
keyed by project id and attempt id, so that concurrent builds for different
projects (or different attempts for one project) never share files.
All writes go through ``validate_path``.
"""

import asyncio
import re
import shutil
from pathlib import Path

import structlog

from builds.types import AggregatedFile
from config import settings

logger = structlog.get_logger(__name__)

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_.-]")


class PathValidationError(ValueError):
    """Raised when a file path would escape its working area."""


def safe_segment(value: str) -> str:
    """Reduce an identifier to a single safe directory name.

    Examples:
        >>> safe_segment("proj-1")
        'proj-1'
        >>> safe_segment("../etc")
        '_.._etc'
    """
    cleaned = _UNSAFE_SEGMENT.sub("_", value.strip())
    if cleaned in ("", ".", ".."):
        cleaned = f"_{cleaned}"
    if cleaned.startswith("."):
        cleaned = f"_{cleaned}"
    return cleaned


def validate_path(root: str, relative_path: str) -> tuple[bool, str, str]:
    """Validate a file path to prevent directory traversal.

    Args:
        root: Absolute path of the working area.
        relative_path: Path the caller wants to write, relative to ``root``.

    Returns:
        A tuple of (is_valid, error_message, resolved_absolute_path).

    Examples:
        >>> validate_path("/tmp/build", "UserService.cs")
        (True, "", "/tmp/build/UserService.cs")
        >>> validate_path("/tmp/build", "../other/UserService.cs")
        (False, "Path traversal blocked: contains '..'", "")
    """
    if not relative_path:
        return False, "Path cannot be empty", ""

    if relative_path.startswith(("/", "\\")):
        return False, "Absolute paths not allowed", ""

    components = [
        part
        for part in relative_path.replace("\\", "/").split("/")
        if part not in ("", ".")
    ]
    if ".." in components:
        return False, "Path traversal blocked: contains '..'", ""

    try:
        root_path = Path(root).resolve()
        resolved = (root_path / relative_path).resolve()
    except (ValueError, OSError) as e:
        return False, f"Invalid path: {e}", ""

    try:
        resolved.relative_to(root_path)
    except ValueError:
        return False, f"Path traversal blocked: {relative_path}", ""

    return True, "", str(resolved)


def sanitize_output(output: str, max_length: int = 50000) -> str:
    """Truncate excessively long toolchain output."""
    if not output:
        return ""
    if len(output) > max_length:
        truncated_chars = len(output) - max_length
        output = output[:max_length] + f"\n... [truncated, {truncated_chars} chars omitted]"
    return output


class BuildWorkspace:
    """A per-attempt working directory.

    Usage:
        >>> async with BuildWorkspace("proj_1", attempt_id) as workspace:
        ...     await workspace.write_files(aggregation.aggregated_files)
        ...     result = await executor.execute(str(workspace.path), "CSharp")

    Attributes:
        project_id: Owning project.
        attempt_id: Build attempt the area belongs to.
        path: Absolute directory of the working area.
        keep: If True, the directory survives ``cleanup``.
    """

    def __init__(
        self,
        project_id: str,
        attempt_id: str,
        root: str | None = None,
        keep: bool | None = None,
    ) -> None:
        self.project_id = project_id
        self.attempt_id = attempt_id
        base = Path(root or settings.build_root).resolve()
        self.path = base / safe_segment(project_id) / safe_segment(attempt_id)
        self.keep = settings.keep_build_workspaces if keep is None else keep

    async def create(self) -> Path:
        """Create the directory, replacing any leftover from a previous run."""
        await asyncio.get_running_loop().run_in_executor(None, self._create_dir)
        logger.debug("build_workspace_created", project_id=self.project_id, path=str(self.path))
        return self.path

    def _create_dir(self) -> None:
        if self.path.exists():
            shutil.rmtree(self.path)
        self.path.mkdir(parents=True)

    async def write_file(self, relative_path: str, content: str) -> str:
        """Write one file inside the working area.

        Raises:
            PathValidationError: If the path escapes the working area.
        """
        is_valid, error_msg, resolved = validate_path(str(self.path), relative_path)
        if not is_valid:
            raise PathValidationError(error_msg)
        await asyncio.get_running_loop().run_in_executor(
            None, self._write_text, Path(resolved), content
        )
        return resolved

    @staticmethod
    def _write_text(target: Path, content: str) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")

    async def write_files(self, files: list[AggregatedFile]) -> list[str]:
        """Materialize aggregated files, in order. Returns absolute paths."""
        written = [await self.write_file(f.file_name, f.content) for f in files]
        logger.info(
            "build_workspace_files_written",
            project_id=self.project_id,
            attempt_id=self.attempt_id,
            file_count=len(written),
        )
        return written

    def list_files(self) -> list[str]:
        """Relative paths of every file currently in the working area."""
        if not self.path.exists():
            return []
        return sorted(
            str(p.relative_to(self.path)) for p in self.path.rglob("*") if p.is_file()
        )

    async def cleanup(self) -> None:
        if self.keep:
            logger.debug("build_workspace_kept", path=str(self.path))
            return
        await asyncio.get_running_loop().run_in_executor(
            None, lambda: shutil.rmtree(self.path, ignore_errors=True)
        )
        logger.debug("build_workspace_removed", path=str(self.path))

    async def __aenter__(self) -> "BuildWorkspace":
        await self.create()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.cleanup()
