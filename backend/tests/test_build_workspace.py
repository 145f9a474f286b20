"""Tests for builds/workspace.py -- per-attempt working areas and path validation."""

from pathlib import Path

import pytest

from builds.types import AggregatedFile
from builds.workspace import (
    BuildWorkspace,
    PathValidationError,
    safe_segment,
    sanitize_output,
    validate_path,
)


def _file(name: str, content: str = "class A {}") -> AggregatedFile:
    return AggregatedFile(
        file_name=name,
        language="CSharp",
        content=content,
        code_unit_name=name.split(".")[0],
        function_count=1,
        total_size=len(content),
    )


# =========================================================================
# Path validation
# =========================================================================


class TestValidatePath:
    def test_valid_relative_path(self, tmp_path: Path) -> None:
        is_valid, error, resolved = validate_path(str(tmp_path), "UserService.cs")
        assert is_valid is True
        assert error == ""
        assert resolved == str((tmp_path / "UserService.cs").resolve())

    def test_nested_path(self, tmp_path: Path) -> None:
        is_valid, _, resolved = validate_path(str(tmp_path), "src/models/User.cs")
        assert is_valid is True
        assert resolved.endswith("src/models/User.cs")

    @pytest.mark.parametrize(
        "path",
        ["../escape.cs", "src/../../escape.cs", "..\\escape.cs"],
    )
    def test_traversal_blocked(self, tmp_path: Path, path: str) -> None:
        is_valid, error, resolved = validate_path(str(tmp_path), path)
        assert is_valid is False
        assert "traversal" in error
        assert resolved == ""

    def test_absolute_path_blocked(self, tmp_path: Path) -> None:
        is_valid, error, _ = validate_path(str(tmp_path), "/etc/passwd")
        assert is_valid is False
        assert error == "Absolute paths not allowed"

    def test_empty_path_blocked(self, tmp_path: Path) -> None:
        assert validate_path(str(tmp_path), "")[0] is False


class TestHelpers:
    def test_safe_segment(self) -> None:
        assert safe_segment("proj-1") == "proj-1"
        assert safe_segment("a/b") == "a_b"
        assert safe_segment("..") == "_.."
        assert safe_segment(".hidden") == "_.hidden"

    def test_sanitize_output_truncates(self) -> None:
        output = sanitize_output("x" * 120, max_length=100)
        assert output.startswith("x" * 100)
        assert "20 chars omitted" in output

    def test_sanitize_output_empty(self) -> None:
        assert sanitize_output("") == ""


# =========================================================================
# Working areas
# =========================================================================


class TestBuildWorkspace:
    async def test_path_is_keyed_by_project_and_attempt(self, build_root: str) -> None:
        workspace = BuildWorkspace("proj_1", "att_1", root=build_root)
        assert workspace.path == Path(build_root).resolve() / "proj_1" / "att_1"

    async def test_write_files_and_cleanup(self, build_root: str) -> None:
        async with BuildWorkspace("proj_1", "att_1", root=build_root) as workspace:
            written = await workspace.write_files([_file("UserService.cs"), _file("UserController.cs")])
            assert len(written) == 2
            assert workspace.list_files() == ["UserController.cs", "UserService.cs"]
            assert (workspace.path / "UserService.cs").read_text() == "class A {}"
        assert not workspace.path.exists()

    async def test_keep_leaves_directory(self, build_root: str) -> None:
        async with BuildWorkspace("proj_1", "att_1", root=build_root, keep=True) as workspace:
            await workspace.write_file("UserService.cs", "class A {}")
        assert workspace.path.exists()

    async def test_write_outside_area_raises(self, build_root: str) -> None:
        async with BuildWorkspace("proj_1", "att_1", root=build_root) as workspace:
            with pytest.raises(PathValidationError):
                await workspace.write_file("../../escape.cs", "x")

    async def test_create_replaces_leftovers(self, build_root: str) -> None:
        workspace = BuildWorkspace("proj_1", "att_1", root=build_root, keep=True)
        await workspace.create()
        await workspace.write_file("stale.cs", "old")
        await workspace.create()
        assert workspace.list_files() == []

    async def test_attempts_do_not_share_directories(self, build_root: str) -> None:
        first = BuildWorkspace("proj_1", "att_1", root=build_root)
        second = BuildWorkspace("proj_1", "att_2", root=build_root)
        other = BuildWorkspace("proj_2", "att_1", root=build_root)
        assert len({first.path, second.path, other.path}) == 3

    async def test_hostile_ids_stay_inside_root(self, build_root: str) -> None:
        workspace = BuildWorkspace("../../etc", "att_1", root=build_root)
        workspace.path.relative_to(Path(build_root).resolve())
