"""Build execution against a language toolchain.

LocalBuildExecutor runs the toolchain for a working area's dominant language
as an asyncio subprocess and parses compiler output into BuildErrors:

    CSharp      dotnet build on a generated GeneratedProject.csproj
    TypeScript  npm install, then npx tsc
    Python      py_compile on every .py file
    Java        javac on every .java file
    other       generic success, no validation
"""

import asyncio
import json
import shutil
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

from builds.parsers import (
    parse_csharp_errors,
    parse_java_errors,
    parse_python_errors,
    parse_typescript_errors,
)
from builds.types import BuildError, BuildErrorType, BuildExecutionResult, BuildValidationResult
from builds.workspace import sanitize_output
from config import settings

logger = structlog.get_logger(__name__)

# Severity of the synthetic error reported when a failed command printed no parseable diagnostics.
ERROR_FALLBACK_SEVERITY = 8

CSHARP_PROJECT_FILE = """\
<Project Sdk="Microsoft.NET.Sdk">
  <PropertyGroup>
    <TargetFramework>net8.0</TargetFramework>
    <OutputType>Library</OutputType>
    <Nullable>enable</Nullable>
    <ImplicitUsings>enable</ImplicitUsings>
  </PropertyGroup>
</Project>
"""

PACKAGE_JSON: dict[str, object] = {
    "name": "generated-project",
    "version": "1.0.0",
    "private": True,
    "scripts": {"build": "tsc"},
    "devDependencies": {"typescript": "^5.0.0", "@types/node": "^20.0.0"},
}

TSCONFIG_JSON: dict[str, object] = {
    "compilerOptions": {
        "target": "ES2020",
        "module": "commonjs",
        "strict": True,
        "esModuleInterop": True,
        "skipLibCheck": True,
        "outDir": "./dist",
    },
    "include": ["./*.ts", "./**/*.ts"],
    "exclude": ["node_modules", "dist"],
}

# Normalized language -> tools that must be on PATH.
REQUIRED_TOOLS: dict[str, tuple[str, ...]] = {
    "csharp": ("dotnet",),
    "typescript": ("node", "npm"),
    "python": (),
    "java": ("javac", "java"),
}

_LANGUAGE_ALIASES: dict[str, str] = {
    "csharp": "csharp",
    "c#": "csharp",
    "typescript": "typescript",
    "javascript": "typescript",
    "python": "python",
    "java": "java",
}


def normalize_language(language: str) -> str:
    """Map a language name onto a toolchain key; unknown names pass through lowered."""
    lowered = language.strip().lower()
    return _LANGUAGE_ALIASES.get(lowered, lowered)


@dataclass
class CommandResult:
    """Result of running one toolchain command."""

    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False

    @property
    def combined(self) -> str:
        return f"{self.stdout}\n{self.stderr}"


@runtime_checkable
class BuildExecutor(Protocol):
    """Capability: build the files in a working directory."""

    async def execute(self, working_directory: str, dominant_language: str) -> BuildExecutionResult: ...


class LocalBuildExecutor:
    """Runs language toolchains on the local machine.

    Attributes:
        command_timeout: Seconds before a single toolchain command is killed.
    """

    def __init__(self, command_timeout: float | None = None) -> None:
        self.command_timeout = (
            command_timeout
            if command_timeout is not None
            else settings.build_command_timeout_seconds
        )

    async def execute(self, working_directory: str, dominant_language: str) -> BuildExecutionResult:
        """Build ``working_directory`` with the toolchain for ``dominant_language``.

        Infrastructure failures (missing tool, OS errors) come back as a
        failed result with one BuildSystemError rather than raising.
        """
        started = time.time()
        language = normalize_language(dominant_language)
        logger.info(
            "build_started",
            language=dominant_language,
            working_directory=working_directory,
        )

        try:
            if language == "csharp":
                result = await self._build_csharp(working_directory)
            elif language == "typescript":
                result = await self._build_typescript(working_directory)
            elif language == "python":
                result = await self._build_python(working_directory)
            elif language == "java":
                result = await self._build_java(working_directory)
            else:
                logger.warning("generic_build_for_unsupported_language", language=dominant_language)
                result = BuildExecutionResult(
                    success=True,
                    build_output=(
                        f"Generic build completed for {dominant_language}. "
                        "No specific build validation performed."
                    ),
                )
        except Exception as e:
            logger.error(
                "build_execution_failed",
                language=dominant_language,
                error_type=type(e).__name__,
                error=str(e),
            )
            return BuildExecutionResult.system_failure(e, started_at=started)

        result.started_at = started
        result.completed_at = time.time()
        result.duration_seconds = result.completed_at - started
        result.build_output = sanitize_output(result.build_output)
        logger.info(
            "build_completed",
            language=dominant_language,
            success=result.success,
            error_count=len(result.errors),
            duration_seconds=round(result.duration_seconds, 3),
        )
        return result

    async def validate_prerequisites(self, dominant_language: str) -> BuildValidationResult:
        """Check that the toolchain for a language is on PATH."""
        required = REQUIRED_TOOLS.get(normalize_language(dominant_language), ())
        result = BuildValidationResult(is_valid=True)
        for tool in required:
            location = shutil.which(tool)
            if location:
                result.available_tools.append(f"{tool}: {location}")
            else:
                result.missing_prerequisites.append(tool)
        if result.missing_prerequisites:
            result.is_valid = False
            result.error_message = (
                f"Missing required tools for {dominant_language}: "
                f"{', '.join(result.missing_prerequisites)}"
            )
        return result

    async def _build_csharp(self, working_directory: str) -> BuildExecutionResult:
        project_path = Path(working_directory) / "GeneratedProject.csproj"
        await asyncio.get_running_loop().run_in_executor(
            None, project_path.write_text, CSHARP_PROJECT_FILE
        )
        command = await self._run(["dotnet", "build", str(project_path)], working_directory)
        result = BuildExecutionResult(success=command.exit_code == 0, build_output=command.combined)
        if not result.success:
            result.error_message = "C# build failed"
            result.errors = self._errors_or_fallback(parse_csharp_errors(command.combined), command)
        else:
            result.generated_artifacts = self._collect_outputs(Path(working_directory) / "bin")
        return result

    async def _build_typescript(self, working_directory: str) -> BuildExecutionResult:
        root = Path(working_directory)
        await asyncio.get_running_loop().run_in_executor(None, self._write_typescript_config, root)

        install = await self._run(["npm", "install"], working_directory)
        if install.exit_code != 0:
            return BuildExecutionResult(
                success=False,
                error_message="npm install failed",
                build_output=install.combined,
                errors=[
                    BuildError(
                        error_type=BuildErrorType.DEPENDENCY_ERROR,
                        error_message="npm install failed",
                        details=install.stderr.strip() or None,
                        severity=8,
                    )
                ],
            )

        compile_ = await self._run(["npx", "tsc"], working_directory)
        result = BuildExecutionResult(
            success=compile_.exit_code == 0,
            build_output=f"{install.stdout}\n{compile_.combined}",
        )
        if not result.success:
            result.error_message = "TypeScript build failed"
            result.errors = self._errors_or_fallback(parse_typescript_errors(compile_.combined), compile_)
        else:
            result.generated_artifacts = self._collect_outputs(root / "dist")
        return result

    @staticmethod
    def _write_typescript_config(root: Path) -> None:
        (root / "package.json").write_text(json.dumps(PACKAGE_JSON, indent=2))
        (root / "tsconfig.json").write_text(json.dumps(TSCONFIG_JSON, indent=2))

    async def _build_python(self, working_directory: str) -> BuildExecutionResult:
        files = sorted(Path(working_directory).glob("*.py"))
        output_parts: list[str] = []
        errors: list[BuildError] = []
        for path in files:
            command = await self._run(
                [sys.executable, "-m", "py_compile", str(path)], working_directory
            )
            output_parts.append(command.combined)
            if command.exit_code != 0:
                errors.extend(
                    self._errors_or_fallback(parse_python_errors(command.combined, path.name), command)
                )
        success = not errors
        return BuildExecutionResult(
            success=success,
            error_message=None if success else "Python syntax check failed",
            build_output="\n".join(output_parts),
            errors=errors,
        )

    async def _build_java(self, working_directory: str) -> BuildExecutionResult:
        files = sorted(Path(working_directory).glob("*.java"))
        if not files:
            return BuildExecutionResult(
                success=False,
                error_message="No Java files found",
                errors=[
                    BuildError(
                        error_type=BuildErrorType.VALIDATION_ERROR,
                        error_message="No Java files found",
                        severity=ERROR_FALLBACK_SEVERITY,
                    )
                ],
            )

        command = await self._run(["javac", *(str(path) for path in files)], working_directory)
        result = BuildExecutionResult(success=command.exit_code == 0, build_output=command.combined)
        if not result.success:
            result.error_message = "Java compilation failed"
            result.errors = self._errors_or_fallback(parse_java_errors(command.combined), command)
        else:
            result.generated_artifacts = sorted(
                str(p) for p in Path(working_directory).glob("*.class")
            )
        return result

    async def _run(self, argv: list[str], working_directory: str) -> CommandResult:
        """Run one command, killing it after ``command_timeout`` seconds."""
        logger.debug("build_command_started", command=" ".join(argv)[:200])
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=working_directory,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.command_timeout
            )
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("build_command_timeout", command=argv[0], timeout=self.command_timeout)
            return CommandResult(
                stdout="",
                stderr=f"Command timed out after {self.command_timeout} seconds",
                exit_code=124,
                timed_out=True,
            )
        except asyncio.CancelledError:
            process.kill()
            raise

        return CommandResult(
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
            exit_code=process.returncode if process.returncode is not None else -1,
        )

    @staticmethod
    def _errors_or_fallback(errors: list[BuildError], command: CommandResult) -> list[BuildError]:
        """Guarantee at least one error for a failed command."""
        if errors:
            return errors
        if command.timed_out:
            return [
                BuildError(
                    error_type=BuildErrorType.BUILD_SYSTEM_ERROR,
                    error_message=command.stderr,
                    severity=10,
                )
            ]
        return [
            BuildError(
                error_type=BuildErrorType.COMPILE_ERROR,
                error_message=f"Build command exited with code {command.exit_code}",
                details=sanitize_output(command.combined.strip(), max_length=2000) or None,
                severity=ERROR_FALLBACK_SEVERITY,
            )
        ]

    @staticmethod
    def _collect_outputs(directory: Path) -> list[str]:
        if not directory.exists():
            return []
        return sorted(str(p) for p in directory.rglob("*") if p.is_file())

