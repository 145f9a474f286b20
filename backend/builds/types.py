"""Data types for document aggregation and build execution.

Lifetimes: one BuildAggregationResult and one BuildExecutionResult exist per
build attempt and are owned by the agent running that attempt. BuildError
instances are frozen; each maps to exactly one outbound error message.
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum

MIN_SEVERITY = 1
MAX_SEVERITY = 10


class BuildErrorType(StrEnum):
    """Taxonomy of build errors."""

    COMPILE_ERROR = "CompileError"
    SYNTAX_ERROR = "SyntaxError"
    DEPENDENCY_ERROR = "DependencyError"
    RUNTIME_ERROR = "RuntimeError"
    TEST_FAILURE = "TestFailure"
    VALIDATION_ERROR = "ValidationError"
    BUILD_SYSTEM_ERROR = "BuildSystemError"


@dataclass(frozen=True)
class CodeDocument:
    """A granular generated code document, usually one or a few functions.

    Attributes:
        document_id: Unique identifier of the document.
        project_id: Owning project.
        code_unit_name: Logical code unit (class/module) the functions belong to.
        language: Source language, e.g. "CSharp".
        content: Source text.
        function_names: Functions implemented in this document.
    """

    document_id: str
    project_id: str
    code_unit_name: str
    language: str
    content: str
    function_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class AggregatedFile:
    """A buildable file assembled from one code unit's documents."""

    file_name: str
    language: str
    content: str
    code_unit_name: str
    function_count: int
    total_size: int


@dataclass
class BuildAggregationResult:
    """Outcome of grouping code documents into buildable files.

    Attributes:
        success: False when the document set could not be aggregated.
        message: Human-readable summary or failure reason.
        total_documents: Source documents consumed.
        total_code_units: Distinct code units found.
        languages: Languages present, in order of first appearance.
        aggregated_files: Files to materialize, in code-unit order.
    """

    success: bool
    message: str = ""
    total_documents: int = 0
    total_code_units: int = 0
    languages: list[str] = field(default_factory=list)
    aggregated_files: list[AggregatedFile] = field(default_factory=list)

    @property
    def dominant_language(self) -> str | None:
        """First language encountered, used to pick the build toolchain."""
        return self.languages[0] if self.languages else None


@dataclass(frozen=True)
class BuildError:
    """One build defect, detailed enough to spawn a targeted fix.

    Attributes:
        error_type: Taxonomy value.
        error_message: Compiler or system message.
        severity: 1-10 scale, 10 being critical.
        related_functions: Function identifiers implicated by the error.
    """

    error_type: BuildErrorType
    error_message: str
    details: str | None = None
    stack_trace: str | None = None
    file_name: str | None = None
    function_name: str | None = None
    function_signature: str | None = None
    line_number: int | None = None
    code_unit_name: str | None = None
    severity: int = 5
    suggested_fix: str | None = None
    related_functions: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Executors may report anything; messages only accept 1-10.
        clamped = min(max(int(self.severity), MIN_SEVERITY), MAX_SEVERITY)
        if clamped != self.severity:
            object.__setattr__(self, "severity", clamped)


@dataclass
class BuildExecutionResult:
    """Outcome of one build attempt."""

    success: bool
    build_output: str = ""
    error_message: str | None = None
    errors: list[BuildError] = field(default_factory=list)
    generated_artifacts: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
    started_at: float = field(default_factory=time.time)
    completed_at: float | None = None

    @classmethod
    def system_failure(cls, error: BaseException, started_at: float | None = None) -> "BuildExecutionResult":
        """Normalize an infrastructure exception into a one-error build result.

        Infrastructure failures and compile failures then share one shape
        downstream.
        """
        now = time.time()
        started = started_at if started_at is not None else now
        return cls(
            success=False,
            build_output=repr(error),
            error_message=str(error),
            errors=[
                BuildError(
                    error_type=BuildErrorType.BUILD_SYSTEM_ERROR,
                    error_message=str(error) or type(error).__name__,
                    details=type(error).__name__,
                    severity=10,
                )
            ],
            duration_seconds=now - started,
            started_at=started,
            completed_at=now,
        )


@dataclass
class BuildValidationResult:
    """Whether the toolchain for a language is available."""

    is_valid: bool
    error_message: str | None = None
    missing_prerequisites: list[str] = field(default_factory=list)
    available_tools: list[str] = field(default_factory=list)
