"""Build subsystem: document aggregation, working areas and toolchain execution.

Key Components:
    - InMemoryDocumentAggregator: groups code documents into one file per code unit
    - BuildWorkspace: per-attempt working directory with path validation
    - LocalBuildExecutor: runs the language toolchain and parses its output
"""

from builds.aggregator import DocumentAggregator, InMemoryDocumentAggregator, aggregate_documents
from builds.executor import BuildExecutor, LocalBuildExecutor
from builds.types import (
    AggregatedFile,
    BuildAggregationResult,
    BuildError,
    BuildErrorType,
    BuildExecutionResult,
    BuildValidationResult,
    CodeDocument,
)
from builds.workspace import BuildWorkspace, PathValidationError, validate_path

__all__ = [
    # Types
    "AggregatedFile",
    "BuildAggregationResult",
    "BuildError",
    "BuildErrorType",
    "BuildExecutionResult",
    "BuildValidationResult",
    "CodeDocument",
    # Capabilities
    "BuildExecutor",
    "DocumentAggregator",
    "InMemoryDocumentAggregator",
    "LocalBuildExecutor",
    "aggregate_documents",
    # Working areas
    "BuildWorkspace",
    "PathValidationError",
    "validate_path",
]
