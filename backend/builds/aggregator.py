"""Aggregation of granular code documents into buildable files.

Swarm agents emit one small document per function (or handful of functions).
Before a build can run, documents are grouped by code unit and concatenated
into one file per unit.
"""

import asyncio
from collections import defaultdict
from typing import Protocol, runtime_checkable

import structlog

from builds.types import AggregatedFile, BuildAggregationResult, CodeDocument

logger = structlog.get_logger(__name__)

# Language -> file extension for aggregated files.
LANGUAGE_EXTENSIONS: dict[str, str] = {
    "csharp": ".cs",
    "c#": ".cs",
    "typescript": ".ts",
    "javascript": ".js",
    "python": ".py",
    "java": ".java",
    "go": ".go",
}

# Line comment prefix per extension, used for the per-document separator.
_COMMENT_PREFIX: dict[str, str] = {".py": "#"}


@runtime_checkable
class DocumentAggregator(Protocol):
    """Groups a project's code documents into buildable files."""

    async def aggregate_for_build(self, project_id: str) -> BuildAggregationResult: ...


def file_name_for(code_unit_name: str, language: str) -> str:
    """Return the aggregated file name for a code unit.

    Examples:
        >>> file_name_for("UserService", "CSharp")
        'UserService.cs'
        >>> file_name_for("handlers", "Python")
        'handlers.py'
    """
    extension = LANGUAGE_EXTENSIONS.get(language.lower(), ".txt")
    return f"{code_unit_name}{extension}"


def aggregate_documents(documents: list[CodeDocument]) -> BuildAggregationResult:
    """Group documents by code unit, preserving first-seen order.

    A code unit's language is the language of its first document.

    Args:
        documents: Documents for one project.

    Returns:
        A successful BuildAggregationResult, or a failed one when there are
        no documents to build.
    """
    if not documents:
        return BuildAggregationResult(success=False, message="No code documents found for build")

    by_unit: dict[str, list[CodeDocument]] = defaultdict(list)
    languages: list[str] = []
    for document in documents:
        by_unit[document.code_unit_name].append(document)
        if document.language not in languages:
            languages.append(document.language)

    files: list[AggregatedFile] = []
    for unit_name, unit_documents in by_unit.items():
        language = unit_documents[0].language
        file_name = file_name_for(unit_name, language)
        comment = _COMMENT_PREFIX.get(file_name[file_name.rfind("."):], "//")
        sections = [
            f"{comment} document: {doc.document_id}\n{doc.content.rstrip()}\n"
            for doc in unit_documents
        ]
        content = "\n".join(sections)
        function_count = sum(len(doc.function_names) for doc in unit_documents)
        files.append(
            AggregatedFile(
                file_name=file_name,
                language=language,
                content=content,
                code_unit_name=unit_name,
                function_count=function_count,
                total_size=len(content),
            )
        )

    return BuildAggregationResult(
        success=True,
        message=f"Aggregated {len(documents)} documents into {len(files)} files",
        total_documents=len(documents),
        total_code_units=len(by_unit),
        languages=languages,
        aggregated_files=files,
    )


class InMemoryDocumentAggregator:
    """Document aggregator over an in-process document store.

    Usage:
        >>> aggregator = InMemoryDocumentAggregator()
        >>> await aggregator.add_document(doc)
        >>> result = await aggregator.aggregate_for_build(doc.project_id)
    """

    def __init__(self) -> None:
        self._documents: dict[str, list[CodeDocument]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def add_document(self, document: CodeDocument) -> None:
        """Store a document; a document id already present is replaced."""
        async with self._lock:
            documents = self._documents[document.project_id]
            for index, existing in enumerate(documents):
                if existing.document_id == document.document_id:
                    documents[index] = document
                    break
            else:
                documents.append(document)

    async def get_documents(self, project_id: str) -> list[CodeDocument]:
        async with self._lock:
            return list(self._documents.get(project_id, []))

    async def aggregate_for_build(self, project_id: str) -> BuildAggregationResult:
        documents = await self.get_documents(project_id)
        result = aggregate_documents(documents)
        if not result.success:
            result.message = f"No code documents found for project {project_id}"
        logger.info(
            "documents_aggregated",
            project_id=project_id,
            success=result.success,
            documents=result.total_documents,
            files=len(result.aggregated_files),
        )
        return result
