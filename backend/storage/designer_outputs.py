"""SQLite persistence for designer agent outputs using aiosqlite.

Designer agents (system, UI and API designers) persist their markdown output
after a successful run. The output is parsed for code units and function
specifications, which the swarm stage later fans out over.

Tables:
    designer_outputs: One row per stored designer run.
    code_units: Code units (classes/modules) named in a designer output.
    function_specifications: Functions declared under a code unit.

Usage:
    >>> store = SQLiteDesignerOutputStore("./data/designer_outputs.db")
    >>> await store.init()
    >>> result = await store.store_designer_output(context, agent_result, "Designer", "System Designer")
    >>> result.function_specifications_stored
    3
"""

import re
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import aiosqlite
import structlog

from agents.types import AgentExecutionContext, AgentExecutionResult
from config import settings

logger = structlog.get_logger(__name__)

# "## Code Unit: UserService", "### Class UserService", "#### Module: billing"
_CODE_UNIT_PATTERN = re.compile(
    r"^#{2,4}\s+(?:Code Unit|Class|Module|Service|Interface)(?:\s*:\s*|\s+)`?([A-Za-z_][\w.]*)`?\s*$",
    re.IGNORECASE,
)
# "- `GetUser(id: int) -> User`: loads a user", "* CreateUser(request)"
_FUNCTION_PATTERN = re.compile(
    r"^\s*[-*]\s+`?([A-Za-z_]\w*)\s*\(([^)]*)\)\s*(?:->\s*([^`:]+?))?`?\s*(?::\s*(.*))?$"
)


@dataclass
class ParsedFunctionSpecification:
    """A function declared in a designer output."""

    function_name: str
    code_unit: str
    signature: str
    description: str = ""
    return_type: str | None = None


@dataclass
class ParsedDesignerOutput:
    """Code units and functions extracted from designer markdown."""

    code_units: list[str] = field(default_factory=list)
    functions: list[ParsedFunctionSpecification] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class DesignerOutputStorageResult:
    """Outcome of persisting one designer output.

    Attributes:
        success: Whether the output was stored.
        error_message: Failure reason when ``success`` is False.
        cross_reference_id: Id linking the stored rows across tables.
        designer_output_id: Primary key of the designer_outputs row.
        function_specifications_stored: Functions persisted.
        code_units_stored: Code units persisted.
        warnings: Non-fatal parsing notes.
    """

    success: bool
    error_message: str | None = None
    cross_reference_id: str | None = None
    designer_output_id: str | None = None
    function_specifications_stored: int = 0
    code_units_stored: int = 0
    warnings: list[str] = field(default_factory=list)


@runtime_checkable
class DesignerOutputStorage(Protocol):
    """Capability: persist a designer agent's output."""

    async def store_designer_output(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        agent_type: str,
        agent_name: str,
    ) -> DesignerOutputStorageResult: ...


def parse_designer_output(output: str) -> ParsedDesignerOutput:
    """Extract code units and function specifications from designer markdown.

    Functions are attributed to the most recent code unit heading. Functions
    listed before any code unit heading are skipped with a warning.
    """
    parsed = ParsedDesignerOutput()
    current_unit: str | None = None

    for line in output.splitlines():
        unit_match = _CODE_UNIT_PATTERN.match(line.strip())
        if unit_match:
            current_unit = unit_match.group(1)
            if current_unit not in parsed.code_units:
                parsed.code_units.append(current_unit)
            continue

        function_match = _FUNCTION_PATTERN.match(line)
        if not function_match:
            continue
        name, params, return_type, description = function_match.groups()
        if current_unit is None:
            parsed.warnings.append(f"Function {name} is not under a code unit heading")
            continue
        parsed.functions.append(
            ParsedFunctionSpecification(
                function_name=name,
                code_unit=current_unit,
                signature=f"{name}({params.strip()})",
                description=(description or "").strip(),
                return_type=return_type.strip() if return_type else None,
            )
        )

    return parsed


class SQLiteDesignerOutputStore:
    """Async SQLite store for designer outputs.

    Database errors while storing are logged and reported through the
    returned DesignerOutputStorageResult; they are not raised.

    Attributes:
        db_path: Path to the SQLite database file; defaults to
            ``settings.designer_store_path``.
    """

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or settings.designer_store_path

    async def init(self) -> None:
        """Create database tables if they do not exist."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS designer_outputs (
                        id TEXT PRIMARY KEY,
                        cross_reference_id TEXT NOT NULL,
                        project_id TEXT NOT NULL,
                        pipeline_execution_id TEXT NOT NULL,
                        execution_id TEXT NOT NULL,
                        agent_type TEXT NOT NULL,
                        agent_name TEXT NOT NULL,
                        content TEXT NOT NULL,
                        quality_score INTEGER NOT NULL DEFAULT 0,
                        created_at REAL NOT NULL
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS code_units (
                        id TEXT PRIMARY KEY,
                        designer_output_id TEXT NOT NULL,
                        project_id TEXT NOT NULL,
                        name TEXT NOT NULL,
                        FOREIGN KEY (designer_output_id) REFERENCES designer_outputs(id)
                    )
                """)
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS function_specifications (
                        id TEXT PRIMARY KEY,
                        code_unit_id TEXT NOT NULL,
                        project_id TEXT NOT NULL,
                        function_name TEXT NOT NULL,
                        signature TEXT NOT NULL,
                        return_type TEXT,
                        description TEXT,
                        FOREIGN KEY (code_unit_id) REFERENCES code_units(id)
                    )
                """)
                await db.execute("""
                    CREATE INDEX IF NOT EXISTS idx_designer_outputs_project
                    ON designer_outputs(project_id, created_at)
                """)
                await db.commit()
            logger.info("designer_output_store_initialized", db_path=self.db_path)
        except Exception as e:
            logger.error(
                "designer_output_store_init_failed",
                db_path=self.db_path,
                error=str(e),
            )
            raise

    async def store_designer_output(
        self,
        context: AgentExecutionContext,
        result: AgentExecutionResult,
        agent_type: str,
        agent_name: str,
    ) -> DesignerOutputStorageResult:
        """Persist a designer output with its parsed code units and functions.

        Args:
            context: Context the designer ran with.
            result: The designer's (successful) result.
            agent_type: Registered type of the designer.
            agent_name: Display name of the designer.

        Returns:
            A DesignerOutputStorageResult; ``success`` is False on database
            errors.
        """
        parsed = parse_designer_output(result.output)
        designer_output_id = uuid.uuid4().hex
        cross_reference_id = uuid.uuid4().hex

        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO designer_outputs
                        (id, cross_reference_id, project_id, pipeline_execution_id,
                         execution_id, agent_type, agent_name, content, quality_score,
                         created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        designer_output_id,
                        cross_reference_id,
                        context.project_id,
                        context.pipeline_execution_id,
                        context.execution_id,
                        agent_type,
                        agent_name,
                        result.output,
                        result.quality_score,
                        time.time(),
                    ),
                )

                unit_ids: dict[str, str] = {}
                for unit_name in parsed.code_units:
                    unit_id = uuid.uuid4().hex
                    unit_ids[unit_name] = unit_id
                    await db.execute(
                        """
                        INSERT INTO code_units (id, designer_output_id, project_id, name)
                        VALUES (?, ?, ?, ?)
                        """,
                        (unit_id, designer_output_id, context.project_id, unit_name),
                    )

                for spec in parsed.functions:
                    await db.execute(
                        """
                        INSERT INTO function_specifications
                            (id, code_unit_id, project_id, function_name, signature,
                             return_type, description)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            uuid.uuid4().hex,
                            unit_ids[spec.code_unit],
                            context.project_id,
                            spec.function_name,
                            spec.signature,
                            spec.return_type,
                            spec.description,
                        ),
                    )
                await db.commit()
        except Exception as e:
            logger.error(
                "designer_output_store_failed",
                project_id=context.project_id,
                agent_type=agent_type,
                error=str(e),
            )
            return DesignerOutputStorageResult(success=False, error_message=str(e))

        logger.info(
            "designer_output_stored",
            project_id=context.project_id,
            agent_type=agent_type,
            code_units=len(parsed.code_units),
            function_specifications=len(parsed.functions),
        )
        return DesignerOutputStorageResult(
            success=True,
            cross_reference_id=cross_reference_id,
            designer_output_id=designer_output_id,
            function_specifications_stored=len(parsed.functions),
            code_units_stored=len(parsed.code_units),
            warnings=parsed.warnings,
        )

    async def list_outputs(self, project_id: str) -> list[dict[str, Any]]:
        """List stored designer outputs for a project, oldest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT id, cross_reference_id, agent_type, agent_name, quality_score, created_at
                FROM designer_outputs
                WHERE project_id = ?
                ORDER BY created_at
                """,
                (project_id,),
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    async def list_function_specifications(self, project_id: str) -> list[dict[str, Any]]:
        """List stored function specifications with their code unit name."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT f.id, f.function_name, f.signature, f.return_type,
                       f.description, c.name AS code_unit, c.id AS code_unit_id
                FROM function_specifications f
                JOIN code_units c ON c.id = f.code_unit_id
                WHERE f.project_id = ?
                ORDER BY c.name, f.function_name
                """,
                (project_id,),
            )
            rows = await cursor.fetchall()
        return [dict(row) for row in rows]
