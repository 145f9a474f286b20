"""Persistence for designer outputs."""

from storage.designer_outputs import (
    DesignerOutputStorage,
    DesignerOutputStorageResult,
    SQLiteDesignerOutputStore,
    parse_designer_output,
)

__all__ = [
    "DesignerOutputStorage",
    "DesignerOutputStorageResult",
    "SQLiteDesignerOutputStore",
    "parse_designer_output",
]
