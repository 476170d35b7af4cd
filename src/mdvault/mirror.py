"""Relational mirror collaborator interface.

The vault does not ship a relational engine. A mirror is any object that
can rebuild flat tables named ``{plugin_id}_{table_name}`` from the file
tree and answer SQL against them. The vault hands it plain rows and never
depends on how it stores them.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from mdvault.record import Record
from mdvault.schema import FieldType, Schema

# Columns every mirror table has, ahead of the schema-derived ones
FIXED_COLUMNS = ("id", "content", "created_at")


@dataclass(frozen=True)
class MirrorColumn:
    """One mirror column. ``type`` is None for the fixed columns."""

    name: str
    type: FieldType | None = None
    primary_key: bool = False
    references: str | None = None


@dataclass(frozen=True)
class MirrorTable:
    """Everything a mirror needs to rebuild one table."""

    name: str
    plugin_id: str
    table_name: str
    columns: tuple[MirrorColumn, ...]
    rows: tuple[dict[str, Any], ...] = field(default_factory=tuple)


@runtime_checkable
class RelationalMirror(Protocol):
    """Contract for the external relational mirror.

    sync() must be idempotent: once it returns, the mirror holds exactly
    the given rows for each given table. query() is only meaningful after
    at least one sync().
    """

    async def sync(self, tables: Sequence[MirrorTable]) -> None:
        pass

    async def query(self, sql: str) -> list[dict[str, Any]]:
        pass


def mirror_columns(schema: Schema) -> tuple[MirrorColumn, ...]:
    """Fixed columns followed by one column per schema field."""
    columns = [
        MirrorColumn("id", primary_key=True),
        MirrorColumn("content"),
        MirrorColumn("created_at"),
    ]
    for name, field_def in schema.items():
        if name in FIXED_COLUMNS:
            continue
        columns.append(MirrorColumn(name, type=field_def.type, references=field_def.references))
    return tuple(columns)


def mirror_row(record: Record) -> dict[str, Any]:
    """Flatten a record into a mirror row. A created_at field wins over the id time."""
    return {
        "id": record.id,
        "content": record.content,
        "created_at": record.fields.get("created_at") or record.created_at,
        **{k: v for k, v in record.fields.items() if k not in FIXED_COLUMNS},
    }


def render_create_table(table: MirrorTable) -> str:
    """
    Render the CREATE TABLE statement for a mirror table.

    Only the fixed columns are typed here; schema fields are listed in a
    placeholder comment because column typing belongs to the mirror.
    """
    schema_fields = [c.name for c in table.columns if c.name not in FIXED_COLUMNS]
    lines = [
        f"-- Table: {table.name}",
        f"-- Plugin: {table.plugin_id}, Table: {table.table_name}",
        f"CREATE TABLE IF NOT EXISTS {table.name} (",
        "  id TEXT PRIMARY KEY,",
        "  content TEXT,",
        "  created_at DATETIME DEFAULT CURRENT_TIMESTAMP",
    ]
    if schema_fields:
        lines.append(f"  -- schema fields: {', '.join(schema_fields)}")
    lines.append(");")
    return "\n".join(lines)
