"""
SQL dump assembly for database backups.

Quoting helpers plus `SqlDumpBuilder`, which collects schema fragments (or
explanatory stubs when introspection failed), per-table INSERT blocks and
function definitions, and renders them in restore order inside one
transaction.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Union

SESSION_SETTINGS = (
    "SET statement_timeout = 0;",
    "SET lock_timeout = 0;",
    "SET client_encoding = 'UTF8';",
    "SET standard_conforming_strings = on;",
)


def q_ident(name: str) -> str:
    """Quote an SQL identifier: wrap in double quotes, double embedded ones."""
    return '"' + str(name).replace('"', '""') + '"'


def q_lit(value: Any) -> str:
    """
    Render a Python value as an SQL literal.

    None -> NULL, bools -> TRUE/FALSE, numbers unquoted, everything else
    single-quoted with embedded quotes doubled (dicts/lists as compact JSON).
    """
    if value is None:
        return "NULL"
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (dict, list)):
        text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    else:
        text = str(value)
    return "'" + text.replace("'", "''") + "'"


def qualified_table(table: str, schema: str = "public") -> str:
    return f"{q_ident(schema)}.{q_ident(table)}"


def insert_statement(table: str, columns: Sequence[str], row: Mapping[str, Any], *, schema: str = "public") -> str:
    cols = ", ".join(q_ident(c) for c in columns)
    values = ", ".join(q_lit(row.get(c)) for c in columns)
    return f"INSERT INTO {qualified_table(table, schema)} ({cols}) VALUES ({values});"


def sql_comment(text: str) -> str:
    """Comment out arbitrary (possibly multi-line) text."""
    lines = str(text).splitlines() or [""]
    return "\n".join(f"-- {line}".rstrip() for line in lines)


@dataclass(frozen=True)
class SchemaFragment:
    table: str
    kind: str
    sql: str

    def render(self) -> str:
        return f"{sql_comment(f'{self.kind} for {self.table}')}\n{self.sql.rstrip()}\n"


@dataclass(frozen=True)
class SectionStub:
    """Placeholder emitted in place of a fragment that could not be fetched."""

    table: str
    kind: str
    reason: str
    failed: bool = True

    def render(self) -> str:
        return sql_comment(f"{self.kind} for {self.table} unavailable: {self.reason}") + "\n"


Section = Union[SchemaFragment, SectionStub]


@dataclass
class TableData:
    table: str
    statements: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def render(self) -> str:
        parts = [sql_comment(f"Data for table: {self.table} ({len(self.statements)} rows)")]
        parts.extend(self.statements)
        parts.extend(sql_comment(n) for n in self.notes)
        return "\n".join(parts) + "\n"


class SqlDumpBuilder:
    """Accumulates backup sections and renders the final SQL text."""

    def __init__(self, *, backup_type: str, created_at: str, source: str, tables: Iterable[str] = ()):
        self.backup_type = backup_type
        self.created_at = created_at
        self.source = source
        self.tables: List[str] = list(tables)
        self.schema: List[Section] = []
        self.data: List[TableData] = []
        self.functions: List[Section] = []
        self.notes: List[str] = []
        self.degraded = False

    def note(self, text: str, *, degraded: bool = False) -> None:
        self.notes.append(text)
        self.degraded = self.degraded or degraded

    def add_schema(self, section: Section) -> None:
        self.schema.append(section)
        if isinstance(section, SectionStub) and section.failed:
            self.degraded = True

    def add_table_data(self, data: TableData) -> None:
        self.data.append(data)

    def add_functions(self, section: Section) -> None:
        self.functions.append(section)
        if isinstance(section, SectionStub) and section.failed:
            self.degraded = True

    def stats(self) -> Dict[str, int]:
        return {
            "tables": len(self.tables),
            "rows": sum(len(d.statements) for d in self.data),
            "stubs": sum(1 for s in self.schema + self.functions if isinstance(s, SectionStub)),
        }

    def render(self) -> str:
        out: List[str] = [
            sql_comment("VidGro Database Backup"),
            sql_comment(f"Backup type: {self.backup_type}"),
            sql_comment(f"Created: {self.created_at}"),
            sql_comment(f"Source: {self.source}"),
            sql_comment(f"Tables: {', '.join(self.tables) if self.tables else '(none)'}"),
        ]
        out.extend(sql_comment(n) for n in self.notes)
        out.append("")
        out.extend(SESSION_SETTINGS)
        out.append("")
        out.append("BEGIN;")
        out.append("")

        out.append(sql_comment("==================== Schema ===================="))
        if not self.schema:
            out.append(sql_comment("No schema information available"))
        out.extend(s.render() for s in self.schema)

        out.append(sql_comment("==================== Data ===================="))
        if not self.data:
            out.append(sql_comment("No table data exported"))
        out.extend(d.render() for d in self.data)

        out.append(sql_comment("==================== Functions ===================="))
        if not self.functions:
            out.append(sql_comment("No function definitions exported"))
        out.extend(s.render() for s in self.functions)

        out.append("COMMIT;")
        return "\n".join(out) + "\n"


def truncation_notice(table: str, cap: int) -> str:
    return f"NOTICE: row limit of {cap} reached for {table}; remaining rows were not exported"
