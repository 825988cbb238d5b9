# POS MCP Server
# File: models.py
# Version: v1

"""Domain models used by the POS MCP server."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class QueryRequest:
    """A caller-supplied SQL statement plus its ordered bind values."""

    sql: str
    params: List[Any] = field(default_factory=list)


@dataclass
class ClassifiedQuery:
    """Outcome of read-only classification for one statement.

    ``normalized`` is only ever used for the allow/deny decision; the
    statement sent to the database is built from ``original``.
    """

    original: str
    normalized: str
    statement_type: str

    @property
    def is_select(self) -> bool:
        return self.statement_type == "SELECT"


@dataclass
class QueryResult:
    """Rows returned by a read-only statement."""

    rows: List[Dict[str, Any]]
    row_count: int
    elapsed_ms: int = 0

    # True when the row cap cut the result short.
    truncated: bool = False


@dataclass
class TableDescriptor:
    """Column layout of a single table, as reported by DESCRIBE."""

    table_name: str
    columns: List[Dict[str, Any]]

    @property
    def column_count(self) -> int:
        return len(self.columns)


@dataclass
class ToolInvocation:
    """An agent request naming a tool and its arguments."""

    name: str
    arguments: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolResponse:
    """Uniform outbound envelope: exactly one outcome per call."""

    content: List[Dict[str, Any]]
    is_error: bool = False

    @classmethod
    def success(cls, text: str) -> "ToolResponse":
        return cls(content=[{"type": "text", "text": text}], is_error=False)

    @classmethod
    def error(cls, message: str) -> "ToolResponse":
        return cls(content=[{"type": "text", "text": message}], is_error=True)

    @property
    def text(self) -> Optional[str]:
        if not self.content:
            return None
        return self.content[0].get("text")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"content": [dict(block) for block in self.content]}
        if self.is_error:
            out["isError"] = True
        return out
