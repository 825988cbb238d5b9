# POS MCP Server
# File: mock.py
# Version: v1

"""Small in-memory stand-in for the aiomysql connection pool.

Activated when POS_MOCK_MODE is truthy, and used by the test suite. It
implements the subset of the pool / connection / cursor interface that
QueryGatekeeper relies on, over a handful of static POS tables, so the tools
work without a real MySQL server.

Supported statements: ``SET SESSION ...``, ``SHOW TABLES``,
``DESCRIBE <table>`` and ``SELECT * | <columns> FROM <table> [LIMIT n]``.
Anything else raises ``ProgrammingError`` like a real server would.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from aiomysql import OperationalError, ProgrammingError


@dataclass
class MockTable:
    columns: List[Dict[str, Any]]
    rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [c["Field"] for c in self.columns]


def column(name: str, type_: str, null: str = "NO", key: str = "", extra: str = "") -> Dict[str, Any]:
    return {"Field": name, "Type": type_, "Null": null, "Key": key, "Default": None, "Extra": extra}


def default_tables() -> Dict[str, MockTable]:
    """Static demo data for mock mode."""
    return {
        "customers": MockTable(
            columns=[
                column("id", "int", key="PRI", extra="auto_increment"),
                column("name", "varchar(120)"),
                column("email", "varchar(255)", null="YES"),
            ],
            rows=[
                {"id": 1, "name": "Ana Torres", "email": "ana@example.com"},
                {"id": 2, "name": "Luis Pérez", "email": None},
                {"id": 3, "name": "Marta Gómez", "email": "marta@example.com"},
            ],
        ),
        "products": MockTable(
            columns=[
                column("id", "int", key="PRI", extra="auto_increment"),
                column("sku", "varchar(32)", key="UNI"),
                column("name", "varchar(120)"),
                column("price", "decimal(10,2)"),
                column("stock", "int"),
            ],
            rows=[
                {"id": 1, "sku": "CAF-001", "name": "Café molido 500g", "price": "7.50", "stock": 40},
                {"id": 2, "sku": "LEC-002", "name": "Leche entera 1L", "price": "1.20", "stock": 120},
                {"id": 3, "sku": "PAN-003", "name": "Pan integral", "price": "2.35", "stock": 25},
            ],
        ),
        "sales": MockTable(
            columns=[
                column("id", "int", key="PRI", extra="auto_increment"),
                column("customer_id", "int", null="YES", key="MUL"),
                column("total", "decimal(10,2)"),
                column("sold_at", "datetime"),
            ],
            rows=[
                {"id": 1, "customer_id": 1, "total": "15.00", "sold_at": "2024-05-02 10:15:00"},
                {"id": 2, "customer_id": None, "total": "3.55", "sold_at": "2024-05-02 11:40:00"},
            ],
        ),
        "sale_items": MockTable(
            columns=[
                column("sale_id", "int", key="PRI"),
                column("product_id", "int", key="PRI"),
                column("quantity", "int"),
                column("unit_price", "decimal(10,2)"),
            ],
            rows=[
                {"sale_id": 1, "product_id": 1, "quantity": 2, "unit_price": "7.50"},
                {"sale_id": 2, "product_id": 2, "quantity": 1, "unit_price": "1.20"},
                {"sale_id": 2, "product_id": 3, "quantity": 1, "unit_price": "2.35"},
            ],
        ),
    }


_SHOW_TABLES = re.compile(r"^\s*SHOW\s+TABLES\s*;?\s*$", re.IGNORECASE)
_DESCRIBE = re.compile(r"^\s*DESCRIBE\s+`?([^`\s]+)`?\s*;?\s*$", re.IGNORECASE)
_SELECT = re.compile(
    r"^\s*SELECT\s+(?P<cols>.+?)\s+FROM\s+`?(?P<table>\w+)`?"
    r"(?P<limits>(?:\s+LIMIT\s+\d+)*)\s*;?\s*$",
    re.IGNORECASE | re.DOTALL,
)


def _literal(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("\\", "\\\\").replace("'", "\\'") + "'"


class MockCursor:
    def __init__(self, connection: "MockConnection") -> None:
        self._connection = connection
        self._rows: List[Dict[str, Any]] = []

    async def __aenter__(self) -> "MockCursor":
        return self

    async def __aexit__(self, *exc: object) -> None:
        self._rows = []

    async def execute(self, query: str, args: Optional[Any] = None) -> int:
        pool = self._connection.pool
        pool.executed.append((query, args))

        if args is not None:
            # Same %-formatting the driver applies before sending the statement.
            query = query % tuple(_literal(v) for v in args)

        if pool.delay:
            await asyncio.sleep(pool.delay)

        for fragment, error in pool.failures.items():
            if fragment in query:
                raise error

        self._rows = self._dispatch(query, pool.tables)
        return len(self._rows)

    async def fetchall(self) -> List[Dict[str, Any]]:
        rows, self._rows = self._rows, []
        return rows

    async def fetchmany(self, size: Optional[int] = None) -> List[Dict[str, Any]]:
        size = len(self._rows) if size is None else size
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    @staticmethod
    def _dispatch(query: str, tables: Dict[str, MockTable]) -> List[Dict[str, Any]]:
        if query.strip().upper().startswith("SET "):
            return []

        if _SHOW_TABLES.match(query):
            return [{"Tables_in_pos": name} for name in tables]

        m = _DESCRIBE.match(query)
        if m:
            table = tables.get(m.group(1))
            if table is None:
                raise ProgrammingError(1146, f"Table 'pos.{m.group(1)}' doesn't exist")
            return [dict(c) for c in table.columns]

        m = _SELECT.match(query)
        if not m:
            raise ProgrammingError(
                1064, "You have an error in your SQL syntax (mock mode supports simple SELECTs only)"
            )

        table = tables.get(m.group("table"))
        if table is None:
            raise ProgrammingError(1146, f"Table 'pos.{m.group('table')}' doesn't exist")

        limits = re.findall(r"\d+", m.group("limits") or "")
        if len(limits) > 1:
            raise ProgrammingError(1064, "You have an error in your SQL syntax near 'LIMIT'")

        cols = [c.strip().strip("`") for c in m.group("cols").split(",")]
        if cols == ["*"]:
            cols = table.column_names
        unknown = [c for c in cols if c not in table.column_names]
        if unknown:
            raise OperationalError(1054, f"Unknown column '{unknown[0]}' in 'field list'")

        rows = [{c: row.get(c) for c in cols} for row in table.rows]
        if limits:
            rows = rows[: int(limits[0])]
        return rows


class MockConnection:
    def __init__(self, pool: "MockPool") -> None:
        self.pool = pool
        self.closed = False

    def cursor(self, *cursor_classes: Any) -> MockCursor:
        return MockCursor(self)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.pool.closed_connections += 1


class MockPool:
    """Bounded pool of mock connections with usage statistics."""

    def __init__(
        self,
        maxsize: int = 10,
        tables: Optional[Dict[str, MockTable]] = None,
        delay: float = 0.0,
    ) -> None:
        self.maxsize = maxsize
        self.tables = default_tables() if tables is None else tables
        self.delay = delay

        # Statement fragment -> exception raised when a query contains it.
        self.failures: Dict[str, Exception] = {}
        self.executed: List[tuple] = []

        self.acquired = 0
        self.released = 0
        self.peak_in_use = 0
        self.closed_connections = 0
        self._used: List[MockConnection] = []
        self._terminated: List[MockConnection] = []
        self._slots = asyncio.Semaphore(maxsize)
        self._closing = False
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def in_use(self) -> int:
        return len(self._used)

    @property
    def freesize(self) -> int:
        return self.maxsize - self.in_use

    async def acquire(self) -> MockConnection:
        if self._closing:
            raise OperationalError(2013, "Pool is closed")
        await self._slots.acquire()
        conn = MockConnection(self)
        self._used.append(conn)
        self._drained.clear()
        self.acquired += 1
        self.peak_in_use = max(self.peak_in_use, self.in_use)
        return conn

    def release(self, conn: MockConnection) -> None:
        if conn in self._terminated:
            self._terminated.remove(conn)
            return
        if conn not in self._used:
            raise AssertionError("connection released twice or never acquired")
        self._used.remove(conn)
        self.released += 1
        self._slots.release()
        if not self._used:
            self._drained.set()

    def close(self) -> None:
        self._closing = True

    def terminate(self) -> None:
        self._closing = True
        for conn in list(self._used):
            conn.close()
        self._terminated.extend(self._used)
        self._used.clear()
        self._drained.set()

    async def wait_closed(self) -> None:
        await self._drained.wait()

    @property
    def closed(self) -> bool:
        return self._closing and not self._used
