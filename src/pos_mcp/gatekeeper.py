# POS MCP Server
# File: gatekeeper.py
# Version: v1

"""Read-only query pipeline for the POS database.

Every statement goes through the same steps:

- classify the text (allow-list of statement prefixes, deny-list of write
  keywords) before any connection is touched,
- check out a connection from the injected pool,
- force the session into read-only transaction mode,
- cap the number of rows,
- run the statement and hand the connection back, on every exit path.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

import aiomysql

from .errors import ExecutionError, ValidationError
from .models import ClassifiedQuery, QueryResult, TableDescriptor

logger = logging.getLogger(__name__)

ALLOWED_PREFIXES = ("SELECT", "SHOW", "DESCRIBE")

# Matched as plain substrings of the upper-cased text, so identifiers such as
# ``created_at`` are rejected as well.
WRITE_KEYWORDS = ("INSERT", "UPDATE", "DELETE", "DROP", "CREATE", "ALTER", "TRUNCATE")

READ_ONLY_SESSION_SQL = "SET SESSION TRANSACTION READ ONLY"

DEFAULT_MAX_ROWS = 100


def classify(sql: str) -> ClassifiedQuery:
    """Decide whether ``sql`` is an acceptable read-only statement.

    Raises:
        ValidationError: the statement does not start with an allowed
            keyword, or contains a write keyword anywhere in its text.
    """
    if not isinstance(sql, str):
        raise ValidationError("read-only statements only: SQL text must be a string")

    normalized = sql.strip().upper()

    statement_type = next(
        (prefix for prefix in ALLOWED_PREFIXES if normalized.startswith(prefix)),
        None,
    )
    if statement_type is None:
        raise ValidationError(
            "read-only statements only: allowed statements are SELECT, SHOW and DESCRIBE"
        )

    found = [kw for kw in WRITE_KEYWORDS if kw in normalized]
    if found:
        raise ValidationError(f"write operation detected: {', '.join(found)}")

    return ClassifiedQuery(original=sql, normalized=normalized, statement_type=statement_type)


def quote_identifier(name: str) -> str:
    """Backtick-quote a table identifier.

    ``pos.sales`` becomes ```pos`.`sales```; embedded backticks are doubled.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("table name must be a non-empty string")

    parts = name.strip().split(".")
    return ".".join("`" + part.replace("`", "``") + "`" for part in parts)


class QueryGatekeeper:
    """Runs classified, row-capped, read-only statements against a pool.

    The pool is owned by the caller. It must expose the aiomysql pool
    interface used here: ``acquire()``, ``release(conn)``, ``close()``,
    ``wait_closed()`` and ``terminate()``.
    """

    def __init__(
        self,
        pool: Any,
        max_rows: int = DEFAULT_MAX_ROWS,
        acquire_timeout: Optional[float] = 30.0,
        query_timeout: Optional[float] = 30.0,
        max_pending: int = 0,
    ) -> None:
        if max_rows < 1:
            raise ValueError("max_rows must be at least 1")
        self._pool = pool
        self.max_rows = int(max_rows)
        self.acquire_timeout = acquire_timeout
        self.query_timeout = query_timeout
        self.max_pending = int(max_pending)
        self._pending = 0

    @property
    def pool(self) -> Any:
        return self._pool

    @property
    def pending(self) -> int:
        """Number of callers currently waiting for a connection."""
        return self._pending

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def execute_read_only_query(
        self, sql: str, params: Optional[Sequence[Any]] = None
    ) -> QueryResult:
        """Classify and run ``sql``, returning at most ``max_rows`` rows."""
        try:
            query = classify(sql)
        except ValidationError as exc:
            logger.warning("Rejected statement (%s): %r", exc.message, sql)
            raise

        statement = query.original
        if query.is_select:
            statement = f"{statement.rstrip().rstrip(';')} LIMIT {self.max_rows} "

        started = time.perf_counter()
        rows, truncated = await self._run(statement, list(params or []))
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        return QueryResult(
            rows=rows,
            row_count=len(rows),
            elapsed_ms=elapsed_ms,
            truncated=truncated,
        )

    async def get_table_schema(self, table_name: str) -> TableDescriptor:
        """Return the DESCRIBE rows for ``table_name``."""
        result = await self.execute_read_only_query(f"DESCRIBE {quote_identifier(table_name)}")
        return TableDescriptor(table_name=table_name, columns=result.rows)

    async def list_tables(self) -> List[str]:
        """Return table names in the order SHOW TABLES reports them."""
        result = await self.execute_read_only_query("SHOW TABLES")
        return [next(iter(row.values())) for row in result.rows if row]

    async def close(self, timeout: Optional[float] = None) -> None:
        """Close the pool, waiting up to ``timeout`` for checked-out connections."""
        logger.info("Closing connection pool")
        self._pool.close()
        try:
            await asyncio.wait_for(self._pool.wait_closed(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Connections still checked out after %ss; terminating them", timeout
            )
            self._pool.terminate()
            await self._pool.wait_closed()
        logger.info("Connection pool closed")

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    async def _checkout(self) -> Any:
        if self.max_pending and self._pending >= self.max_pending:
            raise ExecutionError(
                f"Connection pool queue is full ({self._pending} requests waiting)"
            )

        self._pending += 1
        try:
            return await asyncio.wait_for(self._pool.acquire(), timeout=self.acquire_timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionError(
                f"Timed out after {self.acquire_timeout}s waiting for a database connection"
            ) from exc
        except (aiomysql.MySQLError, OSError) as exc:
            logger.error("Could not obtain a database connection: %s", exc)
            raise ExecutionError(f"Query failed: {exc}") from exc
        finally:
            self._pending -= 1

    async def _run(self, statement: str, params: List[Any]) -> tuple[List[Dict[str, Any]], bool]:
        conn = await self._checkout()
        reusable = False
        try:
            rows, truncated = await asyncio.wait_for(
                self._execute(conn, statement, params), timeout=self.query_timeout
            )
            reusable = True
            return rows, truncated
        except asyncio.TimeoutError as exc:
            logger.error("Statement timed out after %ss: %s", self.query_timeout, statement)
            raise ExecutionError(f"Query timed out after {self.query_timeout}s") from exc
        except ExecutionError:
            # Parameter binding failed before anything was sent.
            reusable = True
            raise
        except (aiomysql.MySQLError, OSError) as exc:
            logger.error("Error executing statement: %s", exc)
            # The server answered with an error; the connection is still usable.
            reusable = isinstance(exc, aiomysql.MySQLError)
            raise ExecutionError(f"Query failed: {exc}") from exc
        finally:
            if not reusable:
                # Interrupted mid-statement: never hand a half-read connection back.
                conn.close()
            self._pool.release(conn)

    async def _execute(
        self, conn: Any, statement: str, params: List[Any]
    ) -> tuple[List[Dict[str, Any]], bool]:
        async with conn.cursor(aiomysql.DictCursor) as cur:
            await cur.execute(READ_ONLY_SESSION_SQL)
            logger.debug("Executing: %s params=%r", statement, params)
            # An empty list would still trigger %-formatting of the statement.
            try:
                await cur.execute(statement, params or None)
            except (TypeError, ValueError) as exc:
                # The driver binds params with %-formatting; a placeholder
                # mismatch or a literal % in the text fails here.
                logger.error("Could not bind parameters: %s", exc)
                raise ExecutionError(f"Query failed: {exc}") from exc
            rows = await cur.fetchmany(self.max_rows + 1)

        truncated = len(rows) > self.max_rows
        return [dict(row) for row in rows[: self.max_rows]], truncated
