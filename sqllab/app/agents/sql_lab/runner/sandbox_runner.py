import os
import re
import logging
from typing import Optional

from sqlalchemy import exc
from sqlalchemy.engine import Connection, CursorResult, Engine

from ..errors import ExecutionFault, InvalidWorkspaceError, UpstreamUnavailable
from ..models import ColumnInfo, ExecutionResult

logger = logging.getLogger(__name__)

# SET LOCAL 只在目前交易內有效，連線歸還 (rollback) 後即失效，不會污染連線池
# 加上雙引號，"2024_cohort" 或 "select" 這類名稱也能正確指定
SEARCH_PATH_STATEMENT = 'SET LOCAL search_path TO "{schema}"'
STATEMENT_TIMEOUT_STATEMENT = "SET LOCAL statement_timeout = {timeout_ms}"

# 0 / unset = disabled
STATEMENT_TIMEOUT_MS = int(os.getenv("SQL_LAB_STATEMENT_TIMEOUT_MS", "0"))
MAX_ROWS = int(os.getenv("SQL_LAB_MAX_ROWS", "0")) or None


def sanitize_schema_name(schema_name: Optional[str]) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "", schema_name or "")


def engine_message(error: Exception) -> str:
    """First line of the driver's message, e.g. 'relation "x" does not exist'."""
    orig = getattr(error, "orig", None)
    raw = str(orig) if orig is not None else str(error)
    lines = [line for line in raw.strip().splitlines() if line.strip()]
    return lines[0] if lines else "Query execution error"


class WorkspaceSandbox:
    """
    Runs a single already-admitted statement on a pooled connection whose
    search_path is scoped to the learner's workspace schema.
    """

    def __init__(
        self,
        engine: Engine,
        namespace_statement: str = SEARCH_PATH_STATEMENT,
        statement_timeout_ms: int = 0,
        max_rows: Optional[int] = None,
    ):
        self.engine = engine
        self.namespace_statement = namespace_statement
        self.statement_timeout_ms = statement_timeout_ms
        self.max_rows = max_rows

    def execute(self, sql: str, workspace_id: str) -> ExecutionResult:
        schema = sanitize_schema_name(workspace_id)
        if not schema:
            raise InvalidWorkspaceError(workspace_id)

        try:
            conn = self.engine.connect()
        except exc.TimeoutError as e:
            logger.error(f"Connection pool exhausted for workspace {schema}: {e}")
            raise UpstreamUnavailable(
                "All database connections are busy. Please try again in a moment."
            ) from e
        except exc.DBAPIError as e:
            logger.error(f"Database unreachable: {e}")
            raise UpstreamUnavailable("Database is currently unreachable.") from e

        # 連線在任何路徑都會歸還 (成功 / SQL 錯誤 / 其他例外)，交易不 commit
        with conn:
            # 學生的 SQL 原樣交給 driver，'%' 不可被當成參數佔位符
            conn.execution_options(no_parameters=True)
            try:
                self._scope_connection(conn, schema)
                result = conn.exec_driver_sql(sql)
                return self._collect(result)
            except exc.DBAPIError as e:
                message = engine_message(e)
                logger.warning(f"Query execution error in workspace {schema}: {message}")
                raise ExecutionFault(message) from e
            except Exception as e:
                # driver / 型別轉換錯誤也一律回報為執行錯誤
                message = engine_message(e)
                logger.exception(f"Unexpected execution failure in workspace {schema}: {message}")
                raise ExecutionFault(message) from e

    def _scope_connection(self, conn: Connection, schema: str):
        conn.exec_driver_sql(self.namespace_statement.format(schema=schema))
        if self.statement_timeout_ms > 0 and conn.dialect.name == "postgresql":
            conn.exec_driver_sql(
                STATEMENT_TIMEOUT_STATEMENT.format(timeout_ms=int(self.statement_timeout_ms))
            )

    def _collect(self, result: CursorResult) -> ExecutionResult:
        if not result.returns_rows:
            return ExecutionResult(columns=[], rows=[], row_count=max(result.rowcount, 0))

        description = result.cursor.description or []
        columns = [ColumnInfo(name=d[0], data_type=d[1]) for d in description]
        names = list(result.keys())

        fetched = result.fetchmany(self.max_rows) if self.max_rows else result.fetchall()
        # zip by position: duplicate column names (a.id, b.id) keep the last value
        rows = [dict(zip(names, row)) for row in fetched]

        return ExecutionResult(columns=columns, rows=rows, row_count=len(rows))
