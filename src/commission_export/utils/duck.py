from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import duckdb
import polars as pl

from commission_export.errors import DatabaseConnectionError, QueryError

_IDENTIFIER_CLEAN_RE = re.compile(r"[^A-Za-z0-9_]")


def open_db(db_path_or_none: Optional[Path]) -> duckdb.DuckDBPyConnection:
    try:
        if db_path_or_none is None:
            return duckdb.connect(database=":memory:")
        Path(db_path_or_none).parent.mkdir(parents=True, exist_ok=True)
        return duckdb.connect(database=str(db_path_or_none))
    except (duckdb.Error, OSError) as exc:
        raise DatabaseConnectionError(
            f"Unable to connect to the database {db_path_or_none}: {exc}"
        ) from exc


def execute(
    conn: duckdb.DuckDBPyConnection,
    sql: str,
    params: Optional[Iterable] = None,
    *,
    what: str = "query",
) -> None:
    try:
        conn.execute(sql, list(params) if params is not None else None)
    except duckdb.Error as exc:
        raise QueryError(f"Error in {what}: {exc}") from exc


def fetch_rows(
    conn: duckdb.DuckDBPyConnection,
    sql: str,
    params: Optional[Iterable] = None,
) -> List[Tuple[Any, ...]]:
    _guard_sql(sql)
    try:
        return conn.execute(sql, list(params) if params is not None else None).fetchall()
    except duckdb.Error as exc:
        raise QueryError(f"Error in query: {exc}") from exc


def safe_query(
    conn: duckdb.DuckDBPyConnection,
    sql: str,
    params: Optional[Iterable] = None,
) -> pl.DataFrame:
    _guard_sql(sql)
    try:
        result = conn.execute(sql, list(params) if params is not None else None)
        records = result.fetchall()
    except duckdb.Error as exc:
        raise QueryError(f"Error in query: {exc}") from exc
    columns = [desc[0] for desc in result.description] if result.description else None
    if not records:
        return pl.DataFrame(schema=columns or [])
    if columns is None:
        return pl.DataFrame(records, orient="row", infer_schema_length=None)
    return pl.DataFrame(
        records, schema=columns, orient="row", infer_schema_length=None
    )


def _guard_sql(sql: str) -> None:
    lowered = sql.lower()
    if ";" in sql:
        raise ValueError("Semicolons are not permitted in safe_query.")
    forbidden = ("copy", "attach", "install")
    if any(keyword in lowered for keyword in forbidden):
        raise ValueError("Potentially unsafe SQL detected.")


def make_identifier(raw: str) -> str:
    if not raw:
        raise ValueError("Identifier cannot be empty.")
    sanitized = _IDENTIFIER_CLEAN_RE.sub("_", raw)
    if sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


__all__ = [
    "execute",
    "fetch_rows",
    "make_identifier",
    "open_db",
    "safe_query",
]
