import logging
import os
import sqlite3
import tempfile
import threading
from dataclasses import dataclass
from typing import List, Optional

from pydantic import ValidationError

from ..core.errors import OpenError, QueryError
from ..schemas.database import Row, TableRowSet, TableSchema

# [structure:calculations] : SQLite ingestion. Opens an uploaded buffer, reads its
# schema and materializes table rows. Every handle opened here is closed here.

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"
WAL_FLAGS = b"\x02\x02"
LEGACY_FLAGS = b"\x01\x01"


# ==============================================================================
# 1. ENGINE (process-wide, initialised once)
# ==============================================================================

@dataclass(frozen=True)
class SQLiteEngine:
    sqlite_version: str
    in_memory: bool


_engine: Optional[SQLiteEngine] = None
_engine_lock = threading.Lock()


def _probe_engine() -> SQLiteEngine:
    in_memory = hasattr(sqlite3.Connection, "deserialize")
    engine = SQLiteEngine(sqlite_version=sqlite3.sqlite_version, in_memory=in_memory)
    mode = "in-memory" if in_memory else "temporary file"
    logger.info("[ENGINE] SQLite %s ready (%s mode)", engine.sqlite_version, mode)
    return engine


def get_engine() -> SQLiteEngine:
    """
    Returns the shared engine description, probing it on first use.
    Concurrent first callers wait on the lock; the probe runs exactly once.
    """
    global _engine
    if _engine is None:
        with _engine_lock:
            if _engine is None:
                _engine = _probe_engine()
    return _engine


# ==============================================================================
# 2. DATABASE HANDLE
# ==============================================================================

def _decode_text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class DatabaseHandle:
    """
    An opened, read-only view over one database buffer.
    Owned by whoever opened it; close() must run on every exit path.
    """

    def __init__(self, connection: sqlite3.Connection, tmp_path: Optional[str] = None):
        self.connection = connection
        self._tmp_path = tmp_path
        self.closed = False

    def execute(self, sql: str, params=()) -> sqlite3.Cursor:
        if self.closed:
            raise QueryError("Database handle is already closed")
        return self.connection.execute(sql, params)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.connection.close()
        finally:
            _remove_tmp(self._tmp_path)

    def __enter__(self) -> "DatabaseHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _remove_tmp(path: Optional[str]) -> None:
    if path and os.path.exists(path):
        os.remove(path)


def _write_tmp(content: bytes) -> str:
    # delete=False so the file can be reopened by sqlite3 on every platform
    with tempfile.NamedTemporaryFile(delete=False, suffix=".sqlite") as tmp_file:
        tmp_file.write(content)
        return tmp_file.name


def open_database(content: bytes) -> DatabaseHandle:
    """
    Opens a raw SQLite buffer.
    Raises OpenError when the bytes are not a readable database; in that case
    nothing is left open.
    """
    if content and not content.startswith(SQLITE_HEADER):
        raise OpenError("File is not a SQLite database (bad header)")

    engine = get_engine()
    conn = None
    tmp_path = None
    try:
        if engine.in_memory:
            conn = sqlite3.connect(":memory:")
            if content:
                if content[18:20] == WAL_FLAGS:
                    # The -wal file is not part of the upload: read the main file as legacy journal mode.
                    content = content[:18] + LEGACY_FLAGS + content[20:]
                conn.deserialize(content)
        else:
            tmp_path = _write_tmp(content)
            conn = sqlite3.connect(f"file:{tmp_path}?mode=ro", uri=True)

        conn.text_factory = _decode_text
        conn.execute("PRAGMA query_only = ON")
        conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
    except (sqlite3.Error, OverflowError) as e:
        if conn is not None:
            conn.close()
        _remove_tmp(tmp_path)
        raise OpenError(f"Could not open database: {e}") from e

    return DatabaseHandle(conn, tmp_path)


# ==============================================================================
# 3. SCHEMA READER
# ==============================================================================

def quote_identifier(name: str) -> str:
    """Quotes a table name for interpolation into SQL ("a""b" for a"b)."""
    return '"' + name.replace('"', '""') + '"'


def list_table_names(handle: DatabaseHandle) -> List[str]:
    """User tables in catalog order; engine-reserved sqlite_* tables are skipped."""
    try:
        cursor = handle.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"
        )
        return [row[0] for row in cursor.fetchall()]
    except sqlite3.Error as e:
        raise QueryError(f"Could not list tables: {e}") from e


def list_tables(handle: DatabaseHandle) -> List[TableSchema]:
    tables = []
    for name in list_table_names(handle):
        quoted = quote_identifier(name)
        try:
            columns = [row[1] for row in handle.execute(f"PRAGMA table_info({quoted})").fetchall()]
            row_count = handle.execute(f"SELECT count(*) FROM {quoted}").fetchone()[0]
        except sqlite3.Error as e:
            raise QueryError(f"Could not inspect table '{name}': {e}", table=name) from e
        try:
            tables.append(TableSchema(name=name, row_count=row_count, columns=columns))
        except ValidationError as e:
            raise QueryError(f"Unsupported table name {name!r} in catalog", table=name) from e
    return tables


def read_schema(content: bytes) -> List[TableSchema]:
    """Tables of a database buffer with their columns and exact row counts."""
    handle = open_database(content)
    try:
        tables = list_tables(handle)
    finally:
        handle.close()
    logger.debug("[SCHEMA] %d table(s) found", len(tables))
    return tables


# ==============================================================================
# 4. TABLE MATERIALIZER
# ==============================================================================

def _to_row(columns: List[str], values: tuple) -> Row:
    # Missing trailing values are backfilled with None so every row has every column.
    return {col: (values[i] if i < len(values) else None) for i, col in enumerate(columns)}


def read_rows(handle: DatabaseHandle, table_name: str, limit: Optional[int] = None) -> List[Row]:
    """
    SELECT * over one table. Field order is the query's own column order.
    The handle is neither opened nor closed here.
    """
    sql = f"SELECT * FROM {quote_identifier(table_name)}"
    params = ()
    if limit is not None:
        sql += " LIMIT ?"
        params = (limit,)
    try:
        cursor = handle.execute(sql, params)
        columns = [d[0] for d in cursor.description or ()]
        return [_to_row(columns, values) for values in cursor.fetchall()]
    except sqlite3.Error as e:
        raise QueryError(f"Could not read table '{table_name}': {e}", table=table_name) from e


def read_all_rows(handle: DatabaseHandle, table_name: str) -> List[Row]:
    return read_rows(handle, table_name)


# ==============================================================================
# 5. BULK EXTRACTOR
# ==============================================================================

def extract_all(content: bytes, table_names: Optional[List[str]] = None) -> List[TableRowSet]:
    """
    One TableRowSet per table, in catalog order, using a single handle.
    Pass table_names to reuse a previously read schema listing.
    Fails fast: the first error aborts the remaining tables.
    """
    handle = open_database(content)
    try:
        names = list(table_names) if table_names is not None else list_table_names(handle)
        result = [TableRowSet(table_name=name, rows=read_all_rows(handle, name)) for name in names]
    finally:
        handle.close()
    logger.debug("[EXTRACT] %d table(s) materialized", len(result))
    return result
