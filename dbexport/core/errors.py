from typing import Optional

# [structure:core] : Typed failures raised by the ingestion and export pipeline.


class DBExportError(Exception):
    """Base class for every failure the pipeline surfaces to its caller."""


class OpenError(DBExportError):
    """The buffer is not a valid or openable SQLite database."""


class QueryError(DBExportError):
    """A catalog, metadata, count or row query failed on an open database."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


class EncodeError(DBExportError):
    """The workbook could not be serialized."""
