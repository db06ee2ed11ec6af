from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

# A single SQLite cell: TEXT, INTEGER, REAL, BLOB or NULL.
CellValue = Union[str, int, float, bytes, None]

# Column name -> value, in the column order reported by the query.
Row = Dict[str, CellValue]

FileStatus = Literal["pending", "processing", "ready", "error"]


class TableSchema(BaseModel):
    name: str = Field(..., min_length=1)
    row_count: int = Field(..., ge=0)
    columns: List[str] = []


@dataclass
class TableRowSet:
    """All rows of one table, produced fresh for each export."""
    table_name: str
    rows: List[Row] = field(default_factory=list)


class LoadedFile(BaseModel):
    id: str
    name: str
    size: int
    tables: List[TableSchema] = []
    status: FileStatus = "pending"
    error: Optional[str] = None
    analysis: Optional[str] = None
    uploaded_at: datetime


class UploadResult(BaseModel):
    status: str = "success"
    files: List[LoadedFile] = []
    skipped: List[str] = []


class FileList(BaseModel):
    files: List[LoadedFile] = []


class TablePreview(BaseModel):
    file_id: str
    table: str
    columns: List[str] = []
    rows: List[Dict[str, Union[str, int, float, None]]] = []
