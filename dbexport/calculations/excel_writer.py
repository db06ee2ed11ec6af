import logging
import math
import os
import re
from io import BytesIO
from typing import Dict, List, Sequence

import pandas as pd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.utils.exceptions import IllegalCharacterError

from ..core.errors import EncodeError
from ..schemas.database import CellValue, TableRowSet

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

MAX_SHEET_NAME = 31            # Excel hard limit
MAX_CELL_TEXT = 32767          # Excel hard limit
MAX_SUFFIX_ATTEMPTS = 10000
FORBIDDEN_SHEET_CHARS = re.compile(r"[/?*\[\]\\:]")
FALLBACK_SHEET_NAME = "Sheet"


# ==============================================================================
# 1. NAMING
# ==============================================================================

def sheet_name_for(table_name: str) -> str:
    """
    Truncate to 31 chars first, then drop the characters Excel forbids.
    Dropped characters are not replaced, so the result may be shorter.
    """
    name = FORBIDDEN_SHEET_CHARS.sub("", table_name[:MAX_SHEET_NAME])
    name = name.strip("'")
    return name or FALLBACK_SHEET_NAME


def unique_sheet_names(table_names: Sequence[str]) -> List[str]:
    """
    Sheet names for each table, in order, with collisions resolved by a
    numeric suffix (base_1, base_2...). Comparison ignores case like Excel does.
    """
    used = set()
    result = []
    for table_name in table_names:
        base = sheet_name_for(table_name)
        sheet_name = base
        count = 1
        while sheet_name.lower() in used:
            if count > MAX_SUFFIX_ATTEMPTS:
                raise EncodeError(f"Could not find a free sheet name for table '{table_name}'")
            suffix = f"_{count}"
            sheet_name = f"{base[:MAX_SHEET_NAME - len(suffix)]}{suffix}"
            count += 1
        if sheet_name != base:
            logger.info("[EXPORT] Sheet name '%s' already used, table '%s' written as '%s'", base, table_name, sheet_name)
        used.add(sheet_name.lower())
        result.append(sheet_name)
    return result


def export_filename(display_name: str) -> str:
    """
    'shop.sqlite' -> 'shop.xlsx' (only the last extension is dropped).
    A leading dot is part of the name, not an extension: '.backup' -> '.backup.xlsx'.
    """
    base_name = os.path.splitext(os.path.basename(display_name))[0]
    return f"{base_name}.xlsx"


# ==============================================================================
# 2. CELLS
# ==============================================================================

def excel_cell_value(value: CellValue):
    """Maps a SQLite scalar to something openpyxl stores without loss of meaning."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)[:MAX_CELL_TEXT]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()[:MAX_CELL_TEXT]
    raise EncodeError(f"Unsupported cell type: {type(value).__name__}")


def header_for(table: TableRowSet) -> List[str]:
    header: Dict[str, None] = {}
    for row in table.rows:
        for key in row:
            header.setdefault(key, None)
    return list(header)


def _keep_text(worksheet) -> None:
    # openpyxl turns any string starting with '=' into a formula; database text stays text.
    for row in worksheet.iter_rows():
        for cell in row:
            if cell.data_type == "f":
                cell.data_type = "s"


# ==============================================================================
# 3. WORKBOOK
# ==============================================================================

def encode(tables: Sequence[TableRowSet]) -> bytes:
    """
    One sheet per table, in input order.
    A table without rows yields an empty sheet (no header row either).
    """
    if not tables:
        raise EncodeError("Nothing to export: the database has no tables")

    sheet_names = unique_sheet_names([t.table_name for t in tables])
    output = BytesIO()
    try:
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            for table, sheet_name in zip(tables, sheet_names):
                if not table.rows:
                    writer.book.create_sheet(title=sheet_name)
                    continue
                header = header_for(table)
                records = [[excel_cell_value(row.get(col)) for col in header] for row in table.rows]
                df = pd.DataFrame(records, columns=[excel_cell_value(col) for col in header], dtype=object)
                df.to_excel(writer, sheet_name=sheet_name, index=False)
                _keep_text(writer.sheets[sheet_name])
    except EncodeError:
        raise
    except (ValueError, TypeError, IllegalCharacterError) as e:
        raise EncodeError(f"Workbook serialization failed: {e}") from e

    logger.debug("[EXPORT] Workbook with %d sheet(s) encoded", len(sheet_names))
    return output.getvalue()
