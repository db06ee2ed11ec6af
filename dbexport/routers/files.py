import asyncio
import io
import logging
import math
import zipfile
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, File, HTTPException, Query, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response, StreamingResponse

from ..calculations import excel_writer, sqlite_reader
from ..core import config
from ..core.errors import EncodeError, OpenError, QueryError
from ..schemas.database import FileList, LoadedFile, TablePreview, UploadResult
from ..services import file_registry, schema_analyst

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])

# ==============================================================================
# 1. HELPERS
# ==============================================================================

def is_db_file(name: str) -> bool:
    return bool(name) and name.lower().endswith(config.ALLOWED_EXTENSIONS)


def attachment_headers(filename: str) -> dict:
    # RFC 5987 form so non-ASCII file names survive the latin-1 header encoding
    return {"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"}


def require_file(file_id: str) -> LoadedFile:
    record = file_registry.get_file(file_id)
    if record is None:
        raise HTTPException(status_code=404, detail="File not found")
    return record


def require_ready(file_id: str) -> LoadedFile:
    record = require_file(file_id)
    if record.status != "ready":
        raise HTTPException(status_code=409, detail=f"File is not ready (status: {record.status})")
    return record


def json_cell(value):
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return value


async def load_schema(file_id: str) -> None:
    """Reads one uploaded file's schema. Failures stay on that file's record."""
    content = file_registry.get_content(file_id)
    if content is None:
        return
    file_registry.mark_processing(file_id)
    try:
        tables = await run_in_threadpool(sqlite_reader.read_schema, content)
    except (OpenError, QueryError) as e:
        logger.warning("[SCHEMA] Error parsing file %s: %s", file_id, e)
        file_registry.mark_error(file_id, f"Failed to parse database file: {e}")
        return
    except Exception as e:
        # Anything unexpected still ends on this file only, never on the whole batch.
        logger.exception("[SCHEMA] Unexpected error parsing file %s", file_id)
        file_registry.mark_error(file_id, f"Failed to parse database file: {e}")
        return
    file_registry.mark_ready(file_id, tables)


def build_workbook(record: LoadedFile) -> bytes:
    content = file_registry.get_content(record.id)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    data = sqlite_reader.extract_all(content, [t.name for t in record.tables])
    return excel_writer.encode(data)


# ==============================================================================
# 2. ROUTES
# ==============================================================================

@router.post("/upload", response_model=UploadResult)
async def upload_files(files: List[UploadFile] = File(...)):
    """
    [+] [INFO] Accepts one or more SQLite files and reads their schema.
    Each file is parsed in its own task; a broken file does not stop the others.
    """
    accepted = []
    skipped = []

    for upload in files:
        filename = upload.filename or ""
        if not is_db_file(filename):
            skipped.append(filename)
            continue
        content = await upload.read()
        if len(content) > config.MAX_UPLOAD_BYTES:
            logger.warning("[UPLOAD] %s exceeds %d MB, skipped", filename, config.MAX_UPLOAD_MB)
            skipped.append(filename)
            continue
        accepted.append(file_registry.add_file(filename, content))

    await asyncio.gather(*(load_schema(record.id) for record in accepted))

    results = [file_registry.get_file(record.id) for record in accepted]
    return UploadResult(files=[r for r in results if r is not None], skipped=skipped)


@router.get("/list", response_model=FileList)
def list_files():
    return FileList(files=file_registry.list_files())


@router.delete("/clear")
def clear_files():
    """[+] [INFO] Forgets every uploaded file."""
    deleted_count = file_registry.clear_files()
    return {"status": "cleared", "deleted_count": deleted_count}


@router.get("/export-all")
def export_all():
    """
    [+] [INFO] Batch export: one workbook per ready file, bundled in a zip.
    Files that fail are skipped and logged.
    """
    zip_buffer = io.BytesIO()
    used_names = set()
    count = 0
    with zipfile.ZipFile(zip_buffer, "w", zipfile.ZIP_DEFLATED) as z:
        for record in file_registry.list_files():
            if record.status != "ready" or not record.tables:
                continue
            try:
                workbook = build_workbook(record)
            except (OpenError, QueryError, EncodeError) as e:
                logger.warning("[EXPORT] Skipping %s in batch export: %s", record.name, e)
                continue
            except HTTPException:
                continue

            entry_name = excel_writer.export_filename(record.name)
            base = entry_name[: -len(".xlsx")]
            n = 1
            while entry_name.lower() in used_names:
                entry_name = f"{base}_{n}.xlsx"
                n += 1
            used_names.add(entry_name.lower())
            z.writestr(entry_name, workbook)
            count += 1

    if count == 0:
        raise HTTPException(status_code=400, detail="No convertible files found")
    zip_buffer.seek(0)
    return StreamingResponse(
        zip_buffer,
        media_type="application/zip",
        headers=attachment_headers("batch_export.zip"),
    )


@router.get("/{file_id}", response_model=LoadedFile)
def get_file(file_id: str):
    return require_file(file_id)


@router.delete("/{file_id}")
def delete_file(file_id: str):
    if not file_registry.remove_file(file_id):
        raise HTTPException(status_code=404, detail="File not found")
    return {"status": "deleted", "id": file_id}


@router.post("/{file_id}/analyze", response_model=LoadedFile)
def analyze_file(file_id: str):
    """[+] [INFO] Asks the AI collaborator for a short description of the schema."""
    record = require_ready(file_id)
    summary = schema_analyst.analyze_schema(record.name, record.tables)
    updated = file_registry.set_analysis(file_id, summary)
    if updated is None:
        raise HTTPException(status_code=404, detail="File not found")
    return updated


@router.get("/{file_id}/tables/{table_name:path}/preview", response_model=TablePreview)
def preview_table(file_id: str, table_name: str, limit: int = Query(50, ge=1, le=1000)):
    record = require_ready(file_id)
    table = next((t for t in record.tables if t.name == table_name), None)
    if table is None:
        raise HTTPException(status_code=404, detail="Table not found")

    content = file_registry.get_content(file_id)
    if content is None:
        raise HTTPException(status_code=404, detail="File not found")
    try:
        with sqlite_reader.open_database(content) as handle:
            rows = sqlite_reader.read_rows(handle, table_name, limit=limit)
    except (OpenError, QueryError) as e:
        raise HTTPException(status_code=500, detail=f"Preview failed: {e}")

    return TablePreview(
        file_id=file_id,
        table=table_name,
        columns=table.columns,
        rows=[{k: json_cell(v) for k, v in row.items()} for row in rows],
    )


@router.get("/{file_id}/export")
def export_file(file_id: str):
    """
    [+] [INFO] Full export of every table to an .xlsx download.
    The workbook is built completely in memory before anything is sent.
    """
    record = require_ready(file_id)
    if not record.tables:
        raise HTTPException(status_code=400, detail="Nothing to export: the database has no tables")
    try:
        workbook = build_workbook(record)
    except (OpenError, QueryError, EncodeError) as e:
        logger.error("[EXPORT] Export failed for %s: %s", record.name, e)
        raise HTTPException(status_code=500, detail=f"Export failed: {e}")

    logger.info("[EXPORT] %s exported (%d tables)", record.name, len(record.tables))
    return Response(
        content=workbook,
        media_type=excel_writer.XLSX_MEDIA_TYPE,
        headers=attachment_headers(excel_writer.export_filename(record.name)),
    )
