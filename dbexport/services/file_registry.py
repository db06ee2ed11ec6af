import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ..schemas.database import LoadedFile, TableSchema

# Stockage RAM : { "file_id": LoadedFile } and { "file_id": raw bytes }
# Nothing is written to disk; a restart forgets every upload.
_files: Dict[str, LoadedFile] = {}
_contents: Dict[str, bytes] = {}
_lock = threading.Lock()


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def add_file(name: str, content: bytes) -> LoadedFile:
    record = LoadedFile(
        id=_new_id(),
        name=name,
        size=len(content),
        status="pending",
        uploaded_at=datetime.now(timezone.utc),
    )
    with _lock:
        _files[record.id] = record
        _contents[record.id] = content
    return record.model_copy(deep=True)


def get_file(file_id: str) -> Optional[LoadedFile]:
    with _lock:
        record = _files.get(file_id)
        return record.model_copy(deep=True) if record else None


def get_content(file_id: str) -> Optional[bytes]:
    with _lock:
        return _contents.get(file_id)


def list_files() -> List[LoadedFile]:
    with _lock:
        return [f.model_copy(deep=True) for f in _files.values()]


def _update(file_id: str, **changes) -> Optional[LoadedFile]:
    # Removed files are ignored: a late result for them is simply dropped.
    with _lock:
        record = _files.get(file_id)
        if record is None:
            return None
        record = record.model_copy(update=changes, deep=True)
        _files[file_id] = record
        return record.model_copy(deep=True)


def mark_processing(file_id: str) -> Optional[LoadedFile]:
    return _update(file_id, status="processing", error=None)


def mark_ready(file_id: str, tables: List[TableSchema]) -> Optional[LoadedFile]:
    return _update(file_id, status="ready", tables=list(tables), error=None)


def mark_error(file_id: str, message: str) -> Optional[LoadedFile]:
    return _update(file_id, status="error", tables=[], error=message)


def set_analysis(file_id: str, summary: str) -> Optional[LoadedFile]:
    return _update(file_id, analysis=summary)


def remove_file(file_id: str) -> bool:
    with _lock:
        _contents.pop(file_id, None)
        return _files.pop(file_id, None) is not None


def clear_files() -> int:
    with _lock:
        count = len(_files)
        _files.clear()
        _contents.clear()
    return count
