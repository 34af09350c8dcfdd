"""
Upload routes — file upload, collection detection, validation and sample data loading.

Uploaded sheets are validated into typed records and kept in an in-memory
dataset session: session_id → { schools, programs, contacts, participations, issues }.
"""

import logging
import uuid
from pathlib import Path
from time import time
from typing import Dict, List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile

from core.catalog import load_program_catalog
from core.parser import (
    ENTITIES,
    SAMPLE_DATA_DIR,
    detect_entity,
    parse_upload,
    records_from_dataframe,
    suggest_column_mapping,
    validate_data,
)

logger = logging.getLogger(__name__)

router = APIRouter()

sessions: dict = {}
SESSION_TTL_SECONDS = 60 * 60  # 1 hour

ALLOWED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".ods")

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)

SAMPLE_DATASETS = {
    "demo": {
        "schools": SAMPLE_DATA_DIR / "schools.csv",
        "contacts": SAMPLE_DATA_DIR / "contacts.csv",
        "participations": SAMPLE_DATA_DIR / "participations.csv",
    },
}


def new_session() -> Dict:
    return {
        "schools": [],
        "programs": [],
        "contacts": [],
        "participations": [],
        "issues": [],
        "filenames": [],
        "created_at": time(),
    }


def get_session_or_404(session_id: str) -> Dict:
    _purge_expired_sessions()
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(404, "Session not found. Please re-upload the data.")
    return session


def session_summary(session_id: str, session: Dict) -> Dict:
    return {
        "session_id": session_id,
        "filenames": session["filenames"],
        "counts": {entity: len(session[entity]) for entity in ENTITIES},
        "issues": session["issues"],
    }


def _purge_expired_sessions():
    now = time()
    expired = [
        sid for sid, s in sessions.items()
        if (now - float(s.get("created_at", now))) > SESSION_TTL_SECONDS
    ]
    for sid in expired:
        sessions.pop(sid, None)
    if expired:
        logger.info("Purged %d expired session(s)", len(expired))


def _resolve_entity(sheet_name: str, df, requested: Optional[str]) -> Optional[str]:
    if requested:
        return requested
    normalized = str(sheet_name).strip().lower()
    if normalized in ENTITIES:
        return normalized
    return detect_entity(df)


def _ingest_sheets(session: Dict, sheets_data: Dict, requested: Optional[str], filename: str) -> List[Dict]:
    """Validate each sheet and append its records to the session."""
    loaded = []
    for sheet_name, df in sheets_data.items():
        entity = _resolve_entity(sheet_name, df, requested)
        if entity is None:
            session["issues"].append({
                "type": "unknown_sheet",
                "severity": "warning",
                "message": f"Could not tell what sheet '{sheet_name}' in {filename} contains.",
            })
            continue

        mapping = suggest_column_mapping(df, entity)
        structural = validate_data(df, entity)
        records, row_issues = records_from_dataframe(df, entity, mapping)
        for issue in structural + row_issues:
            issue.setdefault("sheet", sheet_name)
        session["issues"].extend(structural + row_issues)
        session[entity].extend(records)

        loaded.append({
            "sheet": sheet_name,
            "entity": entity,
            "mapping": mapping,
            "row_count": len(df),
            "record_count": len(records),
        })
        logger.info("Loaded %d %s from %s [%s]", len(records), entity, filename, sheet_name)
    return loaded


@router.post("/file")
async def upload_file(
    file: UploadFile = File(...),
    entity: Optional[str] = Form(None),
    session_id: Optional[str] = Form(None),
):
    """
    Upload a CSV, Excel, or ODS file with schools, programs, contacts or
    participations. Excel sheets named after a collection are routed to it;
    other sheets are detected from their columns.
    """
    ext = Path(file.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext}. Use CSV, Excel, or ODS.")
    if entity is not None and entity not in ENTITIES:
        raise HTTPException(400, f"Unknown collection '{entity}'. Expected one of: {list(ENTITIES)}")

    if session_id:
        session = get_session_or_404(session_id)
    else:
        _purge_expired_sessions()
        session_id = str(uuid.uuid4())
        session = new_session()

    save_path = UPLOAD_DIR / f"{uuid.uuid4()}{ext}"
    try:
        with open(save_path, "wb") as f:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)

        sheets_data = parse_upload(str(save_path))
        loaded = _ingest_sheets(session, sheets_data, entity, file.filename)
    except ValueError as e:
        raise HTTPException(400, f"Failed to process upload '{file.filename}': {e}")
    finally:
        # Uploaded files are never kept once parsed.
        save_path.unlink(missing_ok=True)

    session["filenames"].append(file.filename)
    sessions[session_id] = session

    return {**session_summary(session_id, session), "sheets": loaded}


@router.get("/sample/{dataset_name}")
async def load_sample_data(dataset_name: str):
    """Load one of the bundled sample datasets, with the static program catalog."""
    if dataset_name not in SAMPLE_DATASETS:
        raise HTTPException(
            404, f"Sample dataset '{dataset_name}' not found. Available: {list(SAMPLE_DATASETS.keys())}"
        )

    _purge_expired_sessions()
    session_id = str(uuid.uuid4())
    session = new_session()

    try:
        session["programs"].extend(load_program_catalog())
        for entity, file_path in SAMPLE_DATASETS[dataset_name].items():
            _ingest_sheets(session, parse_upload(str(file_path)), entity, file_path.name)
            session["filenames"].append(file_path.name)
    except (OSError, ValueError) as e:
        raise HTTPException(400, f"Failed to load sample dataset '{dataset_name}': {e}")

    sessions[session_id] = session
    return session_summary(session_id, session)


@router.get("/sessions")
async def list_sessions():
    """List active sessions."""
    _purge_expired_sessions()
    return {
        sid: {
            "filenames": s["filenames"],
            "counts": {entity: len(s[entity]) for entity in ENTITIES},
        }
        for sid, s in sessions.items()
    }


@router.get("/session/{session_id}")
async def get_session(session_id: str):
    """Get session info."""
    return session_summary(session_id, get_session_or_404(session_id))


@router.post("/end-session")
async def end_session(session_id: Optional[str] = Form(None)):
    """
    Explicitly end session and remove its data.
    If session_id is omitted, all in-memory sessions are purged (single-tenant dev mode).
    """
    if session_id:
        sessions.pop(session_id, None)
        return {"status": "ok", "message": f"Session {session_id} deleted."}

    sessions.clear()
    return {"status": "ok", "message": "All active sessions deleted."}
