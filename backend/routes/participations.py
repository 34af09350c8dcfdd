"""
Participation routes — list, search, and create/update/delete participation
records of an uploaded dataset session.

Every mutation replaces the session's record list, so statistics requested
afterwards are recomputed from the fresh collection.
"""

import logging
import uuid
from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from core.filters import ALL, apply_participation_filters, map_participations_for_display
from core.models import (
    ParticipationCreate,
    ParticipationRecord,
    ParticipationUpdate,
    configured_school_year,
    to_jsonable,
)
from core.participation import create_lookup_maps
from routes.analyze import dataset_from_payload, session_programs, validation_http_error
from routes.upload import get_session_or_404

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_USER_ID = "local"


def default_school_year() -> str:
    return configured_school_year()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _find_index(participations, participation_id: str) -> int:
    for i, record in enumerate(participations):
        if record.id == participation_id:
            return i
    raise HTTPException(404, f"Participation '{participation_id}' not found.")


def _display(data, records):
    maps = create_lookup_maps(data["schools"], data["contacts"], data["programs"])
    return map_participations_for_display(
        records, maps["schools_map"], maps["contacts_map"], maps["programs_map"]
    )


@router.post("/search")
async def search(payload: dict):
    """
    Filter participations by `school_year` (default: the configured year,
    or "all"), `program_id` ("all" by default) and free-text `query`.
    """
    data = dataset_from_payload(payload)
    school_year = payload.get("school_year") or default_school_year()
    program_id = payload.get("program_id") or ALL

    maps = create_lookup_maps(data["schools"], data["contacts"], data["programs"])
    filtered = apply_participation_filters(
        data["participations"],
        school_year=school_year,
        program_id=program_id,
        query=payload.get("query") or "",
        lookup_maps=maps,
    )
    return to_jsonable({
        "school_year": school_year,
        "program_id": program_id,
        "total": len(data["participations"]),
        "matched": len(filtered),
        "participations": _display(data, filtered),
    })


@router.get("/{session_id}")
async def list_participations(session_id: str):
    session = get_session_or_404(session_id)
    data = {**session, "programs": session_programs(session)}
    return to_jsonable({"participations": _display(data, session["participations"])})


@router.post("/{session_id}", status_code=201)
async def create_participation(session_id: str, payload: dict):
    """Validate a new participation record and add it to the session."""
    session = get_session_or_404(session_id)
    try:
        dto = ParticipationCreate.model_validate(payload)
        record = ParticipationRecord(
            **dto.model_dump(),
            id=str(uuid.uuid4()),
            created_at=_now(),
            user_id=payload.get("user_id") or DEFAULT_USER_ID,
        )
    except ValidationError as e:
        raise validation_http_error(e)

    session["participations"] = [*session["participations"], record]
    logger.info("Participation %s added to session %s", record.id, session_id)
    return to_jsonable(record)


@router.patch("/{session_id}/{participation_id}")
async def update_participation(session_id: str, participation_id: str, payload: dict):
    """Apply a partial update to one participation record."""
    session = get_session_or_404(session_id)
    participations = session["participations"]
    idx = _find_index(participations, participation_id)

    try:
        changes = ParticipationUpdate.model_validate(payload).model_dump(exclude_unset=True)
        updated = ParticipationRecord.model_validate({
            **participations[idx].model_dump(),
            **changes,
            "updated_at": _now(),
        })
    except ValidationError as e:
        raise validation_http_error(e)

    session["participations"] = [*participations[:idx], updated, *participations[idx + 1:]]
    logger.info("Participation %s updated in session %s", participation_id, session_id)
    return to_jsonable(updated)


@router.delete("/{session_id}/{participation_id}")
async def delete_participation(session_id: str, participation_id: str):
    session = get_session_or_404(session_id)
    participations = session["participations"]
    idx = _find_index(participations, participation_id)
    session["participations"] = [*participations[:idx], *participations[idx + 1:]]
    logger.info("Participation %s deleted from session %s", participation_id, session_id)
    return {"status": "ok", "message": f"Participation {participation_id} deleted."}
