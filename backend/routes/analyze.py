"""
Analyze routes — participation statistics API endpoints.

Every endpoint takes either a `session_id` of an uploaded dataset or the
collections inline: { "schools": [...], "programs": [...], "participations": [...],
"contacts": [...] }. Programs fall back to the static catalog when omitted.
"""

import logging
from functools import lru_cache
from typing import Dict, List, Type

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from core.catalog import load_program_catalog
from core.filters import (
    filter_schools_by_name,
    filter_schools_by_program,
    filter_schools_by_status,
)
from core.models import Contact, ParticipationRecord, Program, School, to_jsonable
from core.participation import (
    add_participation_count_to_programs,
    compute_participation_overview,
    get_available_school_years,
    program_stats_by_name,
    summarize_program_participations,
)
from routes.upload import get_session_or_404

logger = logging.getLogger(__name__)

router = APIRouter()

STATUSES = ("all", "participating", "notParticipating")


@lru_cache(maxsize=1)
def program_catalog():
    return load_program_catalog()


def validation_http_error(e: ValidationError, **context) -> HTTPException:
    """422 with the pydantic error list, stripped of non-JSON context."""
    errors = [
        {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
        for err in e.errors()
    ]
    return HTTPException(422, {**context, "errors": errors})


def _validate_list(payload: dict, key: str, model: Type) -> List:
    raw = payload.get(key) or []
    if not isinstance(raw, list):
        raise HTTPException(400, f"'{key}' must be a list.")
    try:
        return [model.model_validate(item) for item in raw]
    except ValidationError as e:
        raise validation_http_error(e, collection=key)


def session_programs(session: Dict) -> List:
    """
    Programs of an upload session. Sessions start without a programs sheet,
    so an empty list there means the static catalog applies.
    """
    return session["programs"] or list(program_catalog())


def dataset_from_payload(payload: dict) -> Dict[str, List]:
    """Resolve the collections for a request from a session or the payload itself."""
    session_id = payload.get("session_id")
    if session_id:
        session = get_session_or_404(session_id)
        return {
            "schools": session["schools"],
            "programs": session_programs(session),
            "contacts": session["contacts"],
            "participations": session["participations"],
        }

    if "schools" not in payload:
        raise HTTPException(400, "No schools provided.")

    # Only an omitted key falls back to the catalog; an explicit [] means no programs.
    if "programs" in payload:
        programs = _validate_list(payload, "programs", Program)
    else:
        programs = list(program_catalog())
    return {
        "schools": _validate_list(payload, "schools", School),
        "programs": programs,
        "contacts": _validate_list(payload, "contacts", Contact),
        "participations": _validate_list(payload, "participations", ParticipationRecord),
    }


@router.post("/overview")
async def overview(payload: dict):
    """Per-school split, per-program counts and general summary."""
    data = dataset_from_payload(payload)
    result = compute_participation_overview(data["schools"], data["programs"], data["participations"])
    return to_jsonable({
        **result,
        "program_stats_by_name": program_stats_by_name(result["program_stats"]),
    })


@router.post("/schools")
async def schools(payload: dict):
    """
    Per-school participation, filtered by `school_name`, `program_id` and
    `status` ("all" | "participating" | "notParticipating").
    """
    status = payload.get("status", "all")
    if status not in STATUSES:
        raise HTTPException(400, f"Unknown status '{status}'. Expected one of: {list(STATUSES)}")

    data = dataset_from_payload(payload)
    result = compute_participation_overview(data["schools"], data["programs"], data["participations"])

    filtered = filter_schools_by_name(result["schools_info"], payload.get("school_name"))
    filtered = filter_schools_by_program(filtered, payload.get("program_id"))
    filtered = filter_schools_by_status(filtered, status)
    return to_jsonable({
        "schools_info": filtered,
        "total": len(result["schools_info"]),
        "matched": len(filtered),
        "general_stats": result["general_stats"],
    })


@router.post("/programs")
async def programs(payload: dict):
    """Distinct participating schools per program and per-program record summaries."""
    data = dataset_from_payload(payload)
    return to_jsonable({
        "programs": add_participation_count_to_programs(data["programs"], data["participations"]),
        "summaries": summarize_program_participations(data["participations"], data["programs"]),
    })


@router.post("/school-years")
async def school_years(payload: dict):
    """School years present in the participation records."""
    data = dataset_from_payload(payload)
    return {"school_years": get_available_school_years(data["participations"])}


@router.get("/catalog")
async def catalog():
    """The static program catalog."""
    try:
        return to_jsonable({"programs": list(program_catalog())})
    except (OSError, ValueError) as e:
        logger.error("Program catalog could not be loaded: %s", e)
        raise HTTPException(500, f"Program catalog could not be loaded: {e}")
