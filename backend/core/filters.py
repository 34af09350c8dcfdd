"""
filters.py — Filtering and free-text search over participations.

Participation records can be narrowed by school year and program; per-school
summaries by status, school name and program. The "all" sentinel and None
pass everything through. Collections go through the engine's `as_list`
guard: None counts as empty, strings and non-iterables raise TypeError.
Nothing here mutates its input or raises on a missing lookup.
"""

from typing import Dict, List, Mapping, Optional, Sequence

from core.models import (
    Contact,
    MappedParticipation,
    ParticipationRecord,
    ParticipationStatus,
    Program,
    School,
    SchoolParticipationInfo,
)
from core.participation import as_list

ALL = "all"

# Localized rendering of report_submitted, matched by search.
REPORT_SUBMITTED_LABELS = {True: "tak", False: "nie"}

NOT_AVAILABLE = "N/A"


# ── Participation records ───────────────────────────────────────────

def filter_by_school_year(
    participations: Sequence[ParticipationRecord], school_year: str,
) -> List[ParticipationRecord]:
    participations = as_list(participations, "participations")
    if school_year == ALL:
        return participations
    return [p for p in participations if p.school_year == school_year]


def filter_by_program(
    participations: Sequence[ParticipationRecord], program_id: str,
) -> List[ParticipationRecord]:
    participations = as_list(participations, "participations")
    if program_id == ALL:
        return participations
    return [p for p in participations if p.program_id == program_id]


# ── Per-school summaries ────────────────────────────────────────────

def filter_schools_by_status(
    schools_info: Sequence[SchoolParticipationInfo], status: ParticipationStatus,
) -> List[SchoolParticipationInfo]:
    """
    "participating" keeps schools with any participation, "notParticipating"
    keeps schools with any gap. A partially participating school matches both.
    """
    schools_info = as_list(schools_info, "schools_info")
    if status == "participating":
        return [s for s in schools_info if s.participating]
    if status == "notParticipating":
        return [s for s in schools_info if s.not_participating]
    return schools_info


def filter_schools_by_name(
    schools_info: Sequence[SchoolParticipationInfo], school_name: Optional[str],
) -> List[SchoolParticipationInfo]:
    schools_info = as_list(schools_info, "schools_info")
    if not school_name:
        return schools_info
    return [s for s in schools_info if s.school_name == school_name]


def filter_schools_by_program(
    schools_info: Sequence[SchoolParticipationInfo], program_id: Optional[str],
) -> List[SchoolParticipationInfo]:
    schools_info = as_list(schools_info, "schools_info")
    if not program_id:
        return schools_info
    return [
        s for s in schools_info
        if any(p.id == program_id for p in s.participating)
        or any(p.id == program_id for p in s.not_participating)
    ]


# ── Search ──────────────────────────────────────────────────────────

def _lower(value) -> str:
    return str(value).lower() if value is not None else ""


def _searchable_texts(
    record: ParticipationRecord,
    school: Optional[School],
    program: Optional[Program],
    coordinator: Optional[Contact],
) -> List[str]:
    return [
        _lower(school.name) if school else "",
        _lower(school.email) if school else "",
        _lower(school.address) if school else "",
        _lower(school.city) if school else "",
        _lower(program.name) if program else "",
        _lower(program.description) if program else "",
        _lower(coordinator.first_name) if coordinator else "",
        _lower(coordinator.last_name) if coordinator else "",
        _lower(coordinator.email) if coordinator else "",
        _lower(coordinator.phone) if coordinator else "",
        _lower(record.school_year),
        str(record.student_count) if record.student_count is not None else "",
        _lower(record.notes),
        REPORT_SUBMITTED_LABELS[bool(record.report_submitted)],
    ]


def search_participations(
    participations: Sequence[ParticipationRecord],
    schools_map: Mapping[str, School],
    contacts_map: Mapping[str, Contact],
    programs_map: Mapping[str, Program],
    query: str,
) -> List[ParticipationRecord]:
    """Case-insensitive substring search across the denormalized display fields."""
    participations = as_list(participations, "participations")
    schools_map, contacts_map, programs_map = schools_map or {}, contacts_map or {}, programs_map or {}
    needle = (query or "").strip().lower()
    if not needle:
        return participations

    matches = []
    for record in participations:
        school = schools_map.get(record.school_id)
        program = programs_map.get(record.program_id)
        coordinator = contacts_map.get(record.coordinator_id) if record.coordinator_id else None
        if any(needle in text for text in _searchable_texts(record, school, program, coordinator)):
            matches.append(record)
    return matches


# ── Display mapping ─────────────────────────────────────────────────

def _coordinator_name(coordinator: Optional[Contact]) -> str:
    if coordinator and (coordinator.first_name or coordinator.last_name):
        return f"{coordinator.first_name} {coordinator.last_name}".strip()
    return NOT_AVAILABLE


def map_participations_for_display(
    participations: Sequence[ParticipationRecord],
    schools_map: Mapping[str, School],
    contacts_map: Mapping[str, Contact],
    programs_map: Mapping[str, Program],
) -> List[MappedParticipation]:
    """Attach school, program and coordinator display fields to each record."""
    schools_map, contacts_map, programs_map = schools_map or {}, contacts_map or {}, programs_map or {}
    mapped = []
    for record in as_list(participations, "participations"):
        school = schools_map.get(record.school_id)
        program = programs_map.get(record.program_id)
        coordinator = contacts_map.get(record.coordinator_id) if record.coordinator_id else None
        mapped.append(MappedParticipation(
            record=record,
            school_name=school.name if school else NOT_AVAILABLE,
            school_email=school.email if school else None,
            program_name=program.name if program else NOT_AVAILABLE,
            coordinator_name=_coordinator_name(coordinator),
            coordinator_email=coordinator.email if coordinator else None,
            coordinator_phone=coordinator.phone if coordinator else None,
        ))
    return mapped


def apply_participation_filters(
    participations: Sequence[ParticipationRecord],
    school_year: str = ALL,
    program_id: str = ALL,
    query: str = "",
    lookup_maps: Optional[Dict[str, dict]] = None,
) -> List[ParticipationRecord]:
    """
    Year, then program, then free-text search.
    A non-blank `query` needs `lookup_maps` (see create_lookup_maps); without
    them ValueError is raised.
    """
    filtered = filter_by_school_year(participations, school_year)
    filtered = filter_by_program(filtered, program_id)
    if query and query.strip():
        if lookup_maps is None:
            raise ValueError("lookup_maps are required to search participations by query")
        filtered = search_participations(
            filtered,
            lookup_maps["schools_map"],
            lookup_maps["contacts_map"],
            lookup_maps["programs_map"],
            query,
        )
    return filtered
