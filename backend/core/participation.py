"""
participation.py — School-program participation statistics engine.

Computes:
- Programs each school is eligible for (school-type tag intersection)
- Index of school id → participated program ids
- Per-school split of eligible programs into participating / not participating
- Per-program eligible / participating / not-participating school counts
- Fleet-wide summary counts
- Per-program record counts, student totals and school years

All functions are pure: inputs are never mutated and every call recomputes
from scratch. Data-quality problems are logged, never raised.
"""

import logging
from collections.abc import Iterable
from typing import Dict, List, Optional, Sequence, Set

from core.models import (
    Contact,
    GeneralStats,
    ParticipationRecord,
    Program,
    ProgramParticipationSummary,
    ProgramStatsItem,
    ProgramWithCount,
    School,
    SchoolParticipationInfo,
)

logger = logging.getLogger(__name__)

ParticipationIndex = Dict[str, List[str]]


# ── Helpers ─────────────────────────────────────────────────────────

def as_list(items, label: str) -> list:
    """Accept any iterable collection; None counts as empty."""
    if items is None:
        return []
    if isinstance(items, (str, bytes, dict)) or not isinstance(items, Iterable):
        raise TypeError(f"{label} must be a list, got {type(items).__name__}")
    return list(items)


def is_eligible(school: School, program: Program) -> bool:
    """A school qualifies when it shares at least one type tag with the program."""
    return any(tag in school.school_types for tag in program.school_types)


# ── Eligibility ─────────────────────────────────────────────────────

def get_applicable_programs(school: School, programs: Sequence[Program]) -> List[Program]:
    """Programs the school's type makes it eligible for, in catalog order."""
    return [p for p in as_list(programs, "programs") if is_eligible(school, p)]


# ── Participation index ─────────────────────────────────────────────

def create_school_participations_map(
    participations: Sequence[ParticipationRecord],
) -> ParticipationIndex:
    """
    Group program ids by school id.

    Duplicates are kept: a school running one program across two years
    appears twice. Records missing either key are skipped.
    """
    index: ParticipationIndex = {}
    skipped = 0
    for record in as_list(participations, "participations"):
        if not record.school_id or not record.program_id:
            skipped += 1
            continue
        index.setdefault(record.school_id, []).append(record.program_id)

    if skipped:
        logger.warning("Skipped %d participation record(s) without school or program id", skipped)
    return index


# ── Per-school split ────────────────────────────────────────────────

def calculate_school_participation_info(
    schools: Sequence[School],
    programs: Sequence[Program],
    participation_index: ParticipationIndex,
) -> List[SchoolParticipationInfo]:
    """One entry per school, in input order."""
    programs = as_list(programs, "programs")
    result = []
    for school in as_list(schools, "schools"):
        applicable = get_applicable_programs(school, programs)
        participated: Set[str] = set(participation_index.get(school.id, ()))
        result.append(SchoolParticipationInfo(
            school_id=school.id,
            school_name=school.name,
            participating=[p for p in applicable if p.id in participated],
            not_participating=[p for p in applicable if p.id not in participated],
        ))
    return result


# ── Per-program statistics ──────────────────────────────────────────

def calculate_program_stats(
    schools: Sequence[School],
    programs: Sequence[Program],
    participation_index: ParticipationIndex,
) -> Dict[str, ProgramStatsItem]:
    """
    Eligible / participating / not-participating school counts, keyed by
    program id. Programs without school types or without any eligible
    school are left out.
    """
    schools = as_list(schools, "schools")
    participated = {sid: set(pids) for sid, pids in participation_index.items()}

    stats: Dict[str, ProgramStatsItem] = {}
    for program in as_list(programs, "programs"):
        if not program.school_types:
            continue

        eligible = 0
        participating = 0
        for school in schools:
            if is_eligible(school, program):
                eligible += 1
                if program.id in participated.get(school.id, ()):
                    participating += 1

        if eligible > 0:
            stats[program.id] = ProgramStatsItem(
                program_id=program.id,
                program_name=program.name,
                eligible=eligible,
                participating=participating,
                not_participating=eligible - participating,
            )
    return stats


def program_stats_by_name(program_stats: Dict[str, ProgramStatsItem]) -> Dict[str, ProgramStatsItem]:
    """Name-keyed view for display. On duplicate names the last entry wins."""
    by_name: Dict[str, ProgramStatsItem] = {}
    for item in program_stats.values():
        if item.program_name in by_name:
            logger.warning(
                "Duplicate program name '%s' (%s, %s); keeping the latter",
                item.program_name, by_name[item.program_name].program_id, item.program_id,
            )
        by_name[item.program_name] = item
    return by_name


# ── Summary ─────────────────────────────────────────────────────────

def calculate_general_stats(
    schools: Sequence[School],
    schools_info: Sequence[SchoolParticipationInfo],
    program_stats: Dict[str, ProgramStatsItem],
    all_participations: Sequence[ParticipationRecord],
) -> GeneralStats:
    """
    Fleet-wide counts.

    non_participating_count: schools with eligible programs and no
    participation at all. schools_with_gaps: schools missing at least one
    eligible program, partially participating ones included.
    """
    schools_info = as_list(schools_info, "schools_info")
    return GeneralStats(
        total_schools=len(as_list(schools, "schools")),
        non_participating_count=sum(
            1 for info in schools_info if info.not_participating and not info.participating
        ),
        schools_with_gaps=sum(1 for info in schools_info if info.not_participating),
        total_participations=len(as_list(all_participations, "participations")),
        total_missing_participations=sum(s.not_participating for s in program_stats.values()),
    )


def compute_participation_overview(
    schools: Sequence[School],
    programs: Sequence[Program],
    participations: Sequence[ParticipationRecord],
) -> dict:
    """Run the whole pipeline once: per-school info, program stats, summary."""
    index = create_school_participations_map(participations)
    schools_info = calculate_school_participation_info(schools, programs, index)
    program_stats = calculate_program_stats(schools, programs, index)
    general_stats = calculate_general_stats(schools, schools_info, program_stats, participations)
    return {
        "schools_info": schools_info,
        "program_stats": program_stats,
        "general_stats": general_stats,
    }


# ── Supplementary aggregates ────────────────────────────────────────

def add_participation_count_to_programs(
    programs: Sequence[Program],
    participations: Sequence[ParticipationRecord],
) -> List[ProgramWithCount]:
    """Attach the number of distinct participating schools to each program."""
    schools_per_program: Dict[str, Set[str]] = {}
    for record in as_list(participations, "participations"):
        if record.program_id and record.school_id:
            schools_per_program.setdefault(record.program_id, set()).add(record.school_id)

    return [
        ProgramWithCount(
            program=program,
            participation_count=len(schools_per_program.get(program.id, ())),
        )
        for program in as_list(programs, "programs")
    ]


def get_available_school_years(participations: Sequence[ParticipationRecord]) -> List[str]:
    return sorted({r.school_year for r in as_list(participations, "participations") if r.school_year})


def summarize_program_participations(
    participations: Sequence[ParticipationRecord],
    programs: Sequence[Program],
) -> List[ProgramParticipationSummary]:
    """Record count, student total and school years per program, busiest first."""
    names = {p.id: p.name for p in as_list(programs, "programs")}
    grouped: Dict[str, List[ParticipationRecord]] = {}
    for record in as_list(participations, "participations"):
        grouped.setdefault(record.program_id, []).append(record)

    summaries = [
        ProgramParticipationSummary(
            program_id=program_id,
            program_name=names.get(program_id, f"Program {program_id}"),
            school_count=len(records),
            total_students=sum(r.student_count for r in records),
            school_years=sorted({r.school_year for r in records}),
        )
        for program_id, records in grouped.items()
    ]
    return sorted(summaries, key=lambda s: s.school_count, reverse=True)


def create_lookup_maps(
    schools: Sequence[School],
    contacts: Optional[Sequence[Contact]],
    programs: Sequence[Program],
) -> Dict[str, dict]:
    """id → entity maps used by search and display mapping."""
    return {
        "schools_map": {s.id: s for s in as_list(schools, "schools")},
        "contacts_map": {c.id: c for c in as_list(contacts, "contacts")},
        "programs_map": {p.id: p for p in as_list(programs, "programs")},
    }
