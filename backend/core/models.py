"""
models.py — Record schemas and boundary validation.

Defines:
- Source records (schools, programs, coordinators, participations)
- Create / update payloads for participation records
- Derived aggregate shapes returned by the statistics engine
- School-year and student-count helpers

Field names are snake_case; the camelCase keys used by the original
JSON documents (schoolId, schoolTypes, studentCount, ...) are accepted too.
"""

import logging
import os
import re
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

MAX_STUDENT_COUNT = int(os.getenv("MAX_STUDENT_COUNT", "10000"))
NOTES_MAX_LENGTH = 1000

SCHOOL_YEAR_PATTERN = re.compile(r"^(\d{4})/(\d{4})$")

# Month the school year rolls over (1 September).
SCHOOL_YEAR_START_MONTH = 9

ProgramType = Literal["programowy", "nieprogramowy"]
ParticipationStatus = Literal["all", "participating", "notParticipating"]


# ── Helpers ─────────────────────────────────────────────────────────

def is_valid_school_year(value: str) -> bool:
    """True for 'YYYY/YYYY' tokens whose second year follows the first."""
    match = SCHOOL_YEAR_PATTERN.match(str(value or ""))
    if not match:
        return False
    return int(match.group(2)) == int(match.group(1)) + 1


def get_current_school_year(today: Optional[date] = None) -> str:
    """School year containing `today`, e.g. 2025/2026 for 2025-10-01."""
    today = today or date.today()
    start = today.year if today.month >= SCHOOL_YEAR_START_MONTH else today.year - 1
    return f"{start}/{start + 1}"


def configured_school_year(today: Optional[date] = None) -> str:
    """
    DEFAULT_SCHOOL_YEAR from the environment, or the current school year when
    it is unset or malformed.
    """
    raw = (os.getenv("DEFAULT_SCHOOL_YEAR") or "").strip()
    if raw and not is_valid_school_year(raw):
        logger.warning("Ignoring invalid DEFAULT_SCHOOL_YEAR '%s', expected e.g. 2025/2026", raw)
        raw = ""
    return raw or get_current_school_year(today)


def normalize_student_count(value) -> int:
    """
    Coerce form input to a student count.
    Blank values become 0; numeric strings are parsed; anything else is
    returned unchanged so validation can reject it.
    """
    if value is None:
        return 0
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0
        try:
            return int(stripped)
        except ValueError:
            try:
                as_float = float(stripped)
            except ValueError:
                return value
            return int(as_float) if as_float.is_integer() else as_float
    return value


# ── Source records ──────────────────────────────────────────────────

class RecordModel(BaseModel):
    """Base for all records: camelCase aliases, extra keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )


class School(RecordModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    school_types: List[str] = Field(default_factory=list, alias="type")
    address: str = ""
    city: str = ""
    postal_code: str = ""
    municipality: str = ""
    email: str = ""
    created_at: str = ""
    updated_at: Optional[str] = None


class Program(RecordModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    code: Optional[str] = None
    school_types: List[str] = Field(default_factory=list)
    program_type: ProgramType = "programowy"
    description: str = ""


class Contact(RecordModel):
    id: str = Field(..., min_length=1)
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    created_at: str = ""
    updated_at: Optional[str] = None
    user_id: str = ""


class _ParticipationFields(RecordModel):
    """Validators shared by stored records and create payloads."""

    @field_validator("school_year", check_fields=False)
    @classmethod
    def _check_school_year(cls, value):
        if value is not None and not is_valid_school_year(value):
            raise ValueError(f"school year must look like 2025/2026, got '{value}'")
        return value

    @field_validator("student_count", mode="before", check_fields=False)
    @classmethod
    def _coerce_student_count(cls, value):
        return normalize_student_count(value)


class ParticipationRecord(_ParticipationFields):
    """One fact: this school ran this program in this school year."""

    id: str = Field(..., min_length=1)
    school_id: str = Field(..., min_length=1)
    program_id: str = Field(..., min_length=1)
    coordinator_id: str = Field(..., min_length=1)
    previous_coordinator_id: Optional[str] = None
    school_year: str
    student_count: int = Field(0, ge=0, le=MAX_STUDENT_COUNT)
    notes: str = Field("", max_length=NOTES_MAX_LENGTH)
    report_submitted: bool = False
    created_at: str
    updated_at: Optional[str] = None
    user_id: str = Field(..., min_length=1)


class ParticipationCreate(_ParticipationFields):
    school_id: str = Field(..., min_length=1)
    program_id: str = Field(..., min_length=1)
    coordinator_id: str = Field(..., min_length=1)
    previous_coordinator_id: Optional[str] = None
    school_year: str
    student_count: int = Field(0, ge=0, le=MAX_STUDENT_COUNT)
    notes: str = Field("", max_length=NOTES_MAX_LENGTH)
    report_submitted: bool = False


class ParticipationUpdate(_ParticipationFields):
    school_id: Optional[str] = Field(None, min_length=1)
    program_id: Optional[str] = Field(None, min_length=1)
    coordinator_id: Optional[str] = Field(None, min_length=1)
    previous_coordinator_id: Optional[str] = None
    school_year: Optional[str] = None
    student_count: Optional[int] = Field(None, ge=0, le=MAX_STUDENT_COUNT)
    notes: Optional[str] = Field(None, max_length=NOTES_MAX_LENGTH)
    report_submitted: Optional[bool] = None


# ── Derived aggregates ──────────────────────────────────────────────

class DerivedModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class SchoolParticipationInfo(DerivedModel):
    school_id: str
    school_name: str
    participating: List[Program]
    not_participating: List[Program]


class ProgramStatsItem(DerivedModel):
    program_id: str
    program_name: str
    eligible: int
    participating: int
    not_participating: int


class GeneralStats(DerivedModel):
    total_schools: int = 0
    non_participating_count: int = 0
    schools_with_gaps: int = 0
    total_participations: int = 0
    total_missing_participations: int = 0


class ProgramWithCount(DerivedModel):
    program: Program
    participation_count: int


class ProgramParticipationSummary(DerivedModel):
    program_id: str
    program_name: str
    school_count: int
    total_students: int
    school_years: List[str]


class MappedParticipation(DerivedModel):
    record: ParticipationRecord
    school_name: str
    school_email: Optional[str] = None
    program_name: str
    coordinator_name: str
    coordinator_email: Optional[str] = None
    coordinator_phone: Optional[str] = None


def to_jsonable(obj):
    """Recursively dump models to JSON-safe Python types (snake_case keys)."""
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj
