"""
parser.py — CSV, Excel, ODS ingestion of schools, programs, contacts and
participation records.

Supports:
- CSV files
- Excel (.xlsx, .xls), single and multi-sheet
- ODS (OpenDocument Spreadsheet)
- Auto-detect which collection a sheet holds
- Fuzzy column name mapping (English and Polish headers)
- Row validation into typed records, with an issue list instead of errors
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Type

import pandas as pd
from pydantic import ValidationError

from core.models import Contact, ParticipationRecord, Program, RecordModel, School

logger = logging.getLogger(__name__)

SAMPLE_DATA_DIR = Path(__file__).parent.parent / "sample_data"

ENTITIES = ("schools", "programs", "contacts", "participations")

ENTITY_MODELS: Dict[str, Type[RecordModel]] = {
    "schools": School,
    "programs": Program,
    "contacts": Contact,
    "participations": ParticipationRecord,
}

# Common column name variations for auto-mapping, per collection
COLUMN_ALIASES: Dict[str, Dict[str, List[str]]] = {
    "schools": {
        "id": ["id", "school_id", "schoolid", "school id", "id_szkoly"],
        "name": ["name", "school_name", "school name", "school", "nazwa", "szkoła", "szkola"],
        "school_types": ["school_types", "school types", "type", "types", "typ", "typ szkoły"],
        "address": ["address", "street", "adres", "ulica"],
        "city": ["city", "town", "miasto", "miejscowość"],
        "postal_code": ["postal_code", "postal code", "postcode", "zip", "kod pocztowy"],
        "municipality": ["municipality", "gmina", "commune"],
        "email": ["email", "e-mail", "mail"],
        "created_at": ["created_at", "created", "createdat"],
    },
    "programs": {
        "id": ["id", "program_id", "programid", "program id"],
        "name": ["name", "program_name", "program name", "program", "nazwa"],
        "code": ["code", "program_code", "kod"],
        "school_types": ["school_types", "school types", "schooltypes", "typy szkół"],
        "program_type": ["program_type", "program type", "programtype", "typ programu"],
        "description": ["description", "opis"],
    },
    "contacts": {
        "id": ["id", "contact_id", "coordinator_id", "contactid"],
        "first_name": ["first_name", "first name", "firstname", "imię", "imie"],
        "last_name": ["last_name", "last name", "lastname", "surname", "nazwisko"],
        "email": ["email", "e-mail", "mail"],
        "phone": ["phone", "telephone", "telefon", "tel"],
        "created_at": ["created_at", "created", "createdat"],
        "user_id": ["user_id", "userid", "owner"],
    },
    "participations": {
        "id": ["id", "participation_id", "record_id"],
        "school_id": ["school_id", "schoolid", "school id", "id_szkoly"],
        "program_id": ["program_id", "programid", "program id", "id_programu"],
        "coordinator_id": ["coordinator_id", "coordinatorid", "coordinator", "koordynator"],
        "previous_coordinator_id": [
            "previous_coordinator_id", "previouscoordinatorid", "previous coordinator",
        ],
        "school_year": ["school_year", "schoolyear", "school year", "academic_year", "rok szkolny"],
        "student_count": [
            "student_count", "studentcount", "students", "student count",
            "liczba uczniów", "liczba_uczniow",
        ],
        "notes": ["notes", "note", "comments", "notatki", "uwagi"],
        "report_submitted": ["report_submitted", "reportsubmitted", "report", "sprawozdanie"],
        "created_at": ["created_at", "created", "createdat"],
        "user_id": ["user_id", "userid", "owner"],
    },
}

# Columns that only appear in one collection, used to detect the entity.
ENTITY_MARKERS: Dict[str, List[str]] = {
    "participations": ["school_id", "program_id", "school_year", "student_count"],
    "contacts": ["first_name", "last_name", "phone"],
    "programs": ["program_type", "code", "description"],
    "schools": ["address", "city", "postal_code", "municipality"],
}

LIST_SEPARATORS = re.compile(r"[;,|]")
TRUE_VALUES = {"true", "1", "yes", "y", "tak", "t", "x"}


def parse_upload(file_path: str) -> Dict[str, pd.DataFrame]:
    """
    Parse an uploaded file and return a dict of {sheet_name: DataFrame}.
    For CSV files, returns {"Sheet1": df}.
    """
    path = Path(file_path)
    ext = path.suffix.lower()

    if ext == ".csv":
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
        return {"Sheet1": df}

    elif ext in (".xlsx", ".xls", ".ods"):
        engine = {".xlsx": "openpyxl", ".xls": "xlrd", ".ods": "odf"}[ext]
        xls = pd.ExcelFile(file_path, engine=engine)
        sheets = {}
        for sheet_name in xls.sheet_names:
            df = pd.read_excel(xls, sheet_name=sheet_name, dtype=str, keep_default_na=False)
            # Skip empty sheets
            if not df.empty and len(df.columns) > 1:
                sheets[sheet_name] = df
        if not sheets:
            raise ValueError(f"No valid sheets found in the {ext.lstrip('.').upper()} file.")
        return sheets

    else:
        raise ValueError(f"Unsupported file type: {ext}")


def _normalized_columns(df: pd.DataFrame) -> Dict[str, str]:
    return {str(c).lower().strip(): c for c in df.columns}


def suggest_column_mapping(df: pd.DataFrame, entity: str) -> Dict[str, Optional[str]]:
    """
    Suggest a mapping from expected field names to actual column names.
    Returns: { expected_field: actual_column_name_or_None }
    """
    if entity not in COLUMN_ALIASES:
        raise ValueError(f"Unknown entity '{entity}'. Expected one of: {list(ENTITIES)}")

    cols_lower = _normalized_columns(df)
    mapping: Dict[str, Optional[str]] = {}
    for field, aliases in COLUMN_ALIASES[entity].items():
        matched = None
        for alias in aliases:
            if alias in cols_lower:
                matched = cols_lower[alias]
                break
        mapping[field] = matched
    return mapping


def detect_entity(df: pd.DataFrame) -> Optional[str]:
    """
    Guess which collection a sheet holds from its marker columns.
    Returns None when no collection has a marker column present.
    """
    best, best_score = None, 0
    for entity, markers in ENTITY_MARKERS.items():
        mapping = suggest_column_mapping(df, entity)
        score = sum(1 for m in markers if mapping.get(m))
        if score > best_score:
            best, best_score = entity, score
    return best


def _split_list(value: str) -> List[str]:
    return [part.strip() for part in LIST_SEPARATORS.split(value) if part.strip()]


def _row_payload(row: pd.Series, mapping: Dict[str, Optional[str]]) -> dict:
    payload = {}
    for field, column in mapping.items():
        if not column or column not in row.index:
            continue
        value = row[column]
        if pd.isna(value):
            continue
        value = str(value).strip()
        if value == "":
            continue
        if field == "school_types":
            payload[field] = _split_list(value)
        elif field == "report_submitted":
            payload[field] = value.lower() in TRUE_VALUES
        else:
            payload[field] = value
    return payload


def records_from_dataframe(
    df: pd.DataFrame,
    entity: str,
    mapping: Optional[Dict[str, Optional[str]]] = None,
) -> Tuple[List[RecordModel], List[Dict]]:
    """
    Validate every row into a typed record.
    Returns (records, issues); rows that fail validation are reported in
    `issues` and left out of `records`.
    """
    model = ENTITY_MODELS.get(entity)
    if model is None:
        raise ValueError(f"Unknown entity '{entity}'. Expected one of: {list(ENTITIES)}")
    mapping = mapping or suggest_column_mapping(df, entity)

    records: List[RecordModel] = []
    issues: List[Dict] = []
    for position, (_, row) in enumerate(df.iterrows(), start=2):
        payload = _row_payload(row, mapping)
        if not payload:
            continue
        try:
            records.append(model.model_validate(payload))
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            issues.append({
                "type": "invalid_row",
                "severity": "warning",
                "row": position,
                "message": f"Row {position}: invalid {', '.join(fields)}",
                "errors": [err["msg"] for err in e.errors()],
            })

    if issues:
        logger.warning("%d invalid %s row(s) skipped", len(issues), entity)
    return records, issues


def validate_data(df: pd.DataFrame, entity: str) -> List[Dict]:
    """
    Validate the parsed sheet structure and return a list of issues found.
    """
    issues = []
    mapping = suggest_column_mapping(df, entity)

    required_fields = [
        name for name, info in ENTITY_MODELS[entity].model_fields.items() if info.is_required()
    ]
    for field in required_fields:
        if mapping.get(field) is None:
            issues.append({
                "type": "missing_column",
                "severity": "critical",
                "message": f"Required column '{field}' not found. "
                           f"Expected one of: {COLUMN_ALIASES[entity].get(field, [])}",
            })

    # Check for empty dataframe
    if len(df) == 0:
        issues.append({
            "type": "empty_data",
            "severity": "critical",
            "message": "The uploaded file contains no data rows.",
        })

    id_col = mapping.get("id")
    if id_col and id_col in df.columns:
        ids = df[id_col].astype(str).str.strip()
        dupe_count = int(ids[ids != ""].duplicated(keep=False).sum())
        if dupe_count > 0:
            issues.append({
                "type": "duplicates",
                "severity": "warning",
                "message": f"{dupe_count} rows share an id with another row.",
            })

    if entity == "participations":
        count_col = mapping.get("student_count")
        if count_col and count_col in df.columns:
            raw = df[count_col].astype(str).str.strip()
            counts = pd.to_numeric(raw, errors="coerce")
            invalid_count = int((counts.isna() & (raw != "")).sum())
            if invalid_count > 0:
                issues.append({
                    "type": "invalid_student_counts",
                    "severity": "warning",
                    "message": f"{invalid_count} student counts could not be parsed as numbers.",
                })
            if (counts.dropna() < 0).any():
                issues.append({
                    "type": "negative_student_counts",
                    "severity": "warning",
                    "message": "Some student counts are negative, likely data entry errors.",
                })

    return issues
