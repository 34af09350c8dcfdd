"""
Tests for core/parser.py — CSV/Excel parsing, collection detection, column
mapping, row validation into records.
"""

import os
import sys
import pytest
import pandas as pd

# Ensure backend/ is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.models import Contact, ParticipationRecord, School
from core.parser import (
    detect_entity,
    parse_upload,
    records_from_dataframe,
    suggest_column_mapping,
    validate_data,
)

SAMPLE_DIR = os.path.join(os.path.dirname(__file__), "..", "sample_data")
SCHOOLS_CSV = os.path.join(SAMPLE_DIR, "schools.csv")
CONTACTS_CSV = os.path.join(SAMPLE_DIR, "contacts.csv")
PARTICIPATIONS_CSV = os.path.join(SAMPLE_DIR, "participations.csv")


def _first_sheet(path):
    return list(parse_upload(path).values())[0]


def _participations_df(**overrides):
    data = {
        "id": ["r1", "r2"],
        "school_id": ["s1", "s2"],
        "program_id": ["p1", "p1"],
        "coordinator_id": ["c1", "c1"],
        "school_year": ["2025/2026", "2025/2026"],
        "student_count": ["10", "20"],
        "created_at": ["2025-09-01", "2025-09-01"],
        "user_id": ["u1", "u1"],
    }
    data.update(overrides)
    return pd.DataFrame(data)


class TestParseUpload:
    """Tests for the parse_upload function."""

    def test_csv_parse_returns_single_sheet(self):
        result = parse_upload(SCHOOLS_CSV)
        assert list(result.keys()) == ["Sheet1"]
        assert isinstance(result["Sheet1"], pd.DataFrame)

    def test_csv_values_stay_text(self):
        df = _first_sheet(CONTACTS_CSV)
        assert df.loc[0, "phone"] == "600100200"
        assert df.loc[2, "phone"] == ""

    def test_excel_returns_every_sheet(self, tmp_path):
        path = tmp_path / "dataset.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            _first_sheet(SCHOOLS_CSV).to_excel(writer, sheet_name="schools", index=False)
            _participations_df().to_excel(writer, sheet_name="participations", index=False)
            pd.DataFrame({"note": ["x"]}).to_excel(writer, sheet_name="notes", index=False)

        result = parse_upload(str(path))
        assert list(result.keys()) == ["schools", "participations"]
        assert len(result["schools"]) == 6

    def test_unsupported_extension_raises(self, tmp_path):
        path = tmp_path / "data.txt"
        path.write_text("id,name\n")
        with pytest.raises(ValueError, match="Unsupported"):
            parse_upload(str(path))

    def test_invalid_file_raises(self):
        with pytest.raises(Exception):
            parse_upload("nonexistent_file.csv")


class TestDetectEntity:
    """Tests for collection detection from marker columns."""

    @pytest.mark.parametrize("path, expected", [
        (SCHOOLS_CSV, "schools"),
        (CONTACTS_CSV, "contacts"),
        (PARTICIPATIONS_CSV, "participations"),
    ])
    def test_sample_files(self, path, expected):
        assert detect_entity(_first_sheet(path)) == expected

    def test_polish_headers(self):
        df = pd.DataFrame({"Imię": ["Anna"], "Nazwisko": ["Kowalska"], "Telefon": ["600"]})
        assert detect_entity(df) == "contacts"

    def test_unknown_sheet(self):
        df = pd.DataFrame({"foo": [1], "bar": [2]})
        assert detect_entity(df) is None


class TestSuggestColumnMapping:
    """Tests for automatic column mapping suggestion."""

    def test_maps_school_types_from_type_column(self):
        mapping = suggest_column_mapping(_first_sheet(SCHOOLS_CSV), "schools")
        assert mapping["school_types"] == "type"
        assert mapping["postal_code"] == "postal_code"

    def test_case_and_whitespace_insensitive(self):
        df = pd.DataFrame({" Rok Szkolny ": ["2025/2026"], "Liczba uczniów": ["5"]})
        mapping = suggest_column_mapping(df, "participations")
        assert mapping["school_year"] == " Rok Szkolny "
        assert mapping["student_count"] == "Liczba uczniów"

    def test_unmatched_fields_are_none(self):
        mapping = suggest_column_mapping(pd.DataFrame({"id": ["x"]}), "contacts")
        assert mapping["id"] == "id"
        assert mapping["phone"] is None

    def test_unknown_entity_raises(self):
        with pytest.raises(ValueError):
            suggest_column_mapping(pd.DataFrame({"id": ["x"]}), "students")


class TestRecordsFromDataframe:
    """Tests for row validation into typed records."""

    def test_sample_schools(self):
        records, issues = records_from_dataframe(_first_sheet(SCHOOLS_CSV), "schools")
        assert issues == []
        assert len(records) == 6
        assert all(isinstance(r, School) for r in records)
        assert records[2].school_types == ["Szkoła podstawowa", "Oddział przedszkolny"]

    def test_sample_contacts_blank_phone(self):
        records, _ = records_from_dataframe(_first_sheet(CONTACTS_CSV), "contacts")
        assert all(isinstance(r, Contact) for r in records)
        assert records[2].phone is None

    def test_sample_participations(self):
        records, issues = records_from_dataframe(_first_sheet(PARTICIPATIONS_CSV), "participations")
        assert issues == []
        assert len(records) == 6
        assert all(isinstance(r, ParticipationRecord) for r in records)
        assert records[0].student_count == 50
        assert records[0].report_submitted is True
        assert records[1].report_submitted is False
        assert records[1].notes == ""

    def test_invalid_rows_become_issues(self):
        df = _participations_df(school_year=["2025/2026", "2025-2026"])
        records, issues = records_from_dataframe(df, "participations")
        assert [r.id for r in records] == ["r1"]
        assert len(issues) == 1
        assert issues[0]["type"] == "invalid_row"
        assert issues[0]["row"] == 3
        assert "year" in issues[0]["message"].lower()

    def test_blank_rows_are_skipped(self):
        df = _participations_df()
        df.loc[len(df)] = [""] * len(df.columns)
        records, issues = records_from_dataframe(df, "participations")
        assert len(records) == 2
        assert issues == []


class TestValidateData:
    """Tests for structural validation of a sheet."""

    def test_clean_sheet_has_no_issues(self):
        assert validate_data(_participations_df(), "participations") == []

    def test_missing_required_column(self):
        df = _participations_df().drop(columns=["coordinator_id"])
        issues = validate_data(df, "participations")
        assert any(i["type"] == "missing_column" and "coordinator_id" in i["message"] for i in issues)

    def test_empty_sheet(self):
        df = _participations_df().iloc[0:0]
        issues = validate_data(df, "participations")
        assert any(i["type"] == "empty_data" for i in issues)

    def test_duplicate_ids(self):
        issues = validate_data(_participations_df(id=["r1", "r1"]), "participations")
        assert any(i["type"] == "duplicates" for i in issues)

    def test_bad_student_counts(self):
        issues = validate_data(_participations_df(student_count=["abc", "-3"]), "participations")
        types = {i["type"] for i in issues}
        assert "invalid_student_counts" in types
        assert "negative_student_counts" in types
