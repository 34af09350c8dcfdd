"""
Tests for core/report_builder.py — Excel export of participations and statistics.
"""

import os
import sys
import tempfile
import pytest
from openpyxl import load_workbook

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.catalog import load_program_catalog
from core.filters import map_participations_for_display
from core.parser import parse_upload, records_from_dataframe
from core.participation import compute_participation_overview, create_lookup_maps
from core.report_builder import (
    generate_excel_export,
    participations_frame,
    program_stats_frame,
    school_gaps_frame,
    summary_rows,
)

SAMPLE_DIR = os.path.join(os.path.dirname(__file__), "..", "sample_data")


def _load(name, entity):
    df = list(parse_upload(os.path.join(SAMPLE_DIR, name)).values())[0]
    records, _ = records_from_dataframe(df, entity)
    return records


@pytest.fixture(scope="module")
def dataset():
    schools = _load("schools.csv", "schools")
    contacts = _load("contacts.csv", "contacts")
    participations = _load("participations.csv", "participations")
    programs = list(load_program_catalog(os.path.join(SAMPLE_DIR, "programs.json")))
    maps = create_lookup_maps(schools, contacts, programs)
    return {
        "mapped": map_participations_for_display(
            participations, maps["schools_map"], maps["contacts_map"], maps["programs_map"]
        ),
        "overview": compute_participation_overview(schools, programs, participations),
    }


@pytest.fixture
def workbook_path(dataset):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = os.path.join(tmpdir, "participations.xlsx")
        generate_excel_export(
            output_path=path,
            participations=dataset["mapped"],
            schools_info=dataset["overview"]["schools_info"],
            program_stats=dataset["overview"]["program_stats"],
            general_stats=dataset["overview"]["general_stats"],
        )
        yield path


class TestFrames:
    """Tests for the tabular views behind each sheet."""

    def test_participations_frame(self, dataset):
        df = participations_frame(dataset["mapped"])
        assert len(df) == 6
        assert df.loc[0, "Szkoła"] == "Szkoła Podstawowa Nr 1"
        assert df.loc[0, "Koordynator"] == "Anna Kowalska"
        assert df.loc[0, "Sprawozdanie"] == "tak"

    def test_empty_participations_keep_columns(self):
        df = participations_frame([])
        assert df.empty
        assert "Rok szkolny" in df.columns

    def test_school_gaps_frame(self, dataset):
        df = school_gaps_frame(dataset["overview"]["schools_info"])
        assert len(df) == 6
        assert df["Liczba brakujących"].sum() == 7

    def test_program_stats_rate(self, dataset):
        df = program_stats_frame(dataset["overview"]["program_stats"]).set_index("Program")
        assert df.loc["Znajdź właściwe rozwiązanie", "Odsetek uczestnictwa"] == 25.0

    def test_summary_rows(self, dataset):
        rows = dict(summary_rows(dataset["overview"]["general_stats"]))
        assert rows["Liczba wszystkich szkół"] == 6
        assert rows["Szkoły bez żadnego programu"] == 1
        assert rows["Szkoły z brakującymi programami"] == 4
        assert rows["Łączna liczba brakujących uczestnictw"] == 7


class TestGenerateExcelExport:
    """Test Excel workbook generation."""

    def test_creates_file(self, workbook_path):
        assert os.path.exists(workbook_path)
        assert os.path.getsize(workbook_path) > 0

    def test_sheets(self, workbook_path):
        wb = load_workbook(workbook_path)
        assert wb.sheetnames == ["Uczestnictwa", "Braki w szkołach", "Statystyki programów", "Podsumowanie"]

    def test_participation_rows(self, workbook_path):
        ws = load_workbook(workbook_path)["Uczestnictwa"]
        assert ws.max_row == 7
        assert ws.cell(row=1, column=1).value == "Szkoła"
        assert ws.freeze_panes == "A2"

    def test_program_rows(self, workbook_path):
        ws = load_workbook(workbook_path)["Statystyki programów"]
        assert ws.max_row == 6

    def test_empty_export(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "empty.xlsx")
            overview = compute_participation_overview([], [], [])
            generate_excel_export(
                output_path=path,
                participations=[],
                schools_info=overview["schools_info"],
                program_stats=overview["program_stats"],
                general_stats=overview["general_stats"],
            )
            ws = load_workbook(path)["Uczestnictwa"]
            assert ws.max_row == 1
