"""
report_builder.py — Excel export of participation data and statistics.

Workbook sheets:
- Participations: one row per record with school, program and coordinator names
- School gaps: participating / missing programs per school
- Program statistics: eligible, participating and missing school counts
- Summary: fleet-wide counts
"""

import logging
from datetime import datetime
from typing import Dict, List, Sequence

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils.dataframe import dataframe_to_rows

from core.filters import REPORT_SUBMITTED_LABELS
from core.models import (
    GeneralStats,
    MappedParticipation,
    ProgramStatsItem,
    SchoolParticipationInfo,
)

logger = logging.getLogger(__name__)

BRAND_DARK = "1a1a2e"

# Participation-rate thresholds for row colouring
RATE_GOOD = 0.75
RATE_FAIR = 0.4


def participations_frame(mapped: Sequence[MappedParticipation]) -> pd.DataFrame:
    rows = [
        {
            "Szkoła": m.school_name,
            "E-mail szkoły": m.school_email or "",
            "Program": m.program_name,
            "Koordynator": m.coordinator_name,
            "E-mail koordynatora": m.coordinator_email or "",
            "Telefon koordynatora": m.coordinator_phone or "",
            "Rok szkolny": m.record.school_year,
            "Liczba uczniów": m.record.student_count,
            "Sprawozdanie": REPORT_SUBMITTED_LABELS[bool(m.record.report_submitted)],
            "Notatki": m.record.notes,
            "Utworzono": m.record.created_at,
        }
        for m in mapped
    ]
    return pd.DataFrame(rows, columns=[
        "Szkoła", "E-mail szkoły", "Program", "Koordynator", "E-mail koordynatora",
        "Telefon koordynatora", "Rok szkolny", "Liczba uczniów", "Sprawozdanie",
        "Notatki", "Utworzono",
    ])


def school_gaps_frame(schools_info: Sequence[SchoolParticipationInfo]) -> pd.DataFrame:
    rows = [
        {
            "Szkoła": info.school_name,
            "Uczestniczy": ", ".join(p.name for p in info.participating),
            "Brakujące programy": ", ".join(p.name for p in info.not_participating),
            "Liczba brakujących": len(info.not_participating),
        }
        for info in schools_info
    ]
    return pd.DataFrame(rows, columns=["Szkoła", "Uczestniczy", "Brakujące programy", "Liczba brakujących"])


def program_stats_frame(program_stats: Dict[str, ProgramStatsItem]) -> pd.DataFrame:
    rows = [
        {
            "Program": item.program_name,
            "Uprawnione szkoły": item.eligible,
            "Uczestniczące": item.participating,
            "Nieuczestniczące": item.not_participating,
            "Odsetek uczestnictwa": round(item.participating / item.eligible * 100, 1),
        }
        for item in program_stats.values()
    ]
    return pd.DataFrame(rows, columns=[
        "Program", "Uprawnione szkoły", "Uczestniczące", "Nieuczestniczące", "Odsetek uczestnictwa",
    ])


def summary_rows(general_stats: GeneralStats) -> List[List]:
    return [
        ["Wskaźnik", "Wartość"],
        ["Liczba wszystkich szkół", general_stats.total_schools],
        ["Szkoły bez żadnego programu", general_stats.non_participating_count],
        ["Szkoły z brakującymi programami", general_stats.schools_with_gaps],
        ["Łączna liczba uczestnictw", general_stats.total_participations],
        ["Łączna liczba brakujących uczestnictw", general_stats.total_missing_participations],
        ["Wygenerowano", datetime.now().strftime("%Y-%m-%d %H:%M")],
    ]


def generate_excel_export(
    output_path: str,
    participations: Sequence[MappedParticipation],
    schools_info: Sequence[SchoolParticipationInfo],
    program_stats: Dict[str, ProgramStatsItem],
    general_stats: GeneralStats,
):
    """Write participations and statistics to a formatted Excel workbook."""
    header_font = Font(bold=True, color="FFFFFF", size=11)
    header_fill = PatternFill(start_color=BRAND_DARK, end_color=BRAND_DARK, fill_type="solid")
    red_fill = PatternFill(start_color="fadbd8", end_color="fadbd8", fill_type="solid")
    green_fill = PatternFill(start_color="d5f5e3", end_color="d5f5e3", fill_type="solid")
    yellow_fill = PatternFill(start_color="fef9e7", end_color="fef9e7", fill_type="solid")
    thin_border = Border(
        left=Side(style="thin"), right=Side(style="thin"),
        top=Side(style="thin"), bottom=Side(style="thin"),
    )

    def _style_sheet(ws):
        """Apply formatting to a worksheet."""
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")
            cell.border = thin_border

        for row in ws.iter_rows(min_row=2, max_row=ws.max_row):
            for cell in row:
                cell.border = thin_border
                cell.alignment = Alignment(horizontal="left", wrap_text=True)

        ws.freeze_panes = "A2"

        for col_cells in ws.columns:
            max_len = max(len(str(cell.value or "")) for cell in col_cells)
            ws.column_dimensions[col_cells[0].column_letter].width = min(max_len + 4, 50)

    def _append_frame(ws, df: pd.DataFrame):
        for row in dataframe_to_rows(df, index=False, header=True):
            ws.append(row)

    wb = Workbook()

    # ── Sheet 1: Participations ─────────────────────────────────────
    ws_part = wb.active
    ws_part.title = "Uczestnictwa"
    ws_part.sheet_properties.tabColor = BRAND_DARK
    _append_frame(ws_part, participations_frame(participations))
    _style_sheet(ws_part)

    # ── Sheet 2: School gaps ────────────────────────────────────────
    ws_gaps = wb.create_sheet(title="Braki w szkołach")
    ws_gaps.sheet_properties.tabColor = "e94560"
    _append_frame(ws_gaps, school_gaps_frame(schools_info))
    _style_sheet(ws_gaps)
    for row in ws_gaps.iter_rows(min_row=2, max_row=ws_gaps.max_row):
        missing = row[3].value or 0
        fill = green_fill if missing == 0 else red_fill
        for cell in row:
            cell.fill = fill

    # ── Sheet 3: Program statistics ─────────────────────────────────
    ws_prog = wb.create_sheet(title="Statystyki programów")
    ws_prog.sheet_properties.tabColor = "0f3460"
    _append_frame(ws_prog, program_stats_frame(program_stats))
    _style_sheet(ws_prog)
    for row in ws_prog.iter_rows(min_row=2, max_row=ws_prog.max_row):
        rate = (row[4].value or 0) / 100
        fill = green_fill if rate >= RATE_GOOD else (yellow_fill if rate >= RATE_FAIR else red_fill)
        for cell in row:
            cell.fill = fill

    # ── Sheet 4: Summary ────────────────────────────────────────────
    ws_sum = wb.create_sheet(title="Podsumowanie")
    ws_sum.sheet_properties.tabColor = "2ecc71"
    for row in summary_rows(general_stats):
        ws_sum.append(row)
    _style_sheet(ws_sum)

    wb.save(output_path)
    logger.info(
        "Excel export written to %s (%d participations, %d schools, %d programs)",
        output_path, len(participations), len(schools_info), len(program_stats),
    )
