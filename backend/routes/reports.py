"""
Report routes — Excel export of participations and statistics.
"""

import logging
import uuid
from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.filters import ALL, apply_participation_filters, map_participations_for_display
from core.participation import compute_participation_overview, create_lookup_maps
from core.report_builder import generate_excel_export
from routes.analyze import dataset_from_payload

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
REPORTS_DIR = UPLOAD_DIR / "reports"
REPORTS_DIR.mkdir(parents=True, exist_ok=True)


def _safe_unlink(path: str):
    """Delete the generated file once the response has been sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove report file %s: %s", path, e)


@router.post("/excel")
async def excel_export(payload: dict):
    """
    Export participations (optionally narrowed by `school_year`, `program_id`
    and `query`) together with gap and program statistics.
    """
    data = dataset_from_payload(payload)
    maps = create_lookup_maps(data["schools"], data["contacts"], data["programs"])

    filtered = apply_participation_filters(
        data["participations"],
        school_year=payload.get("school_year") or ALL,
        program_id=payload.get("program_id") or ALL,
        query=payload.get("query") or "",
        lookup_maps=maps,
    )
    mapped = map_participations_for_display(
        filtered, maps["schools_map"], maps["contacts_map"], maps["programs_map"]
    )
    overview = compute_participation_overview(data["schools"], data["programs"], data["participations"])

    report_id = str(uuid.uuid4())[:8]
    output_path = REPORTS_DIR / f"participations_{report_id}.xlsx"
    generate_excel_export(
        output_path=str(output_path),
        participations=mapped,
        schools_info=overview["schools_info"],
        program_stats=overview["program_stats"],
        general_stats=overview["general_stats"],
    )

    return FileResponse(
        str(output_path),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"Szkoly_w_Programie_{report_id}.xlsx",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
