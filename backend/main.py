"""
ProgramReach — School Program Participation Tracker
FastAPI backend entry point.
"""

import logging
import os

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load environment before route modules read it
load_dotenv()

from core.models import MAX_STUDENT_COUNT, configured_school_year  # noqa: E402
from routes.analyze import router as analyze_router  # noqa: E402
from routes.participations import router as participations_router  # noqa: E402
from routes.reports import router as reports_router  # noqa: E402
from routes.upload import router as upload_router  # noqa: E402

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("programreach")

DEFAULT_SCHOOL_YEAR = configured_school_year()
# Comma-separated allowed origins, e.g. http://localhost:5173,https://app.example.com
raw_origins = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
ALLOWED_ORIGINS = [o.strip() for o in raw_origins.split(",") if o.strip()]

app = FastAPI(
    title="ProgramReach API",
    description=(
        "School program participation tracking: eligibility, participation "
        "and gap statistics across schools and educational programs."
    ),
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register route modules
app.include_router(upload_router, prefix="/api/upload", tags=["Upload"])
app.include_router(analyze_router, prefix="/api/analyze", tags=["Statistics"])
app.include_router(participations_router, prefix="/api/participations", tags=["Participations"])
app.include_router(reports_router, prefix="/api/reports", tags=["Reports"])

logger.info("ProgramReach API ready (default school year %s)", DEFAULT_SCHOOL_YEAR)


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "default_school_year": DEFAULT_SCHOOL_YEAR,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "default_school_year": DEFAULT_SCHOOL_YEAR,
        "max_student_count": MAX_STUDENT_COUNT,
    }
