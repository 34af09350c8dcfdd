"""
catalog.py — Static program catalog.

Programs are usually maintained as configuration rather than uploaded data.
The catalog is loaded once and passed explicitly to the statistics engine.
"""

import json
import logging
import os
from collections import Counter
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from core.models import Program

logger = logging.getLogger(__name__)

SAMPLE_DATA_DIR = Path(__file__).resolve().parent.parent / "sample_data"
DEFAULT_CATALOG_PATH = SAMPLE_DATA_DIR / "programs.json"


def catalog_path() -> Path:
    """Catalog location from PROGRAM_CATALOG_PATH, relative to backend/."""
    raw = os.getenv("PROGRAM_CATALOG_PATH")
    if not raw:
        return DEFAULT_CATALOG_PATH
    path = Path(raw)
    if not path.is_absolute():
        path = SAMPLE_DATA_DIR.parent / path
    return path


def find_duplicate_program_names(programs: Iterable[Program]) -> List[str]:
    counts = Counter(p.name for p in programs)
    return sorted(name for name, n in counts.items() if n > 1)


def validate_program_code(
    code: Optional[str],
    programs: Iterable[Program],
    exclude_id: Optional[str] = None,
) -> bool:
    """True when no other program already uses `code` (case-insensitive)."""
    if not code:
        return True
    wanted = code.strip().lower()
    for program in programs:
        if exclude_id is not None and program.id == exclude_id:
            continue
        if program.code and program.code.strip().lower() == wanted:
            return False
    return True


def load_program_catalog(path: Optional[str] = None) -> Tuple[Program, ...]:
    """
    Load and validate the program catalog from a JSON list.

    Raises ValueError on duplicate ids or codes. Duplicate names are only
    logged: the engine keys by id, names matter for display only.
    """
    catalog_file = Path(path) if path else catalog_path()
    with open(catalog_file, encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise ValueError(f"Program catalog must be a JSON list: {catalog_file}")

    programs: List[Program] = []
    seen_ids = set()
    for entry in raw:
        program = Program.model_validate(entry)
        if program.id in seen_ids:
            raise ValueError(f"Duplicate program id in catalog: {program.id}")
        if not validate_program_code(program.code, programs):
            raise ValueError(f"Duplicate program code in catalog: {program.code}")
        seen_ids.add(program.id)
        programs.append(program)

    duplicates = find_duplicate_program_names(programs)
    if duplicates:
        logger.warning("Program catalog has duplicate names: %s", ", ".join(duplicates))

    logger.info("Loaded %d programs from %s", len(programs), catalog_file)
    return tuple(programs)
