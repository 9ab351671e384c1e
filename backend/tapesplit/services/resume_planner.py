import logging
from pathlib import Path

from ..models.enums import ResumeVerdict
from ..models.tracks import ResumeStatus
from .output_validator import validate_tracks_output

logger = logging.getLogger(__name__)

RAW_DIR_NAME = "raw"


def plan_resume(item_dir, backend, extension: str = "mp3") -> ResumeStatus:
    """Decide how much of an item has to be redone, from what is on disk right now"""
    validation = validate_tracks_output(item_dir, backend, extension=extension)

    if validation.valid:
        return ResumeStatus(verdict=ResumeVerdict.SKIP, reason="tracks output valid", validation=validation)

    logger.debug(f"[resume] tracks not reusable for {item_dir}: {validation.reason}")

    if not (Path(item_dir) / RAW_DIR_NAME).exists():
        return ResumeStatus(
            verdict=ResumeVerdict.NEEDS_FULL_PROCESSING,
            reason="needs full processing",
            needs_download=True,
            needs_split=True,
            validation=validation,
        )

    return ResumeStatus(
        verdict=ResumeVerdict.NEEDS_SPLIT_ONLY, reason="needs split", needs_split=True, validation=validation
    )
