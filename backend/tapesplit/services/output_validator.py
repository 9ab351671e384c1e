import logging
from pathlib import Path

from ..models.tracks import TracksValidation

logger = logging.getLogger(__name__)

TRACKS_DIR_NAME = "tracks"
MIN_TRACK_DURATION = 10.0
WORK_DIR_NAME = ".work"
TRIMMED_PREFIX = "_trimmed_"


def tracks_dir_for(item_dir) -> Path:
    return Path(item_dir) / TRACKS_DIR_NAME


def validate_tracks_output(
    item_dir,
    backend,
    extension: str = "mp3",
    min_duration: float = MIN_TRACK_DURATION,
) -> TracksValidation:
    """
    Check whether an item directory already holds a usable tracks/ result.

    Checks stop at the first failure: the directory must exist, hold at least one
    file with the expected extension, and every such file must probe to at least
    min_duration seconds. A single probe error invalidates the whole directory.
    Intro-trimmed working copies are never counted as tracks.
    """
    tracks_dir = tracks_dir_for(item_dir)

    if not tracks_dir.is_dir():
        return TracksValidation(valid=False, reason="tracks/ directory not found")

    suffix = f".{extension.lower().lstrip('.')}"
    audio_files = sorted(
        entry
        for entry in tracks_dir.iterdir()
        if entry.is_file() and entry.name.lower().endswith(suffix) and not entry.name.startswith(TRIMMED_PREFIX)
    )

    if not audio_files:
        return TracksValidation(valid=False, reason=f"no {suffix.lstrip('.').upper()} files in tracks/")

    for audio_file in audio_files:
        try:
            duration = backend.probe_duration(str(audio_file))
        except Exception as e:
            logger.debug(f"[validate] probe failed for {audio_file}: {e}")
            return TracksValidation(valid=False, reason=f"failed to probe {audio_file.name}: {e}")

        if duration < min_duration:
            return TracksValidation(
                valid=False,
                reason=f"{audio_file.name} is too short ({duration:.1f}s < {min_duration:g}s)",
            )

    return TracksValidation(valid=True, count=len(audio_files))
