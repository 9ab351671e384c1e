import logging
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from ..core.config import CleanupOptions
from ..core.exceptions import TrashCollisionError
from ..models.enums import CleanupLevel
from ..models.tracks import CleanupReport, TrashMove
from .output_validator import validate_tracks_output
from .resume_planner import RAW_DIR_NAME

logger = logging.getLogger(__name__)


def format_bytes(num_bytes: int) -> str:
    """Format a byte count as a short human readable string"""
    if not num_bytes:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(num_bytes)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            break
        value /= 1024
    return f"{round(value, 2):g} {unit}"


def trash_timestamp(now: Optional[datetime] = None) -> str:
    """UTC ISO timestamp with ':' and '.' swapped for '-' so it is a safe directory name"""
    now = now or datetime.now(timezone.utc)
    iso = now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


def get_size(path) -> int:
    """Size of a file, or the recursive sum of file sizes under a directory"""
    path = Path(path)
    if not path.is_dir():
        return path.lstat().st_size

    total = 0
    for dirpath, _, filenames in os.walk(path):
        for filename in filenames:
            total += os.lstat(os.path.join(dirpath, filename)).st_size
    return total


def trash_destination(src_path, trash_root, identifier: str, now: Optional[datetime] = None) -> Path:
    return Path(trash_root) / identifier / trash_timestamp(now) / Path(src_path).name


def move_to_trash(
    src_path,
    trash_root,
    identifier: str,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> Optional[TrashMove]:
    """
    Move a file or directory into <trash_root>/<identifier>/<timestamp>/<basename>.

    Returns None when the source does not exist or in dry-run mode, in which case
    nothing on disk is touched. An existing destination is never overwritten.
    """
    src = Path(src_path)
    if not src.exists():
        logger.info(f"[cleanup] skip (not found): {src}")
        return None

    destination = trash_destination(src, trash_root, identifier, now)

    if dry_run:
        logger.info(f"[cleanup] [DRY-RUN] would move: {src} -> {destination}")
        return None

    if destination.exists():
        raise TrashCollisionError(f"Trash destination already exists: {destination}")

    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(src), str(destination))

    size = get_size(destination)
    logger.info(f"[cleanup] moved to trash: {src.name} ({format_bytes(size)})")
    return TrashMove(source=str(src), destination=str(destination), size_bytes=size)


def purge_trash(trash_path, dry_run: bool = False) -> Tuple[bool, int]:
    """Permanently delete a trash subtree. Returns (purged, bytes_freed)."""
    trash_path = Path(trash_path)
    if not trash_path.exists():
        logger.info(f"[cleanup] trash not found: {trash_path}")
        return False, 0

    size = get_size(trash_path)

    if dry_run:
        logger.info(f"[cleanup] [DRY-RUN] would purge: {trash_path} ({format_bytes(size)})")
        return False, 0

    try:
        shutil.rmtree(trash_path)
    except OSError as e:
        logger.error(f"[cleanup] failed to purge {trash_path}: {e}")
        return False, 0

    logger.info(f"[cleanup] purged trash: {trash_path} (freed {format_bytes(size)})")
    return True, size


def cleanup_candidates(item_dir, level: CleanupLevel) -> List[Path]:
    """Directories that may be reclaimed once tracks/ is confirmed good"""
    # tracks/ is the final output, so every level only ever reclaims raw/.
    raw_dir = Path(item_dir) / RAW_DIR_NAME
    if level in (CleanupLevel.RAW, CleanupLevel.TRACKS, CleanupLevel.ALL) and raw_dir.exists():
        return [raw_dir]
    return []


def maybe_cleanup_item(
    item_dir,
    identifier: str,
    options: CleanupOptions,
    backend,
    trash_root,
    failed: bool = False,
    extension: str = "mp3",
) -> CleanupReport:
    """
    Reclaim intermediate data for an item, but only when the run succeeded and
    tracks/ re-validates; otherwise keep everything and record why.
    """
    report = CleanupReport(enabled=options.cleanup, level=options.cleanup_level)

    if not options.cleanup:
        report.skipped = "cleanup disabled"
        return report

    if failed:
        logger.info("[cleanup] ⚠ skipping cleanup: item processing failed")
        report.skipped = "item failed"
        return report

    if options.dry_run:
        logger.info("[cleanup] [DRY-RUN] mode active")

    logger.info("[cleanup] validating tracks output...")
    validation = validate_tracks_output(item_dir, backend, extension=extension)
    if not validation.valid:
        logger.warning(f"[cleanup] ⚠ kept all files: {validation.reason}")
        report.skipped = validation.reason
        return report

    logger.info(f"[cleanup] ✓ tracks output valid ({validation.count} files)")

    candidates = cleanup_candidates(item_dir, options.cleanup_level)
    if not candidates:
        logger.info(f"[cleanup] nothing to clean (level: {options.cleanup_level.value})")
        report.skipped = "nothing to clean"
        return report

    logger.info(f"[cleanup] level={options.cleanup_level.value}, moving {len(candidates)} directories to trash...")

    for candidate in candidates:
        try:
            moved = move_to_trash(candidate, trash_root, identifier, dry_run=options.dry_run)
        except OSError as e:
            logger.error(f"[cleanup] failed to move {candidate}: {e}")
            report.errors.append(f"{candidate.name}: {e}")
            continue
        if moved:
            report.moved_to_trash.append(candidate.name)
            report.saved_bytes += moved.size_bytes

    if options.purge_trash and report.moved_to_trash and not options.dry_run:
        purged, freed = purge_trash(Path(trash_root) / identifier)
        report.purged = purged
        report.freed_bytes = freed

    if report.saved_bytes > 0:
        logger.info(
            f"[cleanup] ✓ saved {format_bytes(report.saved_bytes)} ({', '.join(report.moved_to_trash)})"
        )

    return report


def progressive_cleanup(
    file_path,
    identifier: str,
    trash_root,
    enabled: bool = False,
    dry_run: bool = False,
    prerequisite_valid: bool = True,
) -> bool:
    """Reclaim one file mid-run, as soon as whatever was derived from it is known good"""
    if not enabled:
        return False

    if not prerequisite_valid:
        logger.info(f"[cleanup] kept {Path(file_path).name} because prerequisite invalid")
        return False

    return move_to_trash(file_path, trash_root, identifier, dry_run=dry_run) is not None
