import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..core.config import SegmentationOptions
from ..core.exceptions import TrimError
from ..models.enums import Step
from ..models.tracks import SplitResult, Track
from .output_validator import TRIMMED_PREFIX, WORK_DIR_NAME
from .segmentation import silences_to_segments
from .track_exporter import TrackExporter

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Step, float, str, dict], None]
SideCallback = Callable[[str, SplitResult], None]


def side_label(position: int) -> str:
    if position < 26:
        return f"Side {chr(ord('A') + position)}"
    return f"Side {position + 1}"


class SideSequencer:
    """Splits each side of an item into tracks, one side after another.

    The running track index is passed explicitly: every side starts at the
    next_index returned by the side before it.
    """

    def __init__(
        self,
        backend,
        options: Optional[SegmentationOptions] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.backend = backend
        self.options = options or SegmentationOptions()
        self.progress_callback = progress_callback
        self.exporter = TrackExporter(backend, concurrency=self.options.concurrency)

    def _notify_progress(self, step: Step, percent: float, message: str = "", details: dict = None):
        """Notify progress via callback"""
        if self.progress_callback:
            try:
                self.progress_callback(step, percent, message, details or {})
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    async def split_into_tracks(
        self,
        input_path: str,
        output_dir: str,
        start_index: Optional[int] = None,
        side: str = "",
    ) -> SplitResult:
        """Trim, analyze, segment and export one side file"""
        options = self.options
        start_index = options.start_index if start_index is None else start_index
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)

        loop = asyncio.get_event_loop()
        working_file = str(input_path)
        work_dir = out_dir / WORK_DIR_NAME
        trimmed_path: Optional[Path] = None

        try:
            if options.intro_trim_sec > 0:
                work_dir.mkdir(parents=True, exist_ok=True)
                trimmed_path = work_dir / f"{TRIMMED_PREFIX}{Path(input_path).name}"
                logger.info(f"[trim] Removing first {options.intro_trim_sec}s from {Path(input_path).name}")
                self._notify_progress(Step.TRIMMING, 0, f"Trimming intro of {side or Path(input_path).name}")
                try:
                    await loop.run_in_executor(
                        None, self.backend.extract, str(input_path), str(trimmed_path), options.intro_trim_sec, None
                    )
                except Exception as e:
                    raise TrimError(f"Trim failed: {e}") from e
                working_file = str(trimmed_path)
                logger.info("[trim] ✓ Trimmed file created")

            self._notify_progress(Step.AUDIO_ANALYSIS, 0, f"Detecting silence in {side or Path(input_path).name}")
            silences = await loop.run_in_executor(
                None, self.backend.detect_silences, working_file, options.noise_db, options.min_silence
            )

            if not silences:
                logger.warning("[split] No silence detected, exporting whole file as single track")
                return await self.exporter.export_whole(
                    working_file, str(out_dir), start_index, extension=options.extension, side=side
                )

            total_duration = await loop.run_in_executor(None, self.backend.probe_duration, working_file)
            segments = silences_to_segments(silences, total_duration, options.min_segment)

            self._notify_progress(
                Step.AUDIO_EXTRACTION,
                0,
                f"Exporting {len(segments)} tracks from {side or Path(input_path).name}",
                {"segments": len(segments), "start_index": start_index},
            )
            return await self.exporter.export_segments(
                working_file, segments, str(out_dir), start_index, extension=options.extension, side=side
            )
        finally:
            if trimmed_path is not None and trimmed_path != Path(input_path) and trimmed_path.exists():
                try:
                    os.remove(trimmed_path)
                except OSError as e:
                    logger.warning(f"[trim] Failed to remove trimmed file {trimmed_path}: {e}")
            if trimmed_path is not None and work_dir.is_dir() and not any(work_dir.iterdir()):
                work_dir.rmdir()

    async def process_sides(
        self,
        side_files: Sequence[str],
        output_dir: str,
        start_index: Optional[int] = None,
        after_side: Optional[SideCallback] = None,
    ) -> SplitResult:
        """Split every side in order with continuous numbering; tracks are concatenated in side order"""
        all_tracks: List[Track] = []
        current_index = self.options.start_index if start_index is None else start_index

        for position, side_path in enumerate(side_files):
            side = side_label(position)
            logger.info(f"[process] === {side} ===")

            result = await self.split_into_tracks(side_path, output_dir, start_index=current_index, side=side)

            all_tracks.extend(result.tracks)
            current_index = result.next_index
            self._notify_progress(
                Step.AUDIO_EXTRACTION,
                (position + 1) / len(side_files) * 100,
                f"{side}: {len(result.tracks)} tracks",
                {"side": side, "tracks": len(result.tracks), "next_index": current_index},
            )

            if after_side:
                after_side(side_path, result)

        return SplitResult(tracks=all_tracks, next_index=current_index)
