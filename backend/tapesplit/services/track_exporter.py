import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..models.tracks import Segment, SplitResult, Track

logger = logging.getLogger(__name__)

STAGING_DIR_NAME = ".staging"


def track_filename(index: int, extension: str = "mp3") -> str:
    return f"track_{index:03d}.{extension}"


class TrackExporter:
    """Materializes kept segments as sequentially numbered track files.

    Extracts run through the audio backend in worker threads, at most `concurrency`
    at a time. Each extract lands in a staging directory first; indices are handed
    out only after every extract of the batch has finished, in segment start order,
    so a failed extract never reserves a number and parallelism never reorders them.
    """

    def __init__(self, backend, concurrency: int = 1):
        self.backend = backend
        self.concurrency = max(1, int(concurrency or 1))

    async def export_segments(
        self,
        working_file: str,
        segments: Sequence[Segment],
        output_dir: str,
        start_index: int = 1,
        extension: str = "mp3",
        side: str = "",
    ) -> SplitResult:
        """Export segments and return the produced tracks plus the first unused index"""
        out_dir = Path(output_dir)
        staging_dir = out_dir / STAGING_DIR_NAME
        staging_dir.mkdir(parents=True, exist_ok=True)

        semaphore = asyncio.Semaphore(self.concurrency)
        loop = asyncio.get_event_loop()

        async def _export(ordinal: int, segment: Segment) -> Tuple[Segment, Optional[str]]:
            staged_path = staging_dir / f"segment_{ordinal:03d}.{extension}"
            async with semaphore:
                try:
                    await loop.run_in_executor(
                        None,
                        self.backend.extract,
                        working_file,
                        str(staged_path),
                        segment.start,
                        segment.end,
                    )
                    return segment, str(staged_path)
                except Exception as e:
                    logger.error(
                        f"[split] ✗ Failed to export segment {segment.start:.1f}s-{segment.end:.1f}s "
                        f"of {Path(working_file).name}: {e}"
                    )
                    return segment, None

        try:
            results = await asyncio.gather(*(_export(i, segment) for i, segment in enumerate(segments)))

            tracks: List[Track] = []
            track_index = start_index
            for segment, staged_path in sorted(results, key=lambda result: result[0].start):
                if staged_path is None:
                    continue
                final_path = out_dir / track_filename(track_index, extension)
                os.replace(staged_path, final_path)
                logger.info(f"[split] ✓ {final_path.name} ({segment.duration:.1f}s)")
                tracks.append(Track(index=track_index, file_path=str(final_path), side=side))
                track_index += 1

            return SplitResult(tracks=tracks, next_index=track_index)
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

    async def export_whole(
        self,
        working_file: str,
        output_dir: str,
        start_index: int = 1,
        extension: str = "mp3",
        side: str = "",
    ) -> SplitResult:
        """Export the entire working file as a single track; a failure here propagates"""
        out_dir = Path(output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        output_path = out_dir / track_filename(start_index, extension)

        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self.backend.copy, working_file, str(output_path))

        logger.info(f"[split] ✓ {output_path.name} (whole file)")
        return SplitResult(
            tracks=[Track(index=start_index, file_path=str(output_path), side=side)],
            next_index=start_index + 1,
        )
