import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.config import CleanupOptions, SegmentationOptions, Settings, get_settings
from ..core.exceptions import CatalogError, ProcessingError
from ..models.catalog import CatalogFile, CatalogItem
from ..models.enums import ResumeVerdict, Step
from ..models.tracks import CleanupReport, ErrorReport, ItemReport, ResumeStatus, SplitResult
from .audio_service import FfmpegAudioBackend
from .catalog_service import CatalogService, pick_audio_files, raw_path_for
from .output_validator import TRIMMED_PREFIX, tracks_dir_for
from .resume_planner import RAW_DIR_NAME, plan_resume
from .side_sequencer import SideSequencer
from .trash_service import maybe_cleanup_item, move_to_trash, progressive_cleanup

logger = logging.getLogger(__name__)

REPORT_FILENAME = "report.json"
METADATA_FILENAME = "metadata.json"


class PipelineProgress(BaseModel):
    step: Step
    percent: float = 0.0
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def write_report(item_dir, report: BaseModel) -> Path:
    item_dir = Path(item_dir)
    item_dir.mkdir(parents=True, exist_ok=True)
    report_path = item_dir / REPORT_FILENAME
    with open(report_path, "w", encoding="utf-8") as f:
        f.write(report.model_dump_json(indent=2))
    logger.info(f"[report] Saved to {report_path}")
    return report_path


class ItemProcessor:
    """Runs one catalog identifier end to end: resume check, download, split, cleanup, report"""

    def __init__(
        self,
        identifier: str,
        segmentation: Optional[SegmentationOptions] = None,
        cleanup: Optional[CleanupOptions] = None,
        backend=None,
        settings: Optional[Settings] = None,
        catalog_factory: Optional[Callable[[], CatalogService]] = None,
        force: bool = False,
    ):
        self.settings = settings or get_settings()
        self.identifier = identifier
        self.segmentation = segmentation or SegmentationOptions()
        self.cleanup_options = cleanup or CleanupOptions()
        self.backend = backend or FfmpegAudioBackend.from_settings(self.settings)
        self.catalog_factory = catalog_factory or (lambda: CatalogService(self.settings.CATALOG_BASE_URL))
        self.force = force

        self.output_dir = Path(self.settings.OUTPUT_DIR)
        self.item_dir = self.output_dir / identifier
        self.trash_root = (
            Path(self.cleanup_options.trash_dir) if self.cleanup_options.trash_dir else self.settings.trash_root
        )

        self.step: Step = Step.IDLE
        self.progress: PipelineProgress = PipelineProgress(step=Step.IDLE)

    def _notify_progress(self, step: Step, percent: float, message: str = "", details: dict = None):
        self.step = step
        self.progress = PipelineProgress(step=step, percent=percent, message=message, details=details or {})

    async def _in_executor(self, func, *args):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, func, *args)

    async def check_status(self) -> ResumeStatus:
        await self._in_executor(self._adopt_saved_extension)
        return await self._in_executor(plan_resume, self.item_dir, self.backend, self.segmentation.extension)

    async def cleanup(self, failed: bool = False) -> CleanupReport:
        """Gated cleanup for this item, usable on its own after a run"""
        await self._in_executor(self._adopt_saved_extension)
        return await self._in_executor(
            lambda: maybe_cleanup_item(
                self.item_dir,
                self.identifier,
                self.cleanup_options,
                self.backend,
                self.trash_root,
                failed=failed,
                extension=self.segmentation.extension,
            )
        )

    def _existing_track_names(self) -> List[str]:
        suffix = f".{self.segmentation.extension.lower()}"
        tracks_dir = tracks_dir_for(self.item_dir)
        return sorted(
            p.name
            for p in tracks_dir.iterdir()
            if p.is_file() and p.name.lower().endswith(suffix) and not p.name.startswith(TRIMMED_PREFIX)
        )

    def _adopt_source_extension(self, source_names: List[str]):
        """Tracks are stream copies, so they keep the container of the side files"""
        if not source_names:
            return
        extension = Path(source_names[0]).suffix.lstrip(".").lower()
        if extension and extension != self.segmentation.extension:
            logger.info(f"[split] Writing .{extension} tracks to match {Path(source_names[0]).name}")
            self.segmentation = self.segmentation.model_copy(update={"extension": extension})

    def _adopt_saved_extension(self):
        selection = self._saved_selection()
        if selection:
            self._adopt_source_extension([f.name for f in selection])

    def _local_sources(self) -> Optional[List[str]]:
        """Raw files from a previous download, or None when they cannot be reused"""
        selection = self._saved_selection()
        if not selection:
            return None

        raw_dir = self.item_dir / RAW_DIR_NAME
        try:
            paths = [raw_path_for(raw_dir, f.name) for f in selection]
        except CatalogError as e:
            logger.warning(f"[re-run] {e}")
            return None

        if not all(path.is_file() for path in paths):
            return None
        return [str(path) for path in paths]

    def _saved_selection(self) -> Optional[List[CatalogFile]]:
        """Side files picked from a previously saved metadata.json, or None when there is none to use"""
        metadata_path = self.item_dir / METADATA_FILENAME
        if not metadata_path.exists():
            return None

        try:
            with open(metadata_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            item = CatalogItem(
                identifier=self.identifier,
                metadata=data.get("metadata") or {},
                files=[entry for entry in data.get("files") or [] if isinstance(entry, dict) and entry.get("name")],
                raw=data,
            )
            return pick_audio_files(item)
        except Exception as e:
            logger.warning(f"[re-run] Unable to reuse saved metadata for {self.identifier}: {e}")
            return None

    async def _fetch_sources(self) -> List[str]:
        self._notify_progress(Step.FETCHING_METADATA, 0, f"Fetching metadata for {self.identifier}")
        async with self.catalog_factory() as catalog:
            item = await catalog.get_metadata(self.identifier)
            if item.title:
                logger.info(f"[item] {item.title}")
            files = pick_audio_files(item)

            self._notify_progress(Step.DOWNLOADING, 0, f"Downloading {len(files)} file(s)")
            return await catalog.download_item_files(item, files, self.item_dir)

    def _reclaim_stale_tracks(self):
        """Move tracks left by an earlier, unusable run into the trash before re-splitting"""
        tracks_dir = tracks_dir_for(self.item_dir)
        if tracks_dir.is_dir() and any(tracks_dir.iterdir()):
            logger.info(f"[re-run] Moving previous tracks/ of {self.identifier} to trash")
            move_to_trash(tracks_dir, self.trash_root, self.identifier)

    def _after_side(self, side_path: str, result: SplitResult):
        progressive_cleanup(
            side_path,
            self.identifier,
            self.trash_root,
            enabled=self.cleanup_options.cleanup and self.cleanup_options.progressive,
            dry_run=self.cleanup_options.dry_run,
            prerequisite_valid=len(result.tracks) > 0,
        )

    async def run(self) -> ItemReport:
        """
        Process the item. Returns the item report; on a fatal error a failure report is
        written and ProcessingError is raised carrying it. Exported tracks are kept either way.
        """
        logger.info(f"Processing item: {self.identifier}")
        start_time = time.monotonic()

        try:
            self._notify_progress(Step.VALIDATING, 0, "Checking existing output")
            status = None
            if not self.force:
                status = await self.check_status()
                if status.skip:
                    logger.info(f"[skip] ✓ {status.reason}")
                    self._notify_progress(Step.COMPLETED, 100, "Already complete")
                    existing = self._existing_track_names()
                    return ItemReport(
                        identifier=self.identifier,
                        timestamp=_now_iso(),
                        settings=self.segmentation.model_dump(),
                        track_count=len(existing),
                        tracks=existing,
                        duration_ms=int((time.monotonic() - start_time) * 1000),
                        resume=ResumeVerdict.SKIP,
                        cleanup=CleanupReport(
                            enabled=self.cleanup_options.cleanup,
                            level=self.cleanup_options.cleanup_level,
                            skipped="already complete",
                        ),
                    )

            sources = None
            if status is not None and status.verdict == ResumeVerdict.NEEDS_SPLIT_ONLY:
                sources = self._local_sources()
                if sources:
                    logger.info("[re-run] Missing tracks, will re-split")
                else:
                    logger.info("[re-run] Raw files incomplete, will re-download")
            elif status is not None:
                logger.info("[re-run] Missing raw files, will download")

            if not sources:
                sources = await self._fetch_sources()

            self._adopt_source_extension(sources)
            await self._in_executor(self._reclaim_stale_tracks)

            sequencer = SideSequencer(self.backend, self.segmentation, progress_callback=self._notify_progress)
            result = await sequencer.process_sides(
                sources,
                str(tracks_dir_for(self.item_dir)),
                start_index=self.segmentation.start_index,
                after_side=self._after_side,
            )
            logger.info(f"[done] ✓ Processed {len(result.tracks)} tracks")

            self._notify_progress(Step.CLEANUP, 0, "Cleaning up")
            cleanup_report = await self.cleanup(failed=False)

            report = ItemReport(
                identifier=self.identifier,
                timestamp=_now_iso(),
                settings=self.segmentation.model_dump(),
                input_files=[Path(source).name for source in sources],
                tracks=[Path(track.file_path).name for track in result.tracks],
                track_count=len(result.tracks),
                duration_ms=int((time.monotonic() - start_time) * 1000),
                resume=status.verdict if status else None,
                cleanup=cleanup_report,
            )
            write_report(self.item_dir, report)

            self._notify_progress(Step.COMPLETED, 100, f"Complete in {report.duration_ms / 1000:.1f}s")
            logger.info(f"✓ Complete in {report.duration_ms / 1000:.1f}s, output: {self.item_dir}")
            return report

        except Exception as e:
            logger.error(f"✗ Error processing {self.identifier}: {e}")
            self._notify_progress(Step.FAILED, 0, str(e))
            error_report = ErrorReport(
                identifier=self.identifier,
                timestamp=_now_iso(),
                error=str(e),
                cleanup=await self.cleanup(failed=True),
            )
            try:
                write_report(self.item_dir, error_report)
            except OSError as report_error:
                logger.warning(f"[report] Failed to write error report for {self.identifier}: {report_error}")
            raise ProcessingError(str(e), report=error_report) from e
