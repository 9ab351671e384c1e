import logging
import re
from typing import Callable, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ...app import get_app_state
from ...core.config import CleanupOptions, get_preset, get_settings
from ...core.exceptions import ProcessingError, RunInProgressError
from ...models.enums import CleanupLevel, ResumeVerdict, Step
from ...models.tracks import CleanupReport, ItemReport, TracksValidation
from ...services.audio_service import FfmpegAudioBackend
from ...services.catalog_service import CatalogService
from ...services.processing_pipeline import ItemProcessor

logger = logging.getLogger(__name__)

router = APIRouter()

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ProcessItemRequest(BaseModel):
    preset: Optional[str] = None
    noise_db: Optional[float] = None
    min_silence: Optional[float] = None
    min_segment: Optional[float] = None
    intro_trim_sec: Optional[float] = None
    concurrency: Optional[int] = None
    start_index: Optional[int] = None
    cleanup: bool = False
    cleanup_level: CleanupLevel = CleanupLevel.ALL
    dry_run: bool = False
    purge_trash: bool = False
    trash_dir: Optional[str] = None
    progressive_cleanup: bool = False
    force: bool = False


class CleanupItemRequest(BaseModel):
    cleanup_level: CleanupLevel = CleanupLevel.ALL
    dry_run: bool = False
    purge_trash: bool = False
    trash_dir: Optional[str] = None


class ItemStatusResponse(BaseModel):
    identifier: str
    verdict: ResumeVerdict
    reason: str
    needs_download: bool
    needs_split: bool
    validation: TracksValidation
    active_step: Optional[Step] = None


def get_audio_backend():
    return FfmpegAudioBackend.from_settings(get_settings())


def get_catalog_factory() -> Callable[[], CatalogService]:
    settings = get_settings()
    return lambda: CatalogService(settings.CATALOG_BASE_URL)


def _check_identifier(identifier: str):
    if not IDENTIFIER_PATTERN.match(identifier):
        raise HTTPException(status_code=400, detail=f"Invalid identifier: {identifier}")


@router.get("/items/{identifier}/status", response_model=ItemStatusResponse)
async def get_item_status(identifier: str, backend=Depends(get_audio_backend)):
    """Report what a re-run of this item would have to do"""
    _check_identifier(identifier)
    processor = ItemProcessor(identifier, backend=backend)
    status = await processor.check_status()

    return ItemStatusResponse(
        identifier=identifier,
        verdict=status.verdict,
        reason=status.reason,
        needs_download=status.needs_download,
        needs_split=status.needs_split,
        validation=status.validation,
        active_step=get_app_state().step_for(identifier),
    )


@router.post("/items/{identifier}/process", response_model=ItemReport)
async def process_item(
    identifier: str,
    request: ProcessItemRequest,
    backend=Depends(get_audio_backend),
    catalog_factory=Depends(get_catalog_factory),
):
    """Process one item end to end and return its report"""
    _check_identifier(identifier)

    try:
        segmentation = get_preset(
            request.preset or get_settings().DEFAULT_PRESET,
            {
                "noise_db": request.noise_db,
                "min_silence": request.min_silence,
                "min_segment": request.min_segment,
                "intro_trim_sec": request.intro_trim_sec,
                "concurrency": request.concurrency,
                "start_index": request.start_index,
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    cleanup = CleanupOptions(
        cleanup=request.cleanup,
        cleanup_level=request.cleanup_level,
        dry_run=request.dry_run,
        purge_trash=request.purge_trash,
        trash_dir=request.trash_dir,
        progressive=request.progressive_cleanup,
    )
    processor = ItemProcessor(
        identifier,
        segmentation=segmentation,
        cleanup=cleanup,
        backend=backend,
        catalog_factory=catalog_factory,
        force=request.force,
    )

    app_state = get_app_state()
    try:
        app_state.start_run(identifier, processor)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    try:
        return await processor.run()
    except ProcessingError as e:
        detail = e.report.model_dump(mode="json") if e.report is not None else str(e)
        raise HTTPException(status_code=500, detail=detail)
    finally:
        app_state.finish_run(identifier)


@router.post("/items/{identifier}/cleanup", response_model=CleanupReport)
async def cleanup_item(identifier: str, request: CleanupItemRequest, backend=Depends(get_audio_backend)):
    """Reclaim raw/ for an item whose tracks validate"""
    _check_identifier(identifier)

    cleanup = CleanupOptions(
        cleanup=True,
        cleanup_level=request.cleanup_level,
        dry_run=request.dry_run,
        purge_trash=request.purge_trash,
        trash_dir=request.trash_dir,
    )
    processor = ItemProcessor(identifier, cleanup=cleanup, backend=backend)

    app_state = get_app_state()
    try:
        app_state.start_run(identifier, processor)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))

    try:
        return await processor.cleanup()
    finally:
        app_state.finish_run(identifier)
