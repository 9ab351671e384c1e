from typing import List, Optional, Dict, Any

from pydantic import BaseModel, Field, model_validator

from .enums import ResumeVerdict, CleanupLevel


class SilenceInterval(BaseModel):
    start: float
    end: float
    duration: float = 0.0

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.end <= self.start:
            raise ValueError(f"silence end {self.end} must be after start {self.start}")
        self.duration = self.end - self.start
        return self


class Segment(BaseModel):
    start: float
    end: float
    duration: float


class Track(BaseModel):
    index: int
    file_path: str
    side: str = ""


class SplitResult(BaseModel):
    tracks: List[Track] = Field(default_factory=list)
    next_index: int

    @property
    def paths(self) -> List[str]:
        return [track.file_path for track in self.tracks]


class TracksValidation(BaseModel):
    valid: bool
    reason: Optional[str] = None
    count: int = 0


class ResumeStatus(BaseModel):
    verdict: ResumeVerdict
    reason: str
    needs_download: bool = False
    needs_split: bool = False
    validation: Optional[TracksValidation] = None

    @property
    def skip(self) -> bool:
        return self.verdict == ResumeVerdict.SKIP


class TrashMove(BaseModel):
    source: str
    destination: str
    size_bytes: int = 0


class CleanupReport(BaseModel):
    enabled: bool = False
    level: CleanupLevel = CleanupLevel.ALL
    moved_to_trash: List[str] = Field(default_factory=list)
    purged: bool = False
    saved_bytes: int = 0
    freed_bytes: int = 0
    skipped: Optional[str] = None
    errors: List[str] = Field(default_factory=list)


class ItemReport(BaseModel):
    identifier: str
    timestamp: str
    settings: Dict[str, Any] = Field(default_factory=dict)
    input_files: List[str] = Field(default_factory=list)
    tracks: List[str] = Field(default_factory=list)
    track_count: int = 0
    duration_ms: int = 0
    resume: Optional[ResumeVerdict] = None
    cleanup: CleanupReport = Field(default_factory=CleanupReport)


class ErrorReport(BaseModel):
    identifier: str
    timestamp: str
    error: str
    failed: bool = True
    cleanup: CleanupReport = Field(default_factory=CleanupReport)
