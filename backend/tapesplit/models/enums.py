from enum import Enum


class Step(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    FETCHING_METADATA = "fetching_metadata"
    DOWNLOADING = "downloading"
    TRIMMING = "trimming"
    AUDIO_ANALYSIS = "audio_analysis"
    AUDIO_EXTRACTION = "audio_extraction"
    CLEANUP = "cleanup"
    COMPLETED = "completed"
    FAILED = "failed"


class ResumeVerdict(str, Enum):
    """What a re-run has to do, derived from what is on disk"""

    SKIP = "skip"
    NEEDS_SPLIT_ONLY = "needs_split_only"
    NEEDS_FULL_PROCESSING = "needs_full_processing"


class CleanupLevel(str, Enum):
    # All levels currently reclaim raw/ only; tracks/ is the final output.
    RAW = "raw"
    TRACKS = "tracks"
    ALL = "all"
