class TapesplitError(Exception):
    """Base exception for tapesplit errors"""

    pass


class AnalysisError(TapesplitError):
    """Silence detection could not be run or did not finish cleanly"""

    pass


class TrimError(TapesplitError):
    """Producing the intro-trimmed working copy failed"""

    pass


class ExportError(TapesplitError):
    """A single extract/copy into a new container failed"""

    pass


class ProbeError(TapesplitError):
    """ffprobe could not report a duration for a file"""

    pass


class CatalogError(TapesplitError):
    """Fetching item metadata or downloading item files failed"""

    pass


class TrashCollisionError(TapesplitError, FileExistsError):
    """The computed trash destination already exists"""

    pass


class ProcessingError(TapesplitError):
    """An item run failed; carries the failure report that was written for it"""

    def __init__(self, message: str, report=None):
        super().__init__(message)
        self.report = report


class RunInProgressError(TapesplitError):
    """Another run for the same identifier is active in this process"""

    pass
