import logging
from typing import Dict, Optional

from .core.exceptions import RunInProgressError
from .models.enums import Step

logger = logging.getLogger(__name__)


class AppState:
    """Singleton registry of the item runs active in this process"""

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AppState, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.runs: Dict[str, object] = {}
            AppState._initialized = True

    def start_run(self, identifier: str, processor):
        """Register a run; only one run per identifier may be active at a time"""
        if identifier in self.runs:
            raise RunInProgressError(f"Item {identifier} is already being processed")
        self.runs[identifier] = processor
        logger.info(f"Started run for {identifier}")
        return processor

    def finish_run(self, identifier: str) -> bool:
        processor = self.runs.pop(identifier, None)
        if processor is None:
            return False
        logger.info(f"Finished run for {identifier}")
        return True

    def get_run(self, identifier: str):
        return self.runs.get(identifier)

    def step_for(self, identifier: str) -> Optional[Step]:
        processor = self.get_run(identifier)
        return processor.step if processor is not None else None

    def reset(self):
        self.runs.clear()


def get_app_state() -> AppState:
    return AppState()
