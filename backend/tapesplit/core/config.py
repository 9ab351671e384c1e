import logging
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from ..models.enums import CleanupLevel

logger = logging.getLogger(__name__)

DEFAULT_PRESET_NAME = "niven"


class SegmentationOptions(BaseModel):
    """Settings used to detect silences and cut one item into tracks"""

    noise_db: float = -35.0
    min_silence: float = 0.6
    min_segment: float = 20.0
    intro_trim_sec: float = 0.0
    concurrency: int = Field(default=1, ge=1)
    start_index: int = Field(default=1, ge=1)
    extension: str = "mp3"


class CleanupOptions(BaseModel):
    """Disk reclamation settings for one item"""

    cleanup: bool = False
    cleanup_level: CleanupLevel = CleanupLevel.ALL
    dry_run: bool = False
    purge_trash: bool = False
    trash_dir: Optional[str] = None
    progressive: bool = False


class Preset(BaseModel):
    name: str
    description: str = ""
    noise_db: float
    min_silence: float
    min_segment: float
    intro_trim_sec: float = 0.0
    concurrency: int = 2


PRESETS: Dict[str, Preset] = {
    "niven": Preset(
        name="Niven Tapes",
        description="Optimized for cassette recordings with commentary",
        noise_db=-35,
        min_silence=0.6,
        min_segment=20,
        intro_trim_sec=12,
        concurrency=2,
    ),
    "default": Preset(
        name="Default",
        description="Balanced settings for general audio",
        noise_db=-40,
        min_silence=0.5,
        min_segment=15,
        intro_trim_sec=0,
        concurrency=2,
    ),
}


def get_preset(preset_name: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> SegmentationOptions:
    """
    Resolve segmentation options from a preset plus per-run overrides.
    No preset name means the niven preset; an unknown name falls back to default.
    Overrides that are None are ignored.
    """
    if preset_name and preset_name in PRESETS:
        preset = PRESETS[preset_name]
        logger.info(f'[preset] Using "{preset.name}" preset')
    elif preset_name:
        logger.warning(f'[preset] Unknown preset "{preset_name}", using default')
        preset = PRESETS["default"]
    else:
        preset = PRESETS[DEFAULT_PRESET_NAME]

    values = preset.model_dump(exclude={"name", "description"})
    values.update({key: value for key, value in (overrides or {}).items() if value is not None})
    options = SegmentationOptions(**values)

    logger.info(
        f"[preset] Effective settings: noise_db={options.noise_db}dB min_silence={options.min_silence}s "
        f"min_segment={options.min_segment}s intro_trim_sec={options.intro_trim_sec}s "
        f"concurrency={options.concurrency}"
    )
    return options


class Settings(BaseSettings):
    # Web App Configuration (from environment)
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False

    # Processing
    OUTPUT_DIR: str = "./out"
    TRASH_DIR: str = ""
    FFMPEG_BIN: str = "ffmpeg"
    FFPROBE_BIN: str = "ffprobe"
    CATALOG_BASE_URL: str = "https://archive.org"
    DEFAULT_PRESET: str = DEFAULT_PRESET_NAME

    class Config:
        case_sensitive = True

    @property
    def trash_root(self) -> Path:
        """Trash directory, defaulting to <OUTPUT_DIR>/.trash"""
        if self.TRASH_DIR:
            return Path(self.TRASH_DIR)
        return Path(self.OUTPUT_DIR) / ".trash"


# Global configuration cache
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
        logger.info(f"Loaded settings - OUTPUT_DIR: {_settings.OUTPUT_DIR}")
        logger.info(f"Loaded settings - TRASH_DIR: {_settings.trash_root}")
        logger.info(f"Loaded settings - DEBUG: {_settings.DEBUG}")
    return _settings


def refresh_settings():
    """Drop cached settings so the next access re-reads the environment"""
    global _settings
    _settings = None
