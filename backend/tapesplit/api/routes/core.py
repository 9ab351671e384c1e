import importlib.metadata
import logging
from typing import Dict

from fastapi import APIRouter

from ...core.config import DEFAULT_PRESET_NAME, PRESETS, Preset

logger = logging.getLogger(__name__)

router = APIRouter()


def get_app_version():
    """Get the application version from package metadata"""
    try:
        return importlib.metadata.version("tapesplit")
    except importlib.metadata.PackageNotFoundError:
        # Fallback to a default version if package is not installed
        return "vDEV"


@router.get("/presets", response_model=Dict[str, Preset])
async def list_presets():
    """List the segmentation presets"""
    return PRESETS


@router.get("/presets/default")
async def default_preset():
    return {"name": DEFAULT_PRESET_NAME, "preset": PRESETS[DEFAULT_PRESET_NAME]}
