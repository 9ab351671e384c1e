import json
import logging
import os
import re
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import httpx

from ..core.exceptions import CatalogError
from ..models.catalog import CatalogFile, CatalogItem
from .resume_planner import RAW_DIR_NAME
from .trash_service import format_bytes

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".flac", ".wav", ".ogg")
IGNORED_NAME_PARTS = (".m3u", "_files.xml", "_meta.xml")
SIDE_A_PATTERN = re.compile(r"_Side_A\.mp3$", re.IGNORECASE)
SIDE_B_PATTERN = re.compile(r"_Side_B\.mp3$", re.IGNORECASE)
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def is_audio_file(name: str) -> bool:
    lowered = (name or "").lower()
    if any(part in lowered for part in IGNORED_NAME_PARTS):
        return False
    return lowered.endswith(AUDIO_EXTENSIONS)


def pick_audio_files(item: CatalogItem, prefer_mp3: bool = True) -> List[CatalogFile]:
    """
    Choose which catalog files to process.

    When MP3s are present both <id>_Side_A.mp3 and <id>_Side_B.mp3 are required.
    Without MP3s, all FLAC files are used, then all WAV files, then every audio file.
    """
    audio_files = [f for f in item.files if is_audio_file(f.name)]
    if not audio_files:
        raise CatalogError("No audio files found in item")

    logger.info(f"[audio] Found {len(audio_files)} audio files total")

    if prefer_mp3:
        mp3_files = [f for f in audio_files if f.name.lower().endswith(".mp3")]
        if mp3_files:
            side_a = next((f for f in mp3_files if SIDE_A_PATTERN.search(f.name)), None)
            side_b = next((f for f in mp3_files if SIDE_B_PATTERN.search(f.name)), None)
            if side_a and side_b:
                logger.info(f"[audio] ✓ Found Side A + Side B MP3s: {side_a.name}, {side_b.name}")
                return [side_a, side_b]

            logger.warning(
                f"[audio] ⚠ Side A/B pattern not complete (Side A: {'✓' if side_a else '✗'}, "
                f"Side B: {'✓' if side_b else '✗'}); available: "
                + ", ".join(f"{f.name} ({f.format})" for f in audio_files)
            )
            raise CatalogError("Missing Side A or Side B MP3")

        for extension, label in ((".flac", "FLAC"), (".wav", "WAV")):
            matching = [f for f in audio_files if f.name.lower().endswith(extension)]
            if matching:
                logger.info(f"[audio] No MP3s found, using {len(matching)} {label} file(s)")
                return matching

    logger.info(f"[audio] Returning all {len(audio_files)} audio files")
    return audio_files


def raw_path_for(raw_dir, name: str) -> Path:
    """Local path for a catalog file under raw/; names that would land outside raw/ are refused"""
    raw_dir = Path(raw_dir)
    dest = raw_dir / name
    if raw_dir.resolve() not in dest.resolve().parents:
        raise CatalogError(f"Refusing file name outside raw/: {name}")
    return dest


def encode_path_preserving_slashes(value: str) -> str:
    return "/".join(quote(segment, safe="") for segment in value.split("/"))


class CatalogService:
    """Client for the archive.org metadata and download endpoints"""

    def __init__(self, base_url: str = "https://archive.org", client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=300.0), follow_redirects=True)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("CatalogService must be used as an async context manager")
        return self._client

    def download_url(self, identifier: str, filename: str) -> str:
        return f"{self.base_url}/download/{identifier}/{encode_path_preserving_slashes(filename)}"

    async def get_metadata(self, identifier: str) -> CatalogItem:
        url = f"{self.base_url}/metadata/{identifier}"
        logger.info(f"[metadata] Fetching {identifier}...")

        try:
            response = await self.client.get(url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CatalogError(f"Failed to fetch metadata for {identifier}: {e}") from e

        if not isinstance(data, dict):
            raise CatalogError(f"Unexpected metadata document for {identifier}")

        files = []
        for entry in data.get("files") or []:
            if not isinstance(entry, dict) or not entry.get("name"):
                continue
            try:
                size = int(entry.get("size") or 0)
            except (TypeError, ValueError):
                size = 0
            files.append(
                CatalogFile(
                    name=entry["name"],
                    format=entry.get("format", "") or "",
                    size=size,
                    source=entry.get("source", "") or "",
                )
            )

        return CatalogItem(identifier=identifier, metadata=data.get("metadata") or {}, files=files, raw=data)

    async def download_item_files(self, item: CatalogItem, files: List[CatalogFile], item_dir) -> List[str]:
        """Save metadata.json and download the chosen files into <item_dir>/raw/"""
        item_dir = Path(item_dir)
        raw_dir = item_dir / RAW_DIR_NAME
        raw_dir.mkdir(parents=True, exist_ok=True)
        destinations = [raw_path_for(raw_dir, catalog_file.name) for catalog_file in files]

        metadata_path = item_dir / "metadata.json"
        with open(metadata_path, "w", encoding="utf-8") as f:
            json.dump(item.raw, f, indent=2)
        logger.info(f"[metadata] Saved to {metadata_path}")

        downloaded = []
        for catalog_file, dest in zip(files, destinations):
            dest.parent.mkdir(parents=True, exist_ok=True)
            partial = dest.with_name(f"{dest.name}.part")
            url = self.download_url(item.identifier, catalog_file.name)

            logger.info(f"[download] {item.identifier} {catalog_file.name} -> {dest}")
            try:
                async with self.client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(partial, "wb") as f:
                        async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                            f.write(chunk)
                os.replace(partial, dest)
            except (httpx.HTTPError, OSError) as e:
                if partial.exists():
                    partial.unlink()
                logger.error(f"[download] ✗ Failed to download {catalog_file.name}: {e}")
                raise CatalogError(f"Failed to download {catalog_file.name}: {e}") from e

            logger.info(f"[download] ✓ {catalog_file.name} ({format_bytes(catalog_file.size)})")
            downloaded.append(str(dest))

        return downloaded
