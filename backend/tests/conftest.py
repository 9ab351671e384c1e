import json
import time
from pathlib import Path

import pytest

from tapesplit.app import get_app_state
from tapesplit.core.exceptions import AnalysisError, CatalogError, ExportError, ProbeError
from tapesplit.models.catalog import CatalogFile, CatalogItem
from tapesplit.models.tracks import SilenceInterval

TRIM_PREFIX = "_trimmed_"


def _source_name(path) -> str:
    name = Path(path).name
    return name[len(TRIM_PREFIX):] if name.startswith(TRIM_PREFIX) else name


class FakeBackend:
    """In-memory stand-in for the ffmpeg backend; exports write small marker files"""

    def __init__(
        self,
        silences=None,
        durations=None,
        default_duration=100.0,
        fail_starts=(),
        fail_trim=False,
        fail_detect=False,
        fail_copy=False,
        probe_errors=(),
        extract_delays=None,
    ):
        self.silences = silences or {}
        self.durations = durations or {}
        self.default_duration = default_duration
        self.fail_starts = set(fail_starts)
        self.fail_trim = fail_trim
        self.fail_detect = fail_detect
        self.fail_copy = fail_copy
        self.probe_errors = set(probe_errors)
        self.extract_delays = extract_delays or {}
        self.calls = []

    def detect_silences(self, input_file, noise_db=-35, min_silence=0.6):
        self.calls.append(("detect", Path(input_file).name))
        if self.fail_detect:
            raise AnalysisError("silencedetect exited with 1")
        spans = self.silences.get(_source_name(input_file), self.silences.get("*", []))
        return [SilenceInterval(start=start, end=end) for start, end in spans]

    def probe_duration(self, file_path):
        path = Path(file_path)
        self.calls.append(("probe", path.name))
        if path.name in self.probe_errors:
            raise ProbeError(f"ffprobe failed: invalid data in {path.name}")
        if path.name in self.durations:
            return self.durations[path.name]
        if _source_name(path) in self.durations:
            return self.durations[_source_name(path)]
        if path.is_file() and path.read_bytes().startswith(b"short"):
            return 3.0
        return self.default_duration

    def extract(self, input_file, output_path, start, end=None):
        self.calls.append(("extract", Path(input_file).name, start, end))
        if end is None and self.fail_trim:
            raise ExportError("trim failed")
        if start in self.fail_starts:
            raise ExportError(f"cannot extract at {start}")
        if start in self.extract_delays:
            time.sleep(self.extract_delays[start])
        Path(output_path).write_text(f"{Path(input_file).name}:{start}-{end}")
        return str(output_path)

    def copy(self, input_file, output_path):
        self.calls.append(("copy", Path(input_file).name))
        if self.fail_copy:
            raise ExportError("copy failed")
        Path(output_path).write_text(f"{Path(input_file).name}:whole")
        return str(output_path)

    def extract_calls(self):
        return [call for call in self.calls if call[0] == "extract"]


def side_files(identifier: str):
    return [f"{identifier}_Side_A.mp3", f"{identifier}_Side_B.mp3"]


def metadata_document(identifier: str, names=None):
    names = names or side_files(identifier)
    return {
        "metadata": {"identifier": identifier, "title": f"{identifier} tapes"},
        "files": [{"name": name, "format": "VBR MP3", "size": "5"} for name in names]
        + [{"name": f"{identifier}_files.xml", "format": "Metadata"}],
    }


class FakeCatalog:
    """Catalog double that serves one item and writes its raw files locally"""

    def __init__(self, identifier: str, fail: bool = False, names=None):
        self.identifier = identifier
        self.names = names
        self.fail = fail
        self.metadata_calls = 0
        self.download_calls = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def get_metadata(self, identifier):
        self.metadata_calls += 1
        if self.fail:
            raise CatalogError(f"Failed to fetch metadata for {identifier}: 404")
        data = metadata_document(identifier, self.names)
        return CatalogItem(
            identifier=identifier,
            metadata=data["metadata"],
            files=[CatalogFile(**entry) for entry in data["files"]],
            raw=data,
        )

    async def download_item_files(self, item, files, item_dir):
        self.download_calls += 1
        item_dir = Path(item_dir)
        raw_dir = item_dir / "raw"
        raw_dir.mkdir(parents=True, exist_ok=True)
        (item_dir / "metadata.json").write_text(json.dumps(item.raw))
        paths = []
        for catalog_file in files:
            dest = raw_dir / catalog_file.name
            dest.write_bytes(b"audio")
            paths.append(str(dest))
        return paths


@pytest.fixture
def make_backend():
    return FakeBackend


@pytest.fixture
def make_catalog():
    return FakeCatalog


@pytest.fixture(autouse=True)
def _reset_app_state():
    get_app_state().reset()
    yield
    get_app_state().reset()
